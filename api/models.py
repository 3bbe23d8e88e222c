"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format is camelCase (profilePicture, birthDate); Python attributes stay
snake_case. Requests accept either spelling.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users.

    Every field is optional at this layer on purpose: presence, email shape
    and password length are checked by auth.accounts.register(), which answers
    with a 400 and a specific message. A value of the wrong type (a number
    for name, an unparseable birthDate) is rejected by api.main as a 400
    "malformed request body".
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_max_length=2048)

    name: Optional[str] = None
    surname: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    birth_date: Optional[date] = None
    role: Optional[str] = None

    def to_registration(self) -> dict:
        data = self.model_dump()
        if self.birth_date is not None:
            data["birth_date"] = self.birth_date.isoformat()
        return data


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/login."""

    email: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """A user as returned to clients. There is no password field to leak."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    email: str
    name: str
    surname: str
    bio: Optional[str] = None
    profile_picture: Optional[str] = None
    birth_date: Optional[str] = None
    role: str
    created_at: Optional[str] = None


class LoginTokenResponse(BaseModel):
    """Token-mode login result."""

    model_config = ConfigDict(frozen=True)

    token: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    csrf_token: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
