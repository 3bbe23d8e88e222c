"""
auth/errors.py -- Error taxonomy for the authentication subsystem.

Two families:

  GatehouseError subclasses are what flows raise. Each carries the HTTP status,
  a stable machine-readable code, and a message that is safe to show a client.
  api/main.py renders them into the ErrorResponse envelope.

  StoreError subclasses are what store implementations raise. They hide the
  driver (SQLAlchemy, pymongo) from the flows, which translate them into the
  GatehouseError family.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class GatehouseError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GatehouseError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"


class ConflictError(GatehouseError):
    """A unique key (email) is already taken."""

    status_code = 400
    code = "conflict"


class AuthError(GatehouseError):
    """Bad credentials. The message never says which half was wrong."""

    status_code = 401
    code = "bad_credentials"


class ConfigurationError(AuthError):
    """The server cannot authenticate anyone because it is misconfigured."""

    status_code = 500
    code = "server_misconfigured"


class CsrfError(GatehouseError):
    status_code = 403
    code = "csrf_invalid"


class InfrastructureError(GatehouseError):
    """A store or signing failure. The real cause is logged, not returned."""

    status_code = 503
    code = "service_unavailable"

    def __init__(self, message: str = "Service temporarily unavailable.") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Store-level errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    pass


class DuplicateEmailError(StoreError):
    """Raised by create_user() when the unique email index rejects the insert."""


class StoreUnavailableError(StoreError):
    """Raised when the backing database cannot be reached or the query fails."""
