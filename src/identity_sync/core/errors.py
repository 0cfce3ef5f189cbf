"""Error taxonomy for the identity synchronization engine.

Every error carries a stable ``code`` (reported in per-item results) and the
HTTP status the API answers with when the error reaches a single-item
endpoint.
"""


class SyncError(Exception):
    """Base class for synchronization failures."""

    code = "sync_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SyncError):
    """A counterpart record or identity is missing where one is required."""

    code = "not_found"
    status_code = 404


class ConflictError(SyncError):
    """A uniqueness rule (external id or email) would be violated."""

    code = "conflict"
    status_code = 409


class ProviderUnavailableError(SyncError):
    """The external provider timed out or could not be reached."""

    code = "provider_unavailable"
    status_code = 503


class ValidationError(SyncError):
    """A malformed event or identity payload."""

    code = "validation_error"
    status_code = 400


class UnconfiguredError(SyncError):
    """The engine was invoked before provider credentials were set up."""

    code = "unconfigured"
    status_code = 503

    def __init__(self, message: str = "Identity provider is not configured"):
        super().__init__(message)


def error_code_for(exc: BaseException) -> str:
    """Stable error code for any exception caught while syncing one item."""
    if isinstance(exc, SyncError):
        return exc.code
    return SyncError.code
