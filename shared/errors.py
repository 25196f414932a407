"""Error taxonomy shared by the store, the service and the HTTP layer."""


class TrackerError(Exception):
    """Base error. ``status_code`` is the HTTP status reported to clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    """Missing or invalid input."""
    status_code = 400


class ConflictError(TrackerError):
    """Duplicate value for a unique key."""
    status_code = 409


class NotFoundError(TrackerError):
    """Unknown identifier."""
    status_code = 404


class StoreError(TrackerError):
    """Storage backend unavailable or holding malformed data."""
    status_code = 500


class ExternalServiceError(TrackerError):
    """Third-party lookup failed."""
    status_code = 502
