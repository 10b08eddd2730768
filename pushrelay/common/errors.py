"""Error types surfaced by both services as JSON error responses."""


class RelayError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidPayload(RelayError):
    """Request body is missing a required field or is not valid JSON."""

    status_code = 400


class NotFound(RelayError):
    """A lookup key from the request matched no row."""

    status_code = 404


class MethodNotAllowed(RelayError):
    status_code = 405


class DatastoreError(RelayError):
    """A database read or write failed (distinct from an empty result)."""

    status_code = 500


class PushGatewayError(RelayError):
    """The push gateway call failed outright or returned an unusable body."""

    status_code = 502

    def __init__(self, message: str, details: str | None = None, status: int | None = None) -> None:
        super().__init__(message, details)
        self.status = status
