class WgiError(Exception):
    """Base class for errors raised by wgi."""


class MalformedEventError(WgiError, ValueError):
    """A required field of an event or response envelope is missing or has the wrong type."""

    def __init__(self, field: str, message: str = "") -> None:
        self.field = field
        super().__init__(message or f"Malformed event: missing or invalid '{field}'")


class FunctionNotFoundError(WgiError):
    """No function config exists under the given name."""


class MalformedOutputError(WgiError, ValueError):
    """An external function wrote output that cannot be read as a response."""
