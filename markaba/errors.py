"""Exception types raised by the refresh services and the scheduler."""


class MarkabaError(Exception):
    """Base class for every error this package raises on purpose."""


class RefreshError(MarkabaError):
    """A refresh cycle could not produce or store a new document."""

    def __init__(self, message: str, *, domain: str | None = None) -> None:
        super().__init__(message)
        self.domain = domain


class SourceUnavailable(RefreshError):
    """Network failure, timeout, or non-success status from the external source."""


class MalformedResponse(RefreshError):
    """The source answered, but the body is not the shape we expect."""


class StoreUnavailable(RefreshError):
    """The cache document could not be written."""


class DuplicateJobName(MarkabaError):
    """A job with this name is already registered and live."""


class UnknownJob(MarkabaError, KeyError):
    """No job is registered under this name."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown job"
