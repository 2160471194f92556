"""api-ex errors - typed failures surfaced to the CLI layer."""


class ApiExError(Exception):
    """Base error. ``exit_code`` is what the CLI exits with."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class ValidationError(ApiExError):
    """Malformed caller input, detected before any storage or network I/O."""


class ConfigurationError(ApiExError):
    """A referenced environment, saved request or config value is unusable."""


class NotFoundError(ConfigurationError):
    """A named entity that must exist for the operation does not."""


class NetworkError(ApiExError):
    """Anything in the transport path: timeout, unreachable host, other failure."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        method: str | None = None,
        timeout_ms: int | None = None,
    ):
        super().__init__(message, exit_code=2)
        self.url = url
        self.method = method
        self.timeout_ms = timeout_ms


class StorageError(ApiExError):
    """Backing file unreadable or unwritable. Absence is not an error."""

    def __init__(self, message: str, path=None):
        super().__init__(message, exit_code=2)
        self.path = path
