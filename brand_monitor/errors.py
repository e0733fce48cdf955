"""Exception hierarchy for the brand monitoring core."""


class MonitoringError(Exception):
    """Base class for every error raised by brand_monitor."""


class RegistryError(MonitoringError):
    """A call to an external registry or scan source failed."""


class TransportError(RegistryError):
    """Network failure, timeout or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(RegistryError):
    """The registry answered with a payload we could not read."""


class UnsupportedTypeError(MonitoringError):
    """No detector is registered for a monitoring item's type."""


class ValidationError(MonitoringError):
    """A monitoring item is structurally unusable (e.g. no keywords)."""


class ItemNotFoundError(MonitoringError):
    """The requested monitoring item or alert does not exist."""
