"""Error types shared by the stores, providers and managers."""

from typing import Optional


class DunbarError(Exception):
    """Base class for every error surfaced to the command line."""

    def wrap(self, context: str) -> "DunbarError":
        """Return an error of the same type with *context* prepended to the message."""
        wrapped = self.__class__.__new__(self.__class__)
        wrapped.__dict__.update(self.__dict__)
        wrapped.args = (f"{context}: {self}",)
        return wrapped


class NotFoundError(DunbarError):
    """The requested record does not exist."""


class PersistError(DunbarError):
    """Local disk or serialisation fault."""


class ProviderError(DunbarError):
    """A remote provider call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProviderWriteError(ProviderError):
    """The local write committed but pushing it to the provider failed."""


class ConfigError(DunbarError):
    """Local configuration is missing or invalid."""


class ValidationError(DunbarError):
    """User input was rejected; the prompt can be repeated."""
