"""Exceptions raised by oaskit operations."""


class OaskitError(Exception):
    """Base class for all oaskit errors."""


class InvalidReferenceError(OaskitError, ValueError):
    """A ``$ref`` string could not be parsed."""


class ConfigurationError(OaskitError, ValueError):
    """Options passed to an operation are invalid."""


class OperationCancelled(OaskitError):
    """The caller cancelled a running operation."""


class ResolutionError(OaskitError):
    """A reference could not be resolved.

    Attributes:
        reference: The ``$ref`` value that failed
        cause: The underlying error (I/O, HTTP, parse or missing pointer)
    """

    def __init__(self, reference: str, cause: Exception | str):
        self.reference = reference
        self.cause = cause
        super().__init__(f"failed to resolve reference {reference!r}: {cause}")


class LocalizeWriteError(OaskitError):
    """A localized file could not be written.

    Attributes:
        path: Target path of the failed write
        cause: The underlying error
    """

    def __init__(self, path: str, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"failed to write localized file {path}: {cause}")
