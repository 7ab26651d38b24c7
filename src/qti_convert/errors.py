"""Exception types raised by the conversion pipeline."""

from __future__ import annotations


class QtiConvertError(Exception):
    """Base class for all conversion errors."""


class ConversionEngineError(QtiConvertError):
    """The structural conversion engine could not be loaded."""


class ConversionFailure(QtiConvertError):
    """A document could not be parsed or converted.

    Attributes:
        path: Package entry the failure belongs to, when known.
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class RootNotFoundError(QtiConvertError):
    """The root marker segment was not found in a resolved item path."""

    def __init__(self, path: str, marker: str):
        self.path = path
        self.marker = marker
        super().__init__(f"Root marker '{marker}' not found in path: {path}")


class NamespaceNotFound(QtiConvertError):
    """No namespace binding matches the requested target URI."""

    def __init__(self, target_uri: str):
        self.target_uri = target_uri
        super().__init__(f"No namespace declaration matches {target_uri}")
