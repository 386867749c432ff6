"""
Exception types raised by bwalign.

Every failure surfaces to the caller as a subclass of BwalignError; nothing
is retried or swallowed inside the package.
"""
from typing import Optional


class BwalignError(Exception):
    """Base class for all bwalign errors."""
    pass


class NativeLibraryError(BwalignError):
    """The BWA shared library could not be located or loaded."""
    pass


class NativeAllocationFailure(BwalignError, MemoryError):
    """The native default-parameter initializer returned NULL.

    This means the process is out of memory; there is no recovery path.
    """
    pass


class ReferenceLoadError(BwalignError):
    """A BWA index could not be loaded from the given path."""

    def __init__(self, path, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"couldn't load reference: {path!r}")


class ReferenceClosedError(BwalignError):
    """The reference index has already released its native handle."""
    pass


class ReferenceInUseError(BwalignError):
    """The reference index was closed while alignment calls still held it."""
    pass


class RecordParseError(BwalignError, ValueError):
    """A line of native SAM output could not be decoded into a record."""

    def __init__(self, message: str, line: bytes = b""):
        self.line = line
        super().__init__(message)


class ConfigurationError(BwalignError):
    """Custom exception for configuration errors."""
    pass
