"""
Errors and configuration shared across bwalign.
"""

from bwalign.core.errors import (
    BwalignError,
    NativeLibraryError,
    NativeAllocationFailure,
    ReferenceLoadError,
    ReferenceClosedError,
    ReferenceInUseError,
    RecordParseError,
    ConfigurationError,
)
from bwalign.core.config import Config, setup_logging
