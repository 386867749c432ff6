"""
bwalign: in-process BWA-MEM paired-end alignment returning pysam records.
"""

__version__ = "0.1.0"

from .core.errors import (
    BwalignError,
    NativeLibraryError,
    NativeAllocationFailure,
    ReferenceLoadError,
    ReferenceClosedError,
    ReferenceInUseError,
    RecordParseError,
    ConfigurationError,
)
from .core.config import Config, setup_logging
from .alignment import (
    AlignmentParameters,
    PairedEndStatistics,
    Orientation,
    OrientationStats,
    ReferenceIndex,
    HeaderDictionary,
    AlignmentSession,
)
from .native.bindings import load_library

__all__ = [
    "AlignmentSession",
    "AlignmentParameters",
    "PairedEndStatistics",
    "Orientation",
    "OrientationStats",
    "ReferenceIndex",
    "HeaderDictionary",
    "Config",
    "setup_logging",
    "load_library",
    "BwalignError",
    "NativeLibraryError",
    "NativeAllocationFailure",
    "ReferenceLoadError",
    "ReferenceClosedError",
    "ReferenceInUseError",
    "RecordParseError",
    "ConfigurationError",
]
