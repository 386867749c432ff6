"""
Alignment session over a loaded BWA reference index.
"""

__all__ = [
    'AlignmentParameters',
    'PairedEndStatistics',
    'Orientation',
    'OrientationStats',
    'ReferenceIndex',
    'HeaderDictionary',
    'AlignmentSession',
]

from bwalign.alignment.parameters import AlignmentParameters
from bwalign.alignment.pestat import PairedEndStatistics, Orientation, OrientationStats
from bwalign.alignment.reference import ReferenceIndex
from bwalign.alignment.header import HeaderDictionary
from bwalign.alignment.session import AlignmentSession
