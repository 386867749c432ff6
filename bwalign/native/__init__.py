"""
Native BWA bindings.
"""

from bwalign.native.bindings import (
    BwaLibrary,
    load_library,
    BWA_IDX_ALL,
    MEM_F_NO_MULTI,
)

__all__ = ['BwaLibrary', 'load_library', 'BWA_IDX_ALL', 'MEM_F_NO_MULTI']
