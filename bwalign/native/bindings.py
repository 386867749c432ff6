"""
ctypes bindings for the prebuilt BWA shared library.

Only the entry points the alignment session needs are bound:

    mem_opt_init        default mem_opt_t (malloc'd, caller frees)
    bwa_fill_scmat      scoring matrix from match/mismatch scores
    bwa_idx_load        load an index by path prefix
    bwa_idx_destroy     release a loaded index
    mem_process_seq_pe  align one read pair, writing SAM text to bseq1_t.sam

The structure layouts mirror bwamem.h, bwa.h and bntseq.h. Calls made through
ctypes release the GIL, so several threads may run the aligner at once.
"""
import ctypes
import ctypes.util
import functools
import logging
import os
from typing import Optional

from bwalign.core.errors import NativeAllocationFailure, NativeLibraryError

logger = logging.getLogger(__name__)

LIBRARY_ENV_VAR = "BWALIGN_LIBBWA"

# bwa_idx_load capability mask
BWA_IDX_BWT = 0x1
BWA_IDX_BNS = 0x2
BWA_IDX_PAC = 0x4
BWA_IDX_ALL = 0x7

# mem_opt_t.flag bits
MEM_F_PE = 0x2
MEM_F_NOPAIRING = 0x4
MEM_F_ALL = 0x8
MEM_F_NO_MULTI = 0x10
MEM_F_NO_RESCUE = 0x20
MEM_F_REF_HDR = 0x100
MEM_F_SOFTCLIP = 0x200
MEM_F_SMARTPE = 0x400
MEM_F_PRIMARY5 = 0x800
MEM_F_KEEP_SUPP_MAPQ = 0x1000


class MemOpt(ctypes.Structure):
    """mem_opt_t"""
    _fields_ = [
        ("a", ctypes.c_int),
        ("b", ctypes.c_int),
        ("o_del", ctypes.c_int),
        ("e_del", ctypes.c_int),
        ("o_ins", ctypes.c_int),
        ("e_ins", ctypes.c_int),
        ("pen_unpaired", ctypes.c_int),
        ("pen_clip5", ctypes.c_int),
        ("pen_clip3", ctypes.c_int),
        ("w", ctypes.c_int),
        ("zdrop", ctypes.c_int),
        ("max_mem_intv", ctypes.c_uint64),
        ("T", ctypes.c_int),
        ("flag", ctypes.c_int),
        ("min_seed_len", ctypes.c_int),
        ("min_chain_weight", ctypes.c_int),
        ("max_chain_extend", ctypes.c_int),
        ("split_factor", ctypes.c_float),
        ("split_width", ctypes.c_int),
        ("max_occ", ctypes.c_int),
        ("max_chain_gap", ctypes.c_int),
        ("n_threads", ctypes.c_int),
        ("chunk_size", ctypes.c_int),
        ("mask_level", ctypes.c_float),
        ("drop_ratio", ctypes.c_float),
        ("XA_drop_ratio", ctypes.c_float),
        ("mask_level_redun", ctypes.c_float),
        ("mapQ_coef_len", ctypes.c_float),
        ("mapQ_coef_fac", ctypes.c_int),
        ("max_ins", ctypes.c_int),
        ("max_matesw", ctypes.c_int),
        ("max_XA_hits", ctypes.c_int),
        ("max_XA_hits_alt", ctypes.c_int),
        ("mat", ctypes.c_int8 * 25),
    ]


class MemPeStat(ctypes.Structure):
    """mem_pestat_t"""
    _fields_ = [
        ("low", ctypes.c_int),
        ("high", ctypes.c_int),
        ("failed", ctypes.c_int),
        ("avg", ctypes.c_double),
        ("std", ctypes.c_double),
    ]


MemPeStatTable = MemPeStat * 4


class Bseq1(ctypes.Structure):
    """bseq1_t

    ``sam`` is kept as a raw pointer: the aligner fills it with a malloc'd
    string that has to be handed back to ``free``.
    """
    _fields_ = [
        ("l_seq", ctypes.c_int),
        ("id", ctypes.c_int),
        ("name", ctypes.POINTER(ctypes.c_char)),
        ("comment", ctypes.POINTER(ctypes.c_char)),
        ("seq", ctypes.POINTER(ctypes.c_char)),
        ("qual", ctypes.POINTER(ctypes.c_char)),
        ("sam", ctypes.c_void_p),
    ]


ReadPair = Bseq1 * 2


class BntAnn1(ctypes.Structure):
    """bntann1_t"""
    _fields_ = [
        ("offset", ctypes.c_int64),
        ("len", ctypes.c_int32),
        ("n_ambs", ctypes.c_int32),
        ("gi", ctypes.c_uint32),
        ("is_alt", ctypes.c_int32),
        ("name", ctypes.c_char_p),
        ("anno", ctypes.c_char_p),
    ]


class BntSeq(ctypes.Structure):
    """bntseq_t"""
    _fields_ = [
        ("l_pac", ctypes.c_int64),
        ("n_seqs", ctypes.c_int32),
        ("seed", ctypes.c_uint32),
        ("anns", ctypes.POINTER(BntAnn1)),
        ("n_holes", ctypes.c_int32),
        ("ambs", ctypes.c_void_p),
        ("fp_pac", ctypes.c_void_p),
    ]


class BwaIdx(ctypes.Structure):
    """bwaidx_t"""
    _fields_ = [
        ("bwt", ctypes.c_void_p),
        ("bns", ctypes.POINTER(BntSeq)),
        ("pac", ctypes.c_void_p),
        ("is_shm", ctypes.c_int),
        ("l_mem", ctypes.c_int64),
        ("mem", ctypes.c_void_p),
    ]


class BwaLibrary:
    """
    Call surface over a loaded libbwa.

    Wraps the raw CDLL so the rest of the package never touches argtypes or
    restypes, and so a stand-in with the same methods can be injected.
    """

    def __init__(self, lib: ctypes.CDLL, libc: ctypes.CDLL, path: str = ""):
        self.path = path
        self._lib = lib
        self._libc = libc
        self._declare()

    def _declare(self):
        try:
            self._lib.mem_opt_init.argtypes = []
            self._lib.mem_opt_init.restype = ctypes.POINTER(MemOpt)

            self._lib.bwa_fill_scmat.argtypes = [ctypes.c_int, ctypes.c_int, ctypes.POINTER(ctypes.c_int8)]
            self._lib.bwa_fill_scmat.restype = None

            self._lib.bwa_idx_load.argtypes = [ctypes.c_char_p, ctypes.c_int]
            self._lib.bwa_idx_load.restype = ctypes.POINTER(BwaIdx)

            self._lib.bwa_idx_destroy.argtypes = [ctypes.POINTER(BwaIdx)]
            self._lib.bwa_idx_destroy.restype = None

            self._lib.mem_process_seq_pe.argtypes = [
                ctypes.POINTER(MemOpt),
                ctypes.c_void_p,
                ctypes.POINTER(BntSeq),
                ctypes.c_void_p,
                ctypes.POINTER(Bseq1),
                ctypes.POINTER(MemPeStat),
            ]
            self._lib.mem_process_seq_pe.restype = None
        except AttributeError as e:
            raise NativeLibraryError(f"{self.path or 'libbwa'} is missing a required symbol: {e}") from e

        self._libc.free.argtypes = [ctypes.c_void_p]
        self._libc.free.restype = None

    def mem_opt_init(self) -> MemOpt:
        """Return a Python-owned copy of BWA's default options."""
        ptr = self._lib.mem_opt_init()
        if not ptr:
            raise NativeAllocationFailure("mem_opt_init() could not allocate default options")
        try:
            return MemOpt.from_buffer_copy(ptr.contents)
        finally:
            self.free(ptr)

    def fill_scmat(self, a: int, b: int, opt: MemOpt) -> None:
        self._lib.bwa_fill_scmat(a, b, opt.mat)

    def idx_load(self, path: str, which: int = BWA_IDX_ALL):
        """Load an index; returns None when BWA reports failure."""
        idx = self._lib.bwa_idx_load(os.fsencode(path), which)
        return idx if idx else None

    def idx_destroy(self, idx) -> None:
        self._lib.bwa_idx_destroy(idx)

    def process_seq_pe(self, opt: MemOpt, idx, reads: ReadPair, pes: MemPeStatTable) -> None:
        r = idx.contents
        self._lib.mem_process_seq_pe(ctypes.byref(opt), r.bwt, r.bns, r.pac, reads, pes)

    def free(self, ptr) -> None:
        self._libc.free(ptr)


def _resolve_library_path(path: Optional[str]) -> str:
    if path:
        return str(path)
    env_path = os.environ.get(LIBRARY_ENV_VAR)
    if env_path:
        return env_path
    found = ctypes.util.find_library("bwa")
    if not found:
        raise NativeLibraryError(
            f"Could not find libbwa; set {LIBRARY_ENV_VAR} to the shared library path"
        )
    return found


@functools.lru_cache(maxsize=None)
def _open_library(resolved: str) -> BwaLibrary:
    try:
        lib = ctypes.CDLL(resolved)
    except OSError as e:
        raise NativeLibraryError(f"Could not load libbwa from {resolved}: {e}") from e
    libc = ctypes.CDLL(ctypes.util.find_library("c"))
    logger.debug(f"Loaded libbwa from {resolved}")
    return BwaLibrary(lib, libc, path=resolved)


def load_library(path: Optional[str] = None) -> BwaLibrary:
    """
    Load (once per path) the BWA shared library.

    Args:
        path: Explicit library path. Falls back to $BWALIGN_LIBBWA, then to
            the system library search path.

    Raises:
        NativeLibraryError: If the library cannot be found or loaded
    """
    return _open_library(_resolve_library_path(path))
