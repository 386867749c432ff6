"""
Loaded BWA reference index.

The index must have been built beforehand with ``bwa index``; pass the path
of the original reference FASTA (the index prefix) to ReferenceIndex.open.
"""
import logging
import os
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from bwalign.core.errors import ReferenceClosedError, ReferenceInUseError, ReferenceLoadError
from bwalign.native.bindings import BWA_IDX_ALL, BwaLibrary, load_library

logger = logging.getLogger(__name__)


def _destroy_index(library: BwaLibrary, idx, path: str):
    logger.info(f"Releasing BWA index {path}")
    library.idx_destroy(idx)


def _read_contigs(idx) -> Tuple[List[str], List[int]]:
    """Walk the bntseq_t annotation table once, in index order."""
    bns = idx.contents.bns.contents
    names = []
    lengths = []
    for i in range(bns.n_seqs):
        ann = bns.anns[i]
        names.append(ann.name.decode())
        lengths.append(int(ann.len))
    return names, lengths


class ReferenceIndex:
    """
    A BWA reference index to align against.

    Owns the native ``bwaidx_t`` handle, which is released exactly once:
    by ``close()``, on leaving a ``with`` block, or when the object is
    garbage collected. The contig table is read once at load time and its
    order defines the reference ids used in decoded records.
    """

    def __init__(self, path: str, idx, library: BwaLibrary,
                 contig_names: List[str], contig_lengths: List[int]):
        if len(contig_names) != len(contig_lengths):
            raise ValueError("contig_names and contig_lengths must have the same length")
        self._path = path
        self._idx = idx
        self._library = library
        self._contig_names = tuple(contig_names)
        self._contig_lengths = tuple(contig_lengths)
        self._lock = threading.Lock()
        self._active = 0
        self._finalizer = weakref.finalize(self, _destroy_index, library, idx, path)

    @classmethod
    def open(cls, path, library: Optional[BwaLibrary] = None) -> "ReferenceIndex":
        """
        Load a BWA index from disk.

        Args:
            path: Path of the indexed reference FASTA (the ``bwa index`` prefix)
            library: Loaded BWA library; the default library is used if omitted

        Raises:
            ReferenceLoadError: If BWA cannot load an index at ``path``
        """
        library = library or load_library()
        path = os.fspath(path)

        logger.info(f"Loading BWA index from {path}")
        idx = library.idx_load(path, BWA_IDX_ALL)
        if idx is None:
            logger.error(f"Failed to load BWA index from {path}")
            raise ReferenceLoadError(path)

        try:
            names, lengths = _read_contigs(idx)
        except (UnicodeDecodeError, ValueError) as e:
            library.idx_destroy(idx)
            raise ReferenceLoadError(path, f"couldn't read contig table of {path!r}: {e}") from e

        logger.info(f"Loaded {len(names)} contigs from {path}")
        return cls(path, idx, library, names, lengths)

    @property
    def path(self) -> str:
        return self._path

    @property
    def library(self) -> BwaLibrary:
        return self._library

    @property
    def contig_names(self) -> Tuple[str, ...]:
        return self._contig_names

    @property
    def contig_lengths(self) -> Tuple[int, ...]:
        return self._contig_lengths

    @property
    def n_contigs(self) -> int:
        return len(self._contig_names)

    def __len__(self) -> int:
        return self.n_contigs

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def build_header(self) -> Dict[str, Any]:
        """
        Build a header description with one SQ entry per contig.

        The mapping has the shape of ``pysam.AlignmentHeader.to_dict()``.
        """
        header: Dict[str, Any] = {}
        self.populate_header(header)
        return header

    def populate_header(self, header: Dict[str, Any]) -> Dict[str, Any]:
        """Append this reference's SQ entries, in contig order, to ``header``."""
        sq = header.setdefault("SQ", [])
        for name, length in zip(self._contig_names, self._contig_lengths):
            sq.append({"SN": name, "LN": length})
        return header

    def header_text(self) -> str:
        """SAM text of the SQ lines, without a trailing newline."""
        return "\n".join(
            f"@SQ\tSN:{name}\tLN:{length}"
            for name, length in zip(self._contig_names, self._contig_lengths)
        )

    @contextmanager
    def borrow(self):
        """
        Hold the native handle for the duration of one alignment call.

        Raises:
            ReferenceClosedError: If the handle has already been released
        """
        with self._lock:
            if self.closed:
                raise ReferenceClosedError(f"Reference index {self._path} is closed")
            self._active += 1
        try:
            yield self._idx
        finally:
            with self._lock:
                self._active -= 1

    def close(self):
        """
        Release the native index. Safe to call more than once.

        Raises:
            ReferenceInUseError: If alignment calls are still using the handle
        """
        with self._lock:
            if self._active:
                raise ReferenceInUseError(
                    f"Reference index {self._path} is in use by {self._active} alignment call(s)"
                )
            self._finalizer()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        state = "closed" if self.closed else f"{self.n_contigs} contigs"
        return f"ReferenceIndex({self._path!r}, {state})"
