"""
Alignment session: one loaded reference plus a frozen configuration,
callable from many threads.
"""
import ctypes
import logging
from contextlib import contextmanager
from typing import List, Optional, Tuple, Union

import pysam
from Bio.SeqRecord import SeqRecord

from bwalign.core.config import Config
from bwalign.core.errors import RecordParseError
from bwalign.alignment.header import HeaderDictionary
from bwalign.alignment.parameters import AlignmentParameters
from bwalign.alignment.pestat import PairedEndStatistics
from bwalign.alignment.reference import ReferenceIndex
from bwalign.native.bindings import Bseq1, BwaLibrary, ReadPair, load_library

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview, str]
Records = List[pysam.AlignedSegment]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return value.encode("ascii")
    return bytes(value)


def _pack_read(name: ctypes.Array, seq: ctypes.Array, qual: Optional[ctypes.Array], length: int) -> Bseq1:
    return Bseq1(
        l_seq=length,
        id=0,
        name=ctypes.cast(name, ctypes.POINTER(ctypes.c_char)),
        comment=None,
        seq=ctypes.cast(seq, ctypes.POINTER(ctypes.c_char)),
        qual=ctypes.cast(qual, ctypes.POINTER(ctypes.c_char)) if qual is not None else None,
        sam=None,
    )


@contextmanager
def _native_output(library: BwaLibrary, reads: ReadPair):
    """
    Yield the SAM text BWA wrote into each read, then free the native
    buffers exactly once, whether or not the caller's block raised.
    """
    pointers = [read.sam for read in reads]
    try:
        yield [ctypes.string_at(ptr) if ptr else b"" for ptr in pointers]
    finally:
        for read, ptr in zip(reads, pointers):
            if ptr:
                library.free(ptr)
            read.sam = None


def _phred33(record: SeqRecord) -> bytes:
    quals = record.letter_annotations.get("phred_quality")
    if quals is None:
        raise ValueError(f"Record {record.id} has no phred_quality annotation")
    return bytes(q + 33 for q in quals)


class AlignmentSession:
    """
    A BWA aligner. Carries everything required to align read pairs to a
    reference and decode the result into pysam records.

    The session has no threads of its own. ``align_read_pair`` may be called
    concurrently: the native alignment runs in parallel, only the decoding
    of each SAM line is serialized on the shared HeaderDictionary.
    """

    def __init__(self, reference: ReferenceIndex, parameters: AlignmentParameters,
                 pe_stats: PairedEndStatistics):
        self._reference = reference
        self._parameters = parameters
        self._pe_stats = pe_stats
        self._header = HeaderDictionary.from_reference(reference)
        # BWA takes both as const; one native copy serves every call
        self._opt = parameters.to_native()
        self._pes = pe_stats.to_native()

    @classmethod
    def from_path(cls, path, library: Optional[BwaLibrary] = None) -> "AlignmentSession":
        """Load a BWA reference and use default BWA settings and paired-end statistics."""
        library = library or load_library()
        reference = ReferenceIndex.open(path, library=library)
        return cls(reference, AlignmentParameters.default(library), PairedEndStatistics.default())

    @classmethod
    def from_config(cls, config: Config, library: Optional[BwaLibrary] = None) -> "AlignmentSession":
        """Build a session from a loaded Config."""
        library = library or load_library(config.get("library"))

        parameters = AlignmentParameters.default(library)
        scores = config.get("scores")
        if scores:
            parameters = parameters.set_scores(
                scores["match"], scores["mismatch"], scores["gap_open"], scores["gap_extend"]
            )
        clip = config.get("clip")
        if clip:
            parameters = parameters.set_clip_scores(clip["clip5"], clip["clip3"])
        if config.get("unpaired") is not None:
            parameters = parameters.set_unpaired(config.get("unpaired"))
        if config.get("no_multi"):
            parameters = parameters.set_no_multi()

        pe = config.get("paired_end")
        if pe:
            pe_stats = PairedEndStatistics.simple(pe["mean"], pe["std_dev"], pe["low"], pe["high"])
        else:
            pe_stats = PairedEndStatistics.default()

        reference = ReferenceIndex.open(config.get("reference"), library=library)
        logger.debug(f"Session parameters: {parameters!r}")
        return cls(reference, parameters, pe_stats)

    @property
    def reference(self) -> ReferenceIndex:
        return self._reference

    @property
    def parameters(self) -> AlignmentParameters:
        return self._parameters

    @property
    def pe_stats(self) -> PairedEndStatistics:
        return self._pe_stats

    @property
    def header(self) -> pysam.AlignmentHeader:
        return self._header.header

    def align_read_pair(self, name: BytesLike, seq1: BytesLike, qual1: Optional[BytesLike],
                        seq2: BytesLike, qual2: Optional[BytesLike]) -> Tuple[Records, Records]:
        """
        Align a read pair to the reference.

        Args:
            name: Read name shared by both mates
            seq1, qual1: First read sequence and Phred+33 qualities
            seq2, qual2: Second read sequence and Phred+33 qualities

        Returns:
            (records for read 1, records for read 2), each in the order BWA
            reported them. Split alignments yield several records per read.

        Raises:
            ValueError: If ``name`` contains a NUL byte
            ReferenceClosedError: If the reference index has been closed
            RecordParseError: If any output line fails to decode
        """
        name = _to_bytes(name)
        if b"\0" in name:
            raise ValueError(f"Read name contains a NUL byte: {name!r}")
        seq1, seq2 = _to_bytes(seq1), _to_bytes(seq2)

        # BWA rewrites seq and qual in place, so it only ever sees copies
        name_buf = ctypes.create_string_buffer(name)
        seq1_buf = ctypes.create_string_buffer(seq1)
        seq2_buf = ctypes.create_string_buffer(seq2)
        qual1_buf = ctypes.create_string_buffer(_to_bytes(qual1)) if qual1 is not None else None
        qual2_buf = ctypes.create_string_buffer(_to_bytes(qual2)) if qual2 is not None else None

        reads = ReadPair(
            _pack_read(name_buf, seq1_buf, qual1_buf, len(seq1)),
            _pack_read(name_buf, seq2_buf, qual2_buf, len(seq2)),
        )

        library = self._reference.library
        with self._reference.borrow() as idx:
            library.process_seq_pe(self._opt, idx, reads, self._pes)

        with _native_output(library, reads) as texts:
            try:
                recs1 = self._header.decode_lines(texts[0])
                recs2 = self._header.decode_lines(texts[1])
            except RecordParseError as e:
                logger.error(f"Failed to decode alignment of {name.decode(errors='replace')}: {e}")
                raise

        logger.debug(f"Aligned {name.decode(errors='replace')}: {len(recs1)} + {len(recs2)} records")
        return recs1, recs2

    def align_record_pair(self, rec1: SeqRecord, rec2: SeqRecord) -> Tuple[Records, Records]:
        """
        Align a pair of Biopython SeqRecords (e.g. parsed from FASTQ).

        The pair is named after ``rec1.id``; qualities come from the
        ``phred_quality`` letter annotation.
        """
        return self.align_read_pair(
            rec1.id,
            str(rec1.seq),
            _phred33(rec1),
            str(rec2.seq),
            _phred33(rec2),
        )

    def close(self):
        self._reference.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
