"""
Decoding of BWA's SAM text output into pysam records.
"""
import logging
import threading
from typing import Any, Dict, List

import pysam

from bwalign.core.errors import RecordParseError

logger = logging.getLogger(__name__)

# QNAME FLAG RNAME POS MAPQ CIGAR RNEXT PNEXT TLEN SEQ QUAL
SAM_MANDATORY_FIELDS = 11
RNAME_FIELD = 2
RNEXT_FIELD = 6


class HeaderDictionary:
    """
    Name-to-reference-id table used to decode SAM lines.

    Wraps a ``pysam.AlignmentHeader``. htslib updates the header's internal
    lookup state while parsing a record, so every decode on one dictionary
    runs under a lock. The lock covers a single line only; callers should
    never hold it across the alignment itself.
    """

    def __init__(self, header: Dict[str, Any]):
        self._header = pysam.AlignmentHeader.from_dict(header)
        self._lock = threading.Lock()

    @classmethod
    def from_reference(cls, reference) -> "HeaderDictionary":
        return cls(reference.build_header())

    @property
    def header(self) -> pysam.AlignmentHeader:
        return self._header

    @property
    def references(self):
        return self._header.references

    def reference_id(self, name: str) -> int:
        """Positional id of contig ``name``, or -1 if unknown."""
        with self._lock:
            return self._header.get_tid(name)

    def reference_name(self, tid: int) -> str:
        return self._header.get_reference_name(tid)

    def decode_line(self, line: bytes) -> pysam.AlignedSegment:
        """
        Parse one SAM line into an AlignedSegment.

        Raises:
            RecordParseError: If the line is malformed or names a contig
                that is not in the dictionary
        """
        fields = line.split(b"\t")
        if len(fields) < SAM_MANDATORY_FIELDS:
            raise RecordParseError(
                f"SAM line has {len(fields)} fields, expected at least {SAM_MANDATORY_FIELDS}", line
            )
        try:
            text = line.decode("ascii")
        except UnicodeDecodeError as e:
            raise RecordParseError(f"SAM line is not ASCII: {e}", line) from e

        with self._lock:
            try:
                record = pysam.AlignedSegment.fromstring(text, self._header)
            except ValueError as e:
                raise RecordParseError(f"Could not parse SAM line: {e}", line) from e
            # htslib maps unknown names to -1 instead of failing
            for name in (fields[RNAME_FIELD], fields[RNEXT_FIELD]):
                if name in (b"*", b"="):
                    continue
                if self._header.get_tid(name.decode("ascii")) < 0:
                    raise RecordParseError(f"Unknown reference name {name.decode('ascii')!r}", line)
        return record

    def decode_lines(self, text: bytes) -> List[pysam.AlignedSegment]:
        """Decode every non-empty line of ``text``, preserving order."""
        return [self.decode_line(line) for line in text.split(b"\n") if line]
