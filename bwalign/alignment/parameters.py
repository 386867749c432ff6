"""
BWA-MEM scoring and behaviour parameters.
"""
from typing import Optional, Tuple

from bwalign.native.bindings import BwaLibrary, MemOpt, MEM_F_NO_MULTI, load_library


class AlignmentParameters:
    """
    Immutable wrapper around a native ``mem_opt_t``.

    Instances are built from BWA's defaults and refined through setters that
    each return a new AlignmentParameters, leaving the receiver untouched:

        params = (AlignmentParameters.default()
                  .set_scores(1, 4, 6, 1)
                  .set_clip_scores(5, 5)
                  .set_no_multi())

    The scoring matrix is always rebuilt by the native ``bwa_fill_scmat``
    whenever the match or mismatch score changes.
    """

    def __init__(self, opt: MemOpt, library: BwaLibrary):
        self._opt = opt
        self._library = library

    @classmethod
    def default(cls, library: Optional[BwaLibrary] = None) -> "AlignmentParameters":
        """
        Create parameters from BWA's native defaults.

        Raises:
            NativeAllocationFailure: If the native initializer returns NULL
        """
        library = library or load_library()
        return cls(library.mem_opt_init(), library)

    def _copy(self) -> MemOpt:
        return MemOpt.from_buffer_copy(self._opt)

    def set_scores(self, match: int, mismatch: int, gap_open: int, gap_extend: int) -> "AlignmentParameters":
        """
        Set match/mismatch scores and gap penalties.

        Gap open and extend are applied to both insertions and deletions.
        Values are passed through to BWA unchecked.
        """
        opt = self._copy()
        opt.a = match
        opt.b = mismatch
        opt.o_del = gap_open
        opt.o_ins = gap_open
        opt.e_del = gap_extend
        opt.e_ins = gap_extend
        self._library.fill_scmat(match, mismatch, opt)
        return AlignmentParameters(opt, self._library)

    def set_clip_scores(self, clip5: int, clip3: int) -> "AlignmentParameters":
        """Set clipping score penalties."""
        opt = self._copy()
        opt.pen_clip5 = clip5
        opt.pen_clip3 = clip3
        return AlignmentParameters(opt, self._library)

    def set_unpaired(self, unpaired: int) -> "AlignmentParameters":
        """Set unpaired read penalty."""
        opt = self._copy()
        opt.pen_unpaired = unpaired
        return AlignmentParameters(opt, self._library)

    def set_no_multi(self) -> "AlignmentParameters":
        """Mark shorter splits as secondary."""
        opt = self._copy()
        opt.flag |= MEM_F_NO_MULTI
        return AlignmentParameters(opt, self._library)

    def has_flag(self, bit: int) -> bool:
        return bool(self._opt.flag & bit)

    def to_native(self) -> MemOpt:
        """Return a private copy of the native struct for a single call."""
        return self._copy()

    @property
    def library(self) -> BwaLibrary:
        return self._library

    @property
    def match_score(self) -> int:
        return self._opt.a

    @property
    def mismatch_penalty(self) -> int:
        return self._opt.b

    @property
    def gap_open_deletion(self) -> int:
        return self._opt.o_del

    @property
    def gap_open_insertion(self) -> int:
        return self._opt.o_ins

    @property
    def gap_extend_deletion(self) -> int:
        return self._opt.e_del

    @property
    def gap_extend_insertion(self) -> int:
        return self._opt.e_ins

    @property
    def clip5_penalty(self) -> int:
        return self._opt.pen_clip5

    @property
    def clip3_penalty(self) -> int:
        return self._opt.pen_clip3

    @property
    def unpaired_penalty(self) -> int:
        return self._opt.pen_unpaired

    @property
    def flag(self) -> int:
        return self._opt.flag

    @property
    def scoring_matrix(self) -> Tuple[int, ...]:
        return tuple(self._opt.mat)

    def _values(self) -> Tuple:
        values = []
        for name, _ in MemOpt._fields_:
            value = getattr(self._opt, name)
            values.append(tuple(value) if name == "mat" else value)
        return tuple(values)

    def __eq__(self, other):
        if not isinstance(other, AlignmentParameters):
            return NotImplemented
        return self._values() == other._values()

    __hash__ = None

    def __repr__(self):
        return (f"AlignmentParameters(a={self.match_score}, b={self.mismatch_penalty}, "
                f"o_del={self.gap_open_deletion}, e_del={self.gap_extend_deletion}, "
                f"o_ins={self.gap_open_insertion}, e_ins={self.gap_extend_insertion}, "
                f"clip5={self.clip5_penalty}, clip3={self.clip3_penalty}, "
                f"unpaired={self.unpaired_penalty}, flag={self.flag:#x})")
