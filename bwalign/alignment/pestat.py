"""
Paired-end insert size statistics used by BWA to score and rescue pairs.
"""
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple

from bwalign.native.bindings import MemPeStat, MemPeStatTable


class Orientation(IntEnum):
    """Relative read orientation; values are BWA's mem_pestat_t slot order."""
    FF = 0
    FR = 1
    RF = 2
    RR = 3


@dataclass(frozen=True)
class OrientationStats:
    """Insert size distribution for one orientation class."""
    failed: bool
    low: int
    high: int
    mean: float
    std_dev: float

    def to_native(self) -> MemPeStat:
        return MemPeStat(
            low=self.low,
            high=self.high,
            failed=1 if self.failed else 0,
            avg=self.mean,
            std=self.std_dev,
        )


# Slot value telling BWA not to attempt rescue in this orientation
FAILED_ORIENTATION = OrientationStats(failed=True, low=0, high=0, mean=0.0, std_dev=100.0)


class PairedEndStatistics:
    """
    Four-slot insert size table, one slot per Orientation.

    Immutable after construction; ``to_native`` builds a fresh
    ``mem_pestat_t[4]`` for each alignment call.
    """

    def __init__(self, slots: Tuple[OrientationStats, OrientationStats, OrientationStats, OrientationStats]):
        if len(slots) != len(Orientation):
            raise ValueError(f"Expected {len(Orientation)} orientation slots, got {len(slots)}")
        self._slots = tuple(slots)

    @classmethod
    def simple(cls, mean: float, std_dev: float, low: int, high: int) -> "PairedEndStatistics":
        """
        Statistics for standard forward-reverse pairs, as produced by TruSeq,
        Nextera or Chromium Genome library preparations.

        Only the FR slot is active; the other orientations are marked failed.
        """
        slots = [FAILED_ORIENTATION] * len(Orientation)
        slots[Orientation.FR] = OrientationStats(
            failed=False,
            low=low,
            high=high,
            mean=float(mean),
            std_dev=float(std_dev),
        )
        return cls(tuple(slots))

    @classmethod
    def default(cls) -> "PairedEndStatistics":
        return cls.simple(200.0, 100.0, 35, 600)

    def __getitem__(self, orientation: Orientation) -> OrientationStats:
        return self._slots[Orientation(orientation)]

    def __iter__(self):
        return iter(self._slots)

    def __eq__(self, other):
        if not isinstance(other, PairedEndStatistics):
            return NotImplemented
        return self._slots == other._slots

    def __hash__(self):
        return hash(self._slots)

    def active_orientations(self) -> List[Orientation]:
        return [o for o in Orientation if not self._slots[o].failed]

    def to_native(self) -> MemPeStatTable:
        return MemPeStatTable(*(slot.to_native() for slot in self._slots))

    def __repr__(self):
        return f"PairedEndStatistics({list(self._slots)!r})"
