from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .utils import reverse_complement


@dataclass(frozen=True)
class RawRead:
    """One sequenced mate as handed to the consensus caller.

    Attributes
    ----------
    name:
        Template (query) name.
    bases:
        Read bases as stored in the alignment record, i.e. reverse complemented
        when ``is_reverse`` is set.
    quals:
        Phred base qualities, aligned with ``bases``.
    is_paired:
        Whether the read is one mate of a pair. Fragments never contribute.
    is_read1:
        First (True) or second (False) mate role. Meaningless for fragments.
    is_reverse:
        Whether the read was aligned to the reverse strand.
    molecule_tag:
        Raw ``<moleculeId>/<strandLabel>`` value, or None if the tag is absent.
    is_unmapped:
        Unmapped reads are not part of a mapped pair and are dropped.
    """

    name: str
    bases: str
    quals: Tuple[int, ...]
    is_paired: bool
    is_read1: bool
    is_reverse: bool
    molecule_tag: Optional[str]
    is_unmapped: bool = False

    @property
    def is_read2(self) -> bool:
        return self.is_paired and not self.is_read1

    def __len__(self) -> int:
        return len(self.bases)

    def sequencing_order(self) -> "OrientedRead":
        """Return bases/quals in the order the sequencer produced them."""
        if self.is_reverse:
            return OrientedRead(
                name=self.name,
                bases=reverse_complement(self.bases).upper(),
                quals=tuple(reversed(self.quals)),
            )
        return OrientedRead(name=self.name, bases=self.bases.upper(), quals=tuple(self.quals))


@dataclass(frozen=True)
class OrientedRead:
    """Bases and qualities of one raw read, in sequencing order."""

    name: str
    bases: str
    quals: Tuple[int, ...]

    def __len__(self) -> int:
        return len(self.bases)


@dataclass(frozen=True)
class SingleStrandConsensus:
    """Provisional consensus of one strand group within one mate-role frame.

    All tuples are aligned per position. ``base_counts[i]`` holds the number
    of surviving A/C/G/T observations at position ``i`` (in that order), and
    is what error counting is performed against once the duplex call is
    known.
    """

    bases: str
    quals: Tuple[int, ...]
    depths: Tuple[int, ...]
    excluded: Tuple[int, ...]
    base_counts: Tuple[Tuple[int, int, int, int], ...]
    read_count: int

    def __len__(self) -> int:
        return len(self.bases)


@dataclass(frozen=True)
class ConsensusStats:
    """Provenance attached to a duplex consensus read.

    Per-read fields mirror the RawReadCount / MinRawReadCount /
    RawReadErrorRate tag families (combined, ab and ba). Per-base tuples are
    the AbRawReadCount[], BaRawReadCount[], AbRawReadErrors[] and
    BaRawReadErrors[] arrays.
    """

    raw_read_count: int
    ab_raw_read_count: int
    ba_raw_read_count: int
    min_raw_read_count: int
    ab_min_raw_read_count: int
    ba_min_raw_read_count: int
    raw_read_error_rate: float
    ab_raw_read_error_rate: float
    ba_raw_read_error_rate: float
    ab_depths: Tuple[int, ...]
    ba_depths: Tuple[int, ...]
    ab_errors: Tuple[int, ...]
    ba_errors: Tuple[int, ...]


@dataclass(frozen=True)
class DuplexConsensusRead:
    """Final duplex consensus for one mate role, in sequencing order."""

    molecule_id: str
    is_read1: bool
    bases: str
    quals: Tuple[int, ...]
    stats: ConsensusStats

    @property
    def is_read2(self) -> bool:
        return not self.is_read1

    def __len__(self) -> int:
        return len(self.bases)
