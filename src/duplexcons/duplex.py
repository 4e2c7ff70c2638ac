"""Duplex consensus calling for one source molecule.

The caller groups a molecule's raw read pairs by strand label, builds a
single-strand consensus for each label in each mate-role frame, and merges
the two single-strand consensuses into the duplex call. A molecule yields
either both consensus mates or nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .consensus import SingleStrandConsensusCaller
from .grouping import Frame, group_reads
from .models import DuplexConsensusRead, RawRead, SingleStrandConsensus
from .stats import annotate
from .utils import BASES, MAX_PHRED, MIN_PHRED, NO_CALL

logger = logging.getLogger(__name__)

DEFAULT_MIN_INPUT_BASE_QUALITY = 10
DEFAULT_ERROR_RATE_PRE_ATTACHMENT = 45
DEFAULT_ERROR_RATE_POST_ATTACHMENT = 40

REJECT_INSUFFICIENT_READS = "insufficient_reads"
REJECT_ZERO_LENGTH = "zero_length"


def expand_min_reads(values: Sequence[int]) -> Tuple[int, int, int]:
    """Expand 1-3 ``--min-reads`` values into (total, larger strand, smaller strand)."""
    vals = [int(v) for v in values]
    if not 1 <= len(vals) <= 3:
        raise ValueError("min_reads takes between one and three values.")
    while len(vals) < 3:
        vals.append(vals[-1])
    return vals[0], vals[1], vals[2]


def merge_position(
    a: str,
    qa: int,
    b: str,
    qb: int,
    *,
    error_rate_post: int,
    single_strand_bases: bool = False,
) -> Tuple[str, str, int]:
    """Merge one position of the ab and ba single-strand consensuses.

    Returns ``(unmasked_call, call, qual)``. The unmasked call is the base the
    evidence points to before any masking to N and is what raw-read errors
    are counted against.
    """
    a_called = a in BASES
    b_called = b in BASES

    if a_called and b_called:
        if a == b:
            raw = a
            # Summing Phred multiplies error probabilities; the shallower strand
            # plus the post-attachment rate bounds what the pair can reach.
            qual = min(qa + qb, error_rate_post + min(qa, qb), MAX_PHRED)
        elif qa > qb:
            raw, qual = a, qa - qb
        elif qb > qa:
            raw, qual = b, qb - qa
        else:
            raw, qual = NO_CALL, MIN_PHRED
    elif a_called or b_called:
        raw, qual = (a, qa) if a_called else (b, qb)
        if not single_strand_bases:
            return raw, NO_CALL, MIN_PHRED
        qual = min(qual, error_rate_post)
    else:
        return NO_CALL, NO_CALL, MIN_PHRED

    if raw == NO_CALL or qual <= MIN_PHRED:
        return raw, NO_CALL, MIN_PHRED
    return raw, raw, qual


@dataclass(frozen=True)
class MergedConsensus:
    bases: str
    quals: Tuple[int, ...]
    unmasked: str


@dataclass(frozen=True)
class DuplexMerger:
    error_rate_post_attachment: int
    single_strand_bases: bool = False

    def merge(self, ab: SingleStrandConsensus, ba: SingleStrandConsensus) -> MergedConsensus:
        length = min(len(ab), len(ba))
        bases: List[str] = []
        quals: List[int] = []
        unmasked: List[str] = []
        for i in range(length):
            raw, call, qual = merge_position(
                ab.bases[i],
                ab.quals[i],
                ba.bases[i],
                ba.quals[i],
                error_rate_post=self.error_rate_post_attachment,
                single_strand_bases=self.single_strand_bases,
            )
            unmasked.append(raw)
            bases.append(call)
            quals.append(qual)
        return MergedConsensus(bases="".join(bases), quals=tuple(quals), unmasked="".join(unmasked))


@dataclass(frozen=True)
class CallResult:
    """Outcome of calling one molecule: two consensus mates or a rejection reason."""

    molecule_id: Optional[str]
    reads: Tuple[DuplexConsensusRead, ...] = ()
    rejection: Optional[str] = None
    raw_reads: int = 0

    @property
    def ok(self) -> bool:
        return bool(self.reads)


@dataclass(frozen=True)
class DuplexConsensusCaller:
    """Immutable duplex consensus caller configuration.

    Instances hold no mutable state and can be shared across threads or
    pickled into worker processes.
    """

    min_input_base_quality: int = DEFAULT_MIN_INPUT_BASE_QUALITY
    error_rate_pre_attachment: int = DEFAULT_ERROR_RATE_PRE_ATTACHMENT
    error_rate_post_attachment: int = DEFAULT_ERROR_RATE_POST_ATTACHMENT
    min_reads: Tuple[int, int, int] = (1, 1, 1)
    single_strand_bases: bool = False
    ss_caller: SingleStrandConsensusCaller = field(init=False, repr=False, compare=False)
    merger: DuplexMerger = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.min_input_base_quality < 0:
            raise ValueError("min_input_base_quality must be >= 0")
        for name in ("error_rate_pre_attachment", "error_rate_post_attachment"):
            if not 0 < getattr(self, name) <= MAX_PHRED:
                raise ValueError(f"{name} must be a Phred score in (0, {MAX_PHRED}]")
        total, larger, smaller = self.min_reads
        if not total >= larger >= smaller >= 0:
            raise ValueError("min_reads must be given as total >= larger strand >= smaller strand >= 0")

        object.__setattr__(
            self,
            "ss_caller",
            SingleStrandConsensusCaller(
                min_input_base_quality=self.min_input_base_quality,
                error_rate_pre_attachment=self.error_rate_pre_attachment,
                error_rate_post_attachment=self.error_rate_post_attachment,
            ),
        )
        object.__setattr__(
            self,
            "merger",
            DuplexMerger(
                error_rate_post_attachment=self.error_rate_post_attachment,
                single_strand_bases=self.single_strand_bases,
            ),
        )

    def _has_enough_reads(self, ab_templates: int, ba_templates: int) -> bool:
        total, larger, smaller = self.min_reads
        return (
            ab_templates + ba_templates >= total
            and max(ab_templates, ba_templates) >= larger
            and min(ab_templates, ba_templates) >= smaller
        )

    def _call_frame(self, molecule_id: str, frame: Frame, length: int) -> DuplexConsensusRead:
        ab = self.ss_caller.call(frame.ab, length)
        ba = self.ss_caller.call(frame.ba, length)
        merged = self.merger.merge(ab, ba)
        return DuplexConsensusRead(
            molecule_id=molecule_id,
            is_read1=frame.is_read1,
            bases=merged.bases,
            quals=merged.quals,
            stats=annotate(ab, ba, merged.unmasked),
        )

    def call(self, reads: Iterable[RawRead]) -> CallResult:
        """Call the duplex consensus for the complete set of one molecule's raw reads."""
        reads = list(reads)
        grouped = group_reads(reads)
        molecule = grouped.molecule
        if molecule is None:
            logger.debug("Molecule %s rejected: %s", grouped.molecule_id, grouped.rejection)
            return CallResult(molecule_id=grouped.molecule_id, rejection=grouped.rejection, raw_reads=len(reads))

        if not self._has_enough_reads(molecule.ab.template_count, molecule.ba.template_count):
            return CallResult(
                molecule_id=molecule.molecule_id,
                rejection=REJECT_INSUFFICIENT_READS,
                raw_reads=len(reads),
            )

        if molecule.length == 0:
            return CallResult(molecule_id=molecule.molecule_id, rejection=REJECT_ZERO_LENGTH, raw_reads=len(reads))

        consensus = tuple(self._call_frame(molecule.molecule_id, frame, molecule.length) for frame in molecule.frames)
        return CallResult(molecule_id=molecule.molecule_id, reads=consensus, raw_reads=len(reads))

    def consensus_reads(self, reads: Iterable[RawRead]) -> List[DuplexConsensusRead]:
        """Zero or two consensus reads (first mate, then second mate) for one molecule."""
        return list(self.call(reads).reads)

    def call_many(self, molecules: Sequence[Sequence[RawRead]]) -> List[CallResult]:
        return [self.call(m) for m in molecules]
