"""Partition one molecule's raw reads into strand groups and mate-role frames.

Reads from the two strand labels of a duplex molecule were sequenced from
opposite physical strands. Once every read is put back into sequencing
order, the first mate of the ``ab`` group and the second mate of the ``ba``
group read the same physical strand in the same direction (and vice versa),
so they can be compared position by position. Each such pairing is a
*frame*, named after the mate role of its ``ab`` contribution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .models import OrientedRead, RawRead
from .molecule_id import parse_molecule_id

logger = logging.getLogger(__name__)

REJECT_NO_PAIRS = "no_pairs"
REJECT_SINGLE_STRAND = "single_strand"
REJECT_TOO_MANY_STRANDS = "too_many_strands"
REJECT_MISSING_MATE = "missing_mate"


@dataclass(frozen=True)
class StrandGroup:
    """Reads sharing one (moleculeId, strandLabel), split by mate role."""

    label: str
    read1s: Tuple[RawRead, ...]
    read2s: Tuple[RawRead, ...]

    @property
    def template_count(self) -> int:
        return len({r.name for r in self.read1s} | {r.name for r in self.read2s})


@dataclass(frozen=True)
class Frame:
    """Evidence for one output mate role, all in sequencing order."""

    is_read1: bool
    ab: Tuple[OrientedRead, ...]
    ba: Tuple[OrientedRead, ...]


@dataclass(frozen=True)
class GroupedMolecule:
    molecule_id: str
    ab: StrandGroup
    ba: StrandGroup
    frames: Tuple[Frame, Frame]

    @property
    def length(self) -> int:
        """Consensus length: the shortest raw read of the molecule, across both strands and mates."""
        return min(len(r) for frame in self.frames for r in frame.ab + frame.ba)


@dataclass(frozen=True)
class GroupingResult:
    molecule_id: Optional[str]
    molecule: Optional[GroupedMolecule]
    rejection: Optional[str] = None


def is_eligible(read: RawRead) -> bool:
    """Only mates of a mapped pair can contribute to a duplex call."""
    return read.is_paired and not read.is_unmapped


def _orient(reads: Iterable[RawRead]) -> Tuple[OrientedRead, ...]:
    return tuple(r.sequencing_order() for r in reads)


def _split_by_mate(label: str, reads: List[RawRead]) -> StrandGroup:
    return StrandGroup(
        label=label,
        read1s=tuple(r for r in reads if r.is_read1),
        read2s=tuple(r for r in reads if not r.is_read1),
    )


def group_reads(reads: Iterable[RawRead]) -> GroupingResult:
    """Group a single molecule's raw reads by strand label and mate role.

    Raises
    ------
    MalformedIdentifierError
        If any paired read lacks a well-formed molecule identifier.
    ValueError
        If the reads span more than one source molecule.
    """
    pairs = [r for r in reads if is_eligible(r)]
    if not pairs:
        return GroupingResult(molecule_id=None, molecule=None, rejection=REJECT_NO_PAIRS)

    parsed = [(parse_molecule_id(r.molecule_tag), r) for r in pairs]
    molecule_id = parsed[0][0][0]
    by_label: dict[str, List[RawRead]] = {}
    for (mid, label), r in parsed:
        if mid != molecule_id:
            raise ValueError(
                f"Reads from different molecules were grouped together: '{molecule_id}' and '{mid}'."
            )
        by_label.setdefault(label, []).append(r)

    if len(by_label) < 2:
        return GroupingResult(molecule_id=molecule_id, molecule=None, rejection=REJECT_SINGLE_STRAND)
    if len(by_label) > 2:
        logger.debug(
            "Molecule %s has %d strand labels (%s); skipping.",
            molecule_id,
            len(by_label),
            ",".join(sorted(by_label)),
        )
        return GroupingResult(molecule_id=molecule_id, molecule=None, rejection=REJECT_TOO_MANY_STRANDS)

    ab_label, ba_label = sorted(by_label)
    ab = _split_by_mate(ab_label, by_label[ab_label])
    ba = _split_by_mate(ba_label, by_label[ba_label])

    frame1 = Frame(is_read1=True, ab=_orient(ab.read1s), ba=_orient(ba.read2s))
    frame2 = Frame(is_read1=False, ab=_orient(ab.read2s), ba=_orient(ba.read1s))
    if not (frame1.ab and frame1.ba and frame2.ab and frame2.ba):
        return GroupingResult(molecule_id=molecule_id, molecule=None, rejection=REJECT_MISSING_MATE)

    return GroupingResult(
        molecule_id=molecule_id,
        molecule=GroupedMolecule(molecule_id=molecule_id, ab=ab, ba=ba, frames=(frame1, frame2)),
    )
