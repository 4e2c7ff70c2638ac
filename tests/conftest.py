from dataclasses import replace
from typing import List, Optional, Tuple

import pytest

from duplexcons.models import RawRead


class ReadPairBuilder:
    """Builds raw reads the way they come out of an aligned BAM.

    Bases are given in alignment orientation: a read on the minus strand
    holds the reverse complement of what the sequencer produced.
    """

    def __init__(self, read_length: int = 10, base_quality: int = 30) -> None:
        self.read_length = read_length
        self.base_quality = base_quality
        self.reads: List[RawRead] = []

    def _quals(self, n: int) -> Tuple[int, ...]:
        return tuple([self.base_quality] * n)

    def add_pair(
        self,
        name: str,
        *,
        mi: Optional[str],
        bases1: Optional[str] = None,
        bases2: Optional[str] = None,
        strand1: str = "+",
        strand2: str = "-",
        unmapped2: bool = False,
    ) -> Tuple[RawRead, RawRead]:
        bases1 = bases1 if bases1 is not None else "A" * self.read_length
        bases2 = bases2 if bases2 is not None else "C" * self.read_length
        r1 = RawRead(
            name=name,
            bases=bases1,
            quals=self._quals(len(bases1)),
            is_paired=True,
            is_read1=True,
            is_reverse=strand1 == "-",
            molecule_tag=mi,
        )
        r2 = RawRead(
            name=name,
            bases=bases2,
            quals=self._quals(len(bases2)),
            is_paired=True,
            is_read1=False,
            is_reverse=strand2 == "-",
            molecule_tag=mi,
            is_unmapped=unmapped2,
        )
        self.reads.extend([r1, r2])
        return r1, r2

    def add_frag(self, name: str, *, mi: Optional[str], bases: Optional[str] = None) -> RawRead:
        bases = bases if bases is not None else "A" * self.read_length
        r = RawRead(
            name=name,
            bases=bases,
            quals=self._quals(len(bases)),
            is_paired=False,
            is_read1=False,
            is_reverse=False,
            molecule_tag=mi,
        )
        self.reads.append(r)
        return r

    def set_qual(self, name: str, *, read1: bool, index: int, qual: int) -> None:
        """Replace one quality value (in alignment orientation) of a built read."""
        for i, r in enumerate(self.reads):
            if r.name == name and r.is_paired and r.is_read1 == read1:
                quals = list(r.quals)
                quals[index] = qual
                self.reads[i] = replace(r, quals=tuple(quals))
                return
        raise KeyError(name)

    def add_duplex(self, name: str, *, ab_bases=("AAAAAAAAAA", "CCCCCCCCCC"), ba_bases=None) -> None:
        """One /A pair (R1 +, R2 -) and one complementary /B pair (R1 -, R2 +)."""
        self.add_pair(f"{name}a", mi="foo/A", bases1=ab_bases[0], bases2=ab_bases[1])
        ba = ba_bases if ba_bases is not None else (ab_bases[1], ab_bases[0])
        self.add_pair(f"{name}b", mi="foo/B", bases1=ba[0], bases2=ba[1], strand1="-", strand2="+")


@pytest.fixture
def make_builder():
    return ReadPairBuilder
