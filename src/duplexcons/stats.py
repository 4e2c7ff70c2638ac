from __future__ import annotations

from typing import Sequence, Tuple

from .models import ConsensusStats, SingleStrandConsensus
from .utils import BASES, min_or_zero, safe_ratio


def count_errors(ss: SingleStrandConsensus, calls: str) -> Tuple[int, ...]:
    """Surviving raw bases of one strand group that disagree with ``calls``.

    ``calls`` are the duplex calls before masking; a no-call there has
    nothing to disagree with and counts zero errors.
    """
    errors = []
    for i, call in enumerate(calls):
        if call not in BASES:
            errors.append(0)
            continue
        errors.append(ss.depths[i] - ss.base_counts[i][BASES.index(call)])
    return tuple(errors)


def annotate(
    ab: SingleStrandConsensus,
    ba: SingleStrandConsensus,
    unmasked_calls: str,
) -> ConsensusStats:
    """Derive per-base and per-read provenance for one duplex consensus read."""
    n = len(unmasked_calls)
    ab_depths = ab.depths[:n]
    ba_depths = ba.depths[:n]
    ab_errors = count_errors(ab, unmasked_calls)
    ba_errors = count_errors(ba, unmasked_calls)
    depths: Sequence[int] = [a + b for a, b in zip(ab_depths, ba_depths)]

    return ConsensusStats(
        raw_read_count=ab.read_count + ba.read_count,
        ab_raw_read_count=ab.read_count,
        ba_raw_read_count=ba.read_count,
        min_raw_read_count=min_or_zero(depths),
        ab_min_raw_read_count=min_or_zero(ab_depths),
        ba_min_raw_read_count=min_or_zero(ba_depths),
        raw_read_error_rate=safe_ratio(sum(ab_errors) + sum(ba_errors), sum(depths)),
        ab_raw_read_error_rate=safe_ratio(sum(ab_errors), sum(ab_depths)),
        ba_raw_read_error_rate=safe_ratio(sum(ba_errors), sum(ba_depths)),
        ab_depths=tuple(ab_depths),
        ba_depths=tuple(ba_depths),
        ab_errors=ab_errors,
        ba_errors=ba_errors,
    )
