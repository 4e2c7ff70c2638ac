from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Sequence, Tuple

from .models import OrientedRead, SingleStrandConsensus
from .utils import (
    BASES,
    MIN_PHRED,
    NO_CALL,
    error_prob_to_phred,
    phred_to_error_prob,
    probability_of_error_two_trials,
)

logger = logging.getLogger(__name__)

# Log-likelihood differences below this are treated as an exact tie.
_TIE_TOLERANCE = 1e-9


@lru_cache(maxsize=None)
def _observation_log_terms(qual: int, error_rate_post: int) -> Tuple[float, float]:
    """(ln P(obs | true base == obs), ln P(obs | true base == other)) for one raw base.

    The raw base error is combined with the post-attachment error rate, which
    models errors that arise independently in each read after the molecular
    label was attached.
    """
    e = probability_of_error_two_trials(phred_to_error_prob(qual), phred_to_error_prob(error_rate_post))
    return math.log1p(-e), math.log(e / 3.0)


def call_from_likelihoods(likelihoods: Sequence[float], error_rate_pre: int) -> Tuple[str, int]:
    """Pick the most likely base and its Phred quality from per-base log-likelihoods.

    An exact tie between the two best candidates is a no-call. The posterior
    error of the winner is combined with the pre-attachment error rate, so a
    single strand group can never be more confident than that rate no matter
    how many correlated reads it holds.
    """
    order = sorted(range(len(likelihoods)), key=lambda j: likelihoods[j], reverse=True)
    best, runner_up = order[0], order[1]
    if likelihoods[best] - likelihoods[runner_up] <= _TIE_TOLERANCE:
        return NO_CALL, MIN_PHRED

    # Posterior error relative to the winner keeps precision at high depth.
    others = sum(math.exp(likelihoods[j] - likelihoods[best]) for j in order[1:])
    p_error = others / (1.0 + others)
    p_error = probability_of_error_two_trials(p_error, phred_to_error_prob(error_rate_pre))
    return BASES[best], error_prob_to_phred(p_error)


@dataclass(frozen=True)
class SingleStrandConsensusCaller:
    """Per-base consensus from the reads of one strand group in one frame.

    Parameters
    ----------
    min_input_base_quality:
        Raw bases below this Phred quality are excluded from voting and counts.
    error_rate_pre_attachment:
        Phred-scaled rate of errors shared by all reads of the group (arising
        before the molecular label was attached); caps consensus quality.
    error_rate_post_attachment:
        Phred-scaled rate of errors arising independently in each read.
    """

    min_input_base_quality: int
    error_rate_pre_attachment: int
    error_rate_post_attachment: int

    def is_usable(self, base: str, qual: int) -> bool:
        # Anything outside A/C/G/T (N, IUPAC codes) is a no-call.
        return base in BASES and qual >= self.min_input_base_quality

    def call(self, reads: Sequence[OrientedRead], length: int) -> SingleStrandConsensus:
        """Build the consensus over positions ``[0, length)``.

        ``length`` must not exceed the length of any read in ``reads``.
        """
        bases: List[str] = []
        quals: List[int] = []
        depths: List[int] = []
        excluded: List[int] = []
        base_counts: List[Tuple[int, int, int, int]] = []

        for i in range(length):
            likelihoods = [0.0, 0.0, 0.0, 0.0]
            counts = [0, 0, 0, 0]
            n_excluded = 0
            for read in reads:
                base = read.bases[i]
                qual = read.quals[i]
                if not self.is_usable(base, qual):
                    n_excluded += 1
                    continue
                idx = BASES.index(base)
                ln_match, ln_mismatch = _observation_log_terms(qual, self.error_rate_post_attachment)
                for j in range(4):
                    likelihoods[j] += ln_match if j == idx else ln_mismatch
                counts[idx] += 1

            depth = sum(counts)
            if depth == 0:
                call, qual = NO_CALL, MIN_PHRED
            else:
                call, qual = call_from_likelihoods(likelihoods, self.error_rate_pre_attachment)

            bases.append(call)
            quals.append(qual)
            depths.append(depth)
            excluded.append(n_excluded)
            base_counts.append((counts[0], counts[1], counts[2], counts[3]))

        return SingleStrandConsensus(
            bases="".join(bases),
            quals=tuple(quals),
            depths=tuple(depths),
            excluded=tuple(excluded),
            base_counts=tuple(base_counts),
            read_count=len(reads),
        )
