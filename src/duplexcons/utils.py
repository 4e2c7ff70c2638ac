from __future__ import annotations

import gzip
import json
import logging
import math
from pathlib import Path
from typing import Any, Iterable, Sequence, TextIO, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CALL = "N"
BASES = "ACGT"

# Phred range representable in SAM quality strings.
MIN_PHRED = 2
MAX_PHRED = 93

# Tolerance applied before flooring a Phred score so that values such as
# 44.9999999 (from 10 ** -4.5 round-tripping) land on 45.
_PHRED_PRECISION = 0.001

_COMPLEMENT = str.maketrans("ACGTNacgtn", "TGCANtgcan")


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def phred_to_error_prob(q: int) -> float:
    # Guard against negative values (can occur if qualities are missing).
    if q <= 0:
        return 1.0
    return 10 ** (-q / 10)


def error_prob_to_phred(p: float) -> int:
    """Convert an error probability to an integer Phred score in [MIN_PHRED, MAX_PHRED]."""
    if p <= 0.0:
        return MAX_PHRED
    q = math.floor(-10.0 * math.log10(p) + _PHRED_PRECISION)
    return int(clamp(q, MIN_PHRED, MAX_PHRED))


def probability_of_error_two_trials(p1: float, p2: float) -> float:
    """Probability of an observed substitution after two independent error trials.

    A second error can restore the original base with probability 1/3, hence
    ``p1 + p2 - 4/3 * p1 * p2`` rather than the plain union.
    """
    return p1 + p2 - (4.0 / 3.0) * p1 * p2


def reverse_complement(bases: str) -> str:
    return bases.translate(_COMPLEMENT)[::-1]


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def chunked(iterable: Iterable[T], n: int) -> Iterable[list[T]]:
    chunk: list[T] = []
    for item in iterable:
        chunk.append(item)
        if len(chunk) >= n:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return float(numerator) / float(denominator)


def min_or_zero(values: Sequence[int]) -> int:
    return min(values) if values else 0
