import pytest

from duplexcons.models import SingleStrandConsensus
from duplexcons.stats import annotate, count_errors


def _ss(bases, depths, base_counts, read_count):
    return SingleStrandConsensus(
        bases=bases,
        quals=tuple([30] * len(bases)),
        depths=tuple(depths),
        excluded=tuple([0] * len(bases)),
        base_counts=tuple(base_counts),
        read_count=read_count,
    )


def test_count_errors_against_calls():
    ss = _ss("AAN", [3, 2, 0], [(2, 1, 0, 0), (1, 0, 1, 0), (0, 0, 0, 0)], 3)
    assert count_errors(ss, "ACA") == (1, 2, 0)


def test_no_call_has_no_errors():
    ss = _ss("A", [3], [(1, 1, 1, 0)], 3)
    assert count_errors(ss, "N") == (0,)


def test_annotate_per_read_values():
    ab = _ss("AAA", [3, 2, 3], [(3, 0, 0, 0), (2, 0, 0, 0), (2, 0, 1, 0)], 3)
    ba = _ss("AAA", [2, 2, 0], [(2, 0, 0, 0), (2, 0, 0, 0), (0, 0, 0, 0)], 2)
    s = annotate(ab, ba, "AAA")
    assert (s.raw_read_count, s.ab_raw_read_count, s.ba_raw_read_count) == (5, 3, 2)
    assert s.min_raw_read_count == 3
    assert s.ab_min_raw_read_count == 2
    assert s.ba_min_raw_read_count == 0
    assert s.ab_errors == (0, 0, 1)
    assert s.raw_read_error_rate == pytest.approx(1 / 12)
    assert s.ab_raw_read_error_rate == pytest.approx(1 / 8)
    assert s.ba_raw_read_error_rate == 0.0
    for i in range(3):
        assert s.ab_depths[i] + s.ba_depths[i] == ab.depths[i] + ba.depths[i]


def test_annotate_with_no_surviving_evidence():
    ab = _ss("N", [0], [(0, 0, 0, 0)], 1)
    ba = _ss("N", [0], [(0, 0, 0, 0)], 1)
    s = annotate(ab, ba, "N")
    assert s.raw_read_error_rate == 0.0
    assert s.min_raw_read_count == 0
