import pytest

from duplexcons.duplex import (
    REJECT_INSUFFICIENT_READS,
    DuplexConsensusCaller,
    expand_min_reads,
    merge_position,
)
from duplexcons.grouping import REJECT_SINGLE_STRAND
from duplexcons.utils import MIN_PHRED


def caller(q=10, pre=45, post=40, **kwargs):
    return DuplexConsensusCaller(
        min_input_base_quality=q,
        error_rate_pre_attachment=pre,
        error_rate_post_attachment=post,
        **kwargs,
    )


def _r1_r2(recs):
    r1 = next(r for r in recs if r.is_read1)
    r2 = next(r for r in recs if r.is_read2)
    return r1, r2


# -----------------
# merge_position
# -----------------

def test_merge_agreement_sums_qualities():
    assert merge_position("A", 30, "A", 20, error_rate_post=40) == ("A", "A", 50)


def test_merge_agreement_is_capped_by_shallow_strand_plus_post_rate():
    assert merge_position("A", 45, "A", 10, error_rate_post=20) == ("A", "A", 30)
    assert merge_position("C", 93, "C", 93, error_rate_post=93) == ("C", "C", 93)


def test_merge_disagreement_uses_quality_gap():
    assert merge_position("A", 29, "T", 14, error_rate_post=40) == ("A", "A", 15)
    assert merge_position("A", 14, "T", 29, error_rate_post=40) == ("T", "T", 15)


def test_merge_disagreement_quality_is_monotonic_and_below_winner():
    quals = [merge_position("A", 40, "T", qb, error_rate_post=40)[2] for qb in (5, 10, 20, 30)]
    assert quals == sorted(quals, reverse=True)
    assert all(q < 40 for q in quals)


def test_merge_equal_quality_disagreement_is_no_call():
    assert merge_position("A", 19, "T", 19, error_rate_post=40) == ("N", "N", MIN_PHRED)


def test_merge_tiny_gap_is_masked():
    assert merge_position("A", 20, "T", 18, error_rate_post=40) == ("A", "N", MIN_PHRED)


def test_merge_one_strand_missing():
    assert merge_position("A", 30, "N", MIN_PHRED, error_rate_post=40) == ("A", "N", MIN_PHRED)
    assert merge_position("N", MIN_PHRED, "G", 30, error_rate_post=25, single_strand_bases=True) == ("G", "G", 25)
    assert merge_position("N", MIN_PHRED, "N", MIN_PHRED, error_rate_post=40) == ("N", "N", MIN_PHRED)


# -----------------
# configuration
# -----------------

def test_expand_min_reads():
    assert expand_min_reads([2]) == (2, 2, 2)
    assert expand_min_reads([3, 2]) == (3, 2, 2)
    assert expand_min_reads([6, 4, 2]) == (6, 4, 2)
    with pytest.raises(ValueError):
        expand_min_reads([])


def test_invalid_configuration_raises():
    with pytest.raises(ValueError):
        caller(min_reads=(1, 2, 1))
    with pytest.raises(ValueError):
        caller(q=-1)
    with pytest.raises(ValueError):
        caller(pre=0)


# -----------------
# molecule level
# -----------------

def test_no_records_from_fragments(make_builder):
    b = make_builder(base_quality=20)
    b.add_frag("f1", mi="foo/A")
    b.add_frag("f2", mi="foo/B")
    assert caller().consensus_reads(b.reads) == []


def test_simple_duplex_consensus(make_builder):
    b = make_builder(base_quality=20)
    b.add_duplex("q")
    recs = caller().consensus_reads(b.reads)
    assert len(recs) == 2
    r1, r2 = _r1_r2(recs)
    assert r1.bases == "AAAAAAAAAA"
    assert r2.bases == "GGGGGGGGGG"
    assert r1.molecule_id == "foo"
    assert r1.quals[0] > 30
    assert r2.quals[0] > 30


def test_no_consensus_with_only_one_strand(make_builder):
    b = make_builder(base_quality=20)
    for name in ("q1", "q2", "q3"):
        b.add_pair(name, mi="foo/A", bases1="AAAAAAAAAA", bases2="AAAAAAAAAA")
    res = caller().call(b.reads)
    assert res.reads == ()
    assert res.rejection == REJECT_SINGLE_STRAND
    assert res.raw_reads == 6


def test_deep_data_saturates_at_expected_quality(make_builder):
    b = make_builder(base_quality=20)
    for i in range(50):
        b.add_duplex(f"m{i}")
    recs = caller(post=45).consensus_reads(b.reads)
    assert len(recs) == 2
    r1, r2 = _r1_r2(recs)
    assert r1.bases == "AAAAAAAAAA"
    assert r2.bases == "GGGGGGGGGG"
    for r in (r1, r2):
        assert all(q == 90 for q in r.quals)
        assert r.stats.raw_read_count == 100
        assert r.stats.ab_raw_read_count == 50
        assert r.stats.ba_raw_read_count == 50
        assert r.stats.raw_read_error_rate == 0.0


def test_deep_ab_and_light_ba_do_not_saturate(make_builder):
    b = make_builder(base_quality=20)
    for i in range(50):
        b.add_pair(f"a{i}", mi="foo/A")
    b.add_pair("b1", mi="foo/B", bases1="CCCCCCCCCC", bases2="AAAAAAAAAA", strand1="-", strand2="+")
    recs = caller(post=45).consensus_reads(b.reads)
    assert len(recs) == 2
    r1, r2 = _r1_r2(recs)
    assert r1.bases == "AAAAAAAAAA"
    assert r2.bases == "GGGGGGGGGG"
    for r in (r1, r2):
        assert all(q <= 45 + 20 for q in r.quals)


def test_post_rate_caps_when_pre_rate_is_looser(make_builder):
    b = make_builder(base_quality=40)
    for i in range(30):
        b.add_pair(f"a{i}", mi="foo/A")
    b.add_pair("b1", mi="foo/B", bases1="CCCCCCCCCC", bases2="AAAAAAAAAA", strand1="-", strand2="+")
    res = caller(pre=60, post=10).call_many([b.reads])[0]
    r1, _ = _r1_r2(res.reads)
    # ab saturates at Q60 and the lone ba read sits at Q9; the sum (69) is
    # capped at the ba quality plus the post-attachment rate.
    assert all(q == 19 for q in r1.quals)


def test_different_read_lengths(make_builder):
    b = make_builder(base_quality=20)
    b.add_pair("q1", mi="foo/A")
    b.add_pair("q2", mi="foo/B", bases1="CCCCCCCC", bases2="AAAAAAAA", strand1="-", strand2="+")
    recs = caller().consensus_reads(b.reads)
    assert len(recs) == 2
    assert all(len(r) == 8 for r in recs)
    assert all(len(r.quals) == 8 and len(r.stats.ab_depths) == 8 for r in recs)


def test_one_short_mate_bounds_both_consensus_reads(make_builder):
    b = make_builder(base_quality=20)
    b.add_pair("q1", mi="foo/A")
    # only the /B second mate is short; it lands in the R1 frame
    b.add_pair("q2", mi="foo/B", bases1="CCCCCCCCCC", bases2="AAAAAAAA", strand1="-", strand2="+")
    recs = caller().consensus_reads(b.reads)
    assert [len(r) for r in _r1_r2(recs)] == [8, 8]
    assert all(len(r.stats.ba_depths) == 8 for r in recs)


def test_min_input_base_quality_masks_single_position(make_builder):
    b = make_builder(base_quality=20)
    b.add_duplex("q")
    b.set_qual("qb", read1=False, index=5, qual=5)
    recs = caller().consensus_reads(b.reads)
    r1, r2 = _r1_r2(recs)
    assert r1.bases == "AAAAANAAAA"
    assert r1.quals[5] == MIN_PHRED
    assert all(q > 30 for i, q in enumerate(r1.quals) if i != 5)
    assert r2.bases == "GGGGGGGGGG"


def test_single_strand_bases_option_keeps_lone_call(make_builder):
    b = make_builder(base_quality=20)
    b.add_duplex("q")
    b.set_qual("qb", read1=False, index=5, qual=5)
    r1, _ = _r1_r2(caller(single_strand_bases=True).consensus_reads(b.reads))
    assert r1.bases == "AAAAAAAAAA"
    assert MIN_PHRED < r1.quals[5] <= 40


def test_conflict_with_equal_quality_is_no_call(make_builder):
    b = make_builder(base_quality=20)
    b.add_duplex("q", ba_bases=("CCCCCCCCCC", "TAAAAAAAAA"))
    r1, _ = _r1_r2(caller().consensus_reads(b.reads))
    assert r1.bases == "NAAAAAAAAA"
    assert r1.quals[0] == MIN_PHRED


def test_conflict_with_unequal_quality_is_low_quality_call(make_builder):
    b = make_builder(base_quality=30)
    b.add_duplex("q", ba_bases=("CCCCCCCCCC", "TAAAAAAAAA"))
    b.set_qual("qb", read1=False, index=0, qual=15)
    r1, _ = _r1_r2(caller().consensus_reads(b.reads))
    assert r1.bases == "AAAAAAAAAA"
    assert abs(r1.quals[0] - 15) <= 5
    assert r1.quals[0] < r1.quals[1]


def test_errors_counted_against_called_base_not_no_call(make_builder):
    b = make_builder(base_quality=30)
    b.add_duplex("q", ab_bases=("ANAAAAAAAA", "CCNCCCCCCC"))
    recs = caller().consensus_reads(b.reads)
    assert len(recs) == 2
    for r in recs:
        assert r.stats.raw_read_error_rate == 0.0
        assert r.stats.ab_raw_read_error_rate == 0.0
        assert r.stats.ba_raw_read_error_rate == 0.0
    r1, r2 = _r1_r2(recs)
    assert r1.stats.ab_depths[1] == 0
    assert r1.stats.ab_errors[1] == 0
    assert r2.stats.ab_depths[7] == 0


def test_summary_and_detail_tags(make_builder):
    b = make_builder(base_quality=30)
    # 3 AB pairs: clean; R1 with a no-call at 2 and a low-qual base at 3; one error at 4 in each read
    b.add_pair("ab1", mi="foo/A", bases1="AAAAAAAAAA", bases2="CCCCCCCCCC")
    b.add_pair("ab2", mi="foo/A", bases1="AANAAAAAAA", bases2="CCCCCCCCCC")
    b.set_qual("ab2", read1=True, index=2, qual=MIN_PHRED)
    b.set_qual("ab2", read1=True, index=3, qual=10)
    b.add_pair("ab3", mi="foo/A", bases1="AAAAGAAAAA", bases2="CCCCCTCCCC")
    # 2 clean BA pairs; their R2s feed the R1 consensus and vice versa
    for name in ("ba1", "ba2"):
        b.add_pair(name, mi="foo/B", bases1="CCCCCCCCCC", bases2="AAAAAAAAAA", strand1="-", strand2="+")

    recs = caller(q=20).consensus_reads(b.reads)
    assert len(recs) == 2
    r1, r2 = _r1_r2(recs)

    s1 = r1.stats
    assert s1.raw_read_count == 5
    assert s1.ab_raw_read_count == 3
    assert s1.ba_raw_read_count == 2
    assert s1.min_raw_read_count == 4
    assert s1.ab_min_raw_read_count == 2
    assert s1.ba_min_raw_read_count == 2
    assert s1.raw_read_error_rate == pytest.approx(1 / 48)
    assert s1.ab_raw_read_error_rate == pytest.approx(1 / 28)
    assert s1.ba_raw_read_error_rate == 0.0

    s2 = r2.stats
    assert s2.raw_read_count == 5
    assert s2.ab_raw_read_count == 3
    assert s2.ba_raw_read_count == 2
    assert s2.min_raw_read_count == 5
    assert s2.ab_min_raw_read_count == 3
    assert s2.ba_min_raw_read_count == 2
    assert s2.raw_read_error_rate == pytest.approx(1 / 50)
    assert s2.ab_raw_read_error_rate == pytest.approx(1 / 30)
    assert s2.ba_raw_read_error_rate == 0.0

    assert s1.ab_depths == (3, 3, 2, 2, 3, 3, 3, 3, 3, 3)
    assert s1.ab_errors == (0, 0, 0, 0, 1, 0, 0, 0, 0, 0)
    assert s1.ba_depths == (2,) * 10
    assert s1.ba_errors == (0,) * 10
    assert s2.ab_depths == (3,) * 10
    assert s2.ab_errors == (0, 0, 0, 0, 1, 0, 0, 0, 0, 0)
    assert s2.ba_depths == (2,) * 10
    assert s2.ba_errors == (0,) * 10

    # per-read values follow from the per-base arrays
    for s in (s1, s2):
        depths = [a + b for a, b in zip(s.ab_depths, s.ba_depths)]
        assert s.min_raw_read_count == min(depths)
        assert s.raw_read_error_rate == pytest.approx((sum(s.ab_errors) + sum(s.ba_errors)) / sum(depths))


def test_min_reads_rejects_thin_molecules(make_builder):
    b = make_builder(base_quality=30)
    b.add_duplex("q")
    res = caller(min_reads=(3, 2, 1)).call(b.reads)
    assert not res.ok
    assert res.rejection == REJECT_INSUFFICIENT_READS

    b.add_pair("extra", mi="foo/A")
    assert caller(min_reads=(3, 2, 1)).call(b.reads).ok


def test_input_reads_are_not_modified(make_builder):
    b = make_builder(base_quality=20)
    b.add_duplex("q")
    before = list(b.reads)
    caller().consensus_reads(b.reads)
    assert b.reads == before
