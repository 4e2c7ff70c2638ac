import pytest

from duplexcons.grouping import (
    REJECT_MISSING_MATE,
    REJECT_NO_PAIRS,
    REJECT_SINGLE_STRAND,
    REJECT_TOO_MANY_STRANDS,
    group_reads,
)
from duplexcons.molecule_id import MalformedIdentifierError


def test_fragments_are_dropped(make_builder):
    b = make_builder()
    b.add_frag("f1", mi="foo/A")
    b.add_frag("f2", mi="foo/B")
    res = group_reads(b.reads)
    assert res.molecule is None
    assert res.rejection == REJECT_NO_PAIRS


def test_single_strand_is_rejected(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="foo/A")
    b.add_pair("q2", mi="foo/A")
    res = group_reads(b.reads)
    assert res.molecule is None
    assert res.molecule_id == "foo"
    assert res.rejection == REJECT_SINGLE_STRAND


def test_more_than_two_strands_is_rejected(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="foo/A")
    b.add_pair("q2", mi="foo/B", strand1="-", strand2="+")
    b.add_pair("q3", mi="foo/C")
    assert group_reads(b.reads).rejection == REJECT_TOO_MANY_STRANDS


def test_unmapped_mate_leaves_a_frame_without_evidence(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="foo/A", unmapped2=True)
    b.add_pair("q2", mi="foo/B", strand1="-", strand2="+")
    assert group_reads(b.reads).rejection == REJECT_MISSING_MATE


def test_frames_pair_opposite_mates_in_sequencing_order(make_builder):
    b = make_builder()
    b.add_duplex("q")
    b.add_frag("f", mi="foo/A")
    res = group_reads(b.reads)
    mol = res.molecule
    assert mol is not None
    assert mol.molecule_id == "foo"
    assert (mol.ab.label, mol.ba.label) == ("A", "B")
    assert mol.ab.template_count == 1

    frame1, frame2 = mol.frames
    assert frame1.is_read1 and not frame2.is_read1
    # ab R1 (+) with ba R2 (+)
    assert [r.bases for r in frame1.ab] == ["AAAAAAAAAA"]
    assert [r.bases for r in frame1.ba] == ["AAAAAAAAAA"]
    # ab R2 (-) and ba R1 (-) are reverse complemented back to sequencing order
    assert [r.bases for r in frame2.ab] == ["GGGGGGGGGG"]
    assert [r.bases for r in frame2.ba] == ["GGGGGGGGGG"]


def test_reverse_strand_qualities_are_reversed(make_builder):
    b = make_builder()
    b.add_duplex("q")
    b.set_qual("qa", read1=False, index=0, qual=5)
    frame2 = group_reads(b.reads).molecule.frames[1]
    assert frame2.ab[0].quals[-1] == 5
    assert frame2.ab[0].quals[0] == 30


def test_strand_labels_are_ordered(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="m/y", strand1="-", strand2="+")
    b.add_pair("q2", mi="m/x")
    mol = group_reads(b.reads).molecule
    assert (mol.ab.label, mol.ba.label) == ("x", "y")


def test_molecule_length_is_shortest_read(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="foo/A")
    b.add_pair("q2", mi="foo/B", bases1="CCCCCCCCCC", bases2="AAAAAAAA", strand1="-", strand2="+")
    assert group_reads(b.reads).molecule.length == 8


def test_missing_tag_on_pair_raises(make_builder):
    b = make_builder()
    b.add_pair("q1", mi=None)
    with pytest.raises(MalformedIdentifierError):
        group_reads(b.reads)


def test_mixed_molecules_raise(make_builder):
    b = make_builder()
    b.add_pair("q1", mi="foo/A")
    b.add_pair("q2", mi="bar/B")
    with pytest.raises(ValueError):
        group_reads(b.reads)
