from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional

import pysam

from .molecule_id import MOLECULE_ID_TAG
from .utils import ensure_outdir, write_json

_READ_LENGTH = 30
_CONTIG = "chr1"


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _make_read(
    header: pysam.AlignmentHeader,
    name: str,
    *,
    start0: int,
    mate_start0: int,
    seq: str,
    read1: bool,
    reverse: bool,
    mi: Optional[str],
    paired: bool = True,
    baseq: int = 30,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment(header)
    a.query_name = name
    a.query_sequence = seq
    flag = 0
    if paired:
        flag |= 0x1 | 0x2 | (0x40 if read1 else 0x80)
        if not reverse:
            flag |= 0x20
    if reverse:
        flag |= 0x10
    a.flag = flag
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = 60
    a.cigartuples = [(0, len(seq))]
    if paired:
        a.next_reference_id = 0
        a.next_reference_start = mate_start0
    a.query_qualities = pysam.qualitystring_to_array(chr(baseq + 33) * len(seq))
    if mi is not None:
        a.set_tag(MOLECULE_ID_TAG, mi, value_type="Z")
    return a


def _pair(
    header: pysam.AlignmentHeader,
    name: str,
    ref_seq: str,
    *,
    left0: int,
    right0: int,
    mi: str,
    top_strand: bool,
    rng: random.Random,
    error_rate: float = 0.0,
) -> List[pysam.AlignedSegment]:
    """A read pair from one strand of a duplex fragment spanning [left0, right0 + read length).

    Top-strand pairs have R1 on the forward strand; bottom-strand pairs have
    R1 on the reverse strand, which is what makes the /A and /B pairs of a
    molecule complementary.
    """
    left = list(ref_seq[left0 : left0 + _READ_LENGTH])
    right = list(ref_seq[right0 : right0 + _READ_LENGTH])
    for seq in (left, right):
        for i in range(len(seq)):
            if rng.random() < error_rate:
                seq[i] = _mutate_base(seq[i])

    fwd = dict(start0=left0, mate_start0=right0, seq="".join(left), reverse=False)
    rev = dict(start0=right0, mate_start0=left0, seq="".join(right), reverse=True)
    r1_args, r2_args = (fwd, rev) if top_strand else (rev, fwd)
    return [
        _make_read(header, name, read1=True, mi=mi, **r1_args),
        _make_read(header, name, read1=False, mi=mi, **r2_args),
    ]


def make_toy_data(*, outdir: str | Path, seed: int = 7) -> Dict[str, str]:
    """Create a tiny molecule-grouped BAM suitable for quick demos/tests.

    Molecules:
    - ``m1``..``m4``: duplex molecules with 1-4 pairs per strand, light noise
    - ``m5``: top strand only (rejected: single strand)
    - ``m6``: fragments only (skipped before grouping)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)

    ref_seq = "".join(rng.choice("ACGT") for _ in range(1000))
    header = pysam.AlignmentHeader.from_dict(
        {
            "HD": {"VN": "1.6", "SO": "unsorted", "GO": "query"},
            "SQ": [{"SN": _CONTIG, "LN": len(ref_seq)}],
            "RG": [{"ID": "toy", "SM": "toy_sample", "LB": "toy_lib"}],
        }
    )

    reads: List[pysam.AlignedSegment] = []
    for m in range(1, 5):
        left0 = 50 + 150 * m
        right0 = left0 + 80
        for strand, label in ((True, "A"), (False, "B")):
            for k in range(m if strand else max(1, m - 1)):
                reads.extend(
                    _pair(
                        header,
                        f"m{m}_{label}{k}",
                        ref_seq,
                        left0=left0,
                        right0=right0,
                        mi=f"m{m}/{label}",
                        top_strand=strand,
                        rng=rng,
                        error_rate=0.01,
                    )
                )

    for k in range(3):
        reads.extend(_pair(header, f"m5_A{k}", ref_seq, left0=800, right0=880, mi="m5/A", top_strand=True, rng=rng))

    for label, reverse in (("A", False), ("B", True)):
        reads.append(
            _make_read(
                header,
                f"m6_{label}",
                start0=900,
                mate_start0=-1,
                seq=ref_seq[900 : 900 + _READ_LENGTH],
                read1=True,
                reverse=reverse,
                mi=f"m6/{label}",
                paired=False,
            )
        )

    bam_path = outdir_p / "grouped.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    summary = {
        "grouped_bam": str(bam_path),
        "outdir": str(outdir_p),
        "molecules": "6",
        "duplex_molecules": "4",
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
