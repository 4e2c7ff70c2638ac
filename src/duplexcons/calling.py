from __future__ import annotations

import array
import itertools
import logging
import time
from collections import deque
from concurrent.futures import Future, ProcessPoolExecutor
from pathlib import Path
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pysam
from tqdm import tqdm

from . import __version__
from .duplex import CallResult, DuplexConsensusCaller
from .grouping import is_eligible
from .models import DuplexConsensusRead, RawRead
from .molecule_id import MOLECULE_ID_TAG, source_molecule_id
from .utils import chunked, ensure_outdir, open_textmaybe_gzip, write_json
from .validation import MoleculeOrderChecker, check_input_header

logger = logging.getLogger(__name__)

FLAG_PAIRED = 0x1
FLAG_UNMAPPED = 0x4
FLAG_MATE_UNMAPPED = 0x8
FLAG_READ1 = 0x40
FLAG_READ2 = 0x80

_SHORT_MAX = 32767

# SAM tags for the provenance fields of a consensus read.
PER_READ_TAGS = {
    "raw_read_count": ("cD", "i"),
    "ab_raw_read_count": ("aD", "i"),
    "ba_raw_read_count": ("bD", "i"),
    "min_raw_read_count": ("cM", "i"),
    "ab_min_raw_read_count": ("aM", "i"),
    "ba_min_raw_read_count": ("bM", "i"),
    "raw_read_error_rate": ("cE", "f"),
    "ab_raw_read_error_rate": ("aE", "f"),
    "ba_raw_read_error_rate": ("bE", "f"),
}
PER_BASE_TAGS = {
    "ab_depths": "ad",
    "ba_depths": "bd",
    "ab_errors": "ae",
    "ba_errors": "be",
}


def raw_read_from_segment(read: pysam.AlignedSegment, *, tag: str = MOLECULE_ID_TAG) -> RawRead:
    """Snapshot the fields the consensus caller needs from a pysam record."""
    quals = read.query_qualities
    seq = read.query_sequence or ""
    return RawRead(
        name=str(read.query_name),
        bases=seq,
        quals=tuple(int(q) for q in quals) if quals is not None else tuple([0] * len(seq)),
        is_paired=bool(read.is_paired),
        is_read1=bool(read.is_read1),
        is_reverse=bool(read.is_reverse),
        molecule_tag=str(read.get_tag(tag)) if read.has_tag(tag) else None,
        is_unmapped=bool(read.is_unmapped),
    )


def iter_molecules(reads: Iterable[RawRead]) -> Iterator[Tuple[str, List[RawRead]]]:
    """Group consecutive raw reads by source molecule id.

    Raises ValueError if a molecule's records are split across the input and
    MalformedIdentifierError if a record lacks a usable molecule tag.
    """
    checker = MoleculeOrderChecker()
    for molecule_id, group in itertools.groupby(reads, key=lambda r: source_molecule_id(r.molecule_tag)):
        checker.start(molecule_id)
        yield molecule_id, list(group)


def build_output_header(
    in_header: Dict[str, Any],
    *,
    read_group_id: str,
    command_line: Optional[str] = None,
) -> Dict[str, Any]:
    rg: Dict[str, str] = {"ID": read_group_id}
    in_rgs = in_header.get("RG", []) or []
    if in_rgs:
        for key in ("SM", "LB", "PL"):
            values = {r[key] for r in in_rgs if key in r}
            if len(values) == 1:
                rg[key] = values.pop()

    pgs = [dict(pg) for pg in in_header.get("PG", []) or []]
    pg: Dict[str, str] = {"ID": "duplexcons", "PN": "duplexcons", "VN": __version__}
    existing = {p.get("ID") for p in pgs}
    suffix = 1
    while pg["ID"] in existing:
        pg["ID"] = f"duplexcons.{suffix}"
        suffix += 1
    if command_line:
        pg["CL"] = command_line
    pgs.append(pg)

    header: Dict[str, Any] = {
        "HD": {"VN": "1.6", "SO": "unsorted", "GO": "query"},
        "RG": [rg],
        "PG": pgs,
    }
    if in_header.get("SQ"):
        header["SQ"] = in_header["SQ"]
    return header


def consensus_to_segment(
    read: DuplexConsensusRead,
    *,
    header: pysam.AlignmentHeader,
    read_name_prefix: str,
    read_group_id: Optional[str],
) -> pysam.AlignedSegment:
    """Render a duplex consensus read as an unmapped paired BAM record."""
    a = pysam.AlignedSegment(header)
    a.query_name = f"{read_name_prefix}:{read.molecule_id}"
    a.query_sequence = read.bases
    a.flag = FLAG_PAIRED | FLAG_UNMAPPED | FLAG_MATE_UNMAPPED | (FLAG_READ1 if read.is_read1 else FLAG_READ2)
    a.reference_id = -1
    a.reference_start = -1
    a.next_reference_id = -1
    a.next_reference_start = -1
    a.mapping_quality = 0
    a.query_qualities = array.array("B", read.quals)

    a.set_tag(MOLECULE_ID_TAG, read.molecule_id, value_type="Z")
    if read_group_id is not None:
        a.set_tag("RG", read_group_id, value_type="Z")
    for field_name, (tag, value_type) in PER_READ_TAGS.items():
        value = getattr(read.stats, field_name)
        a.set_tag(tag, float(value) if value_type == "f" else int(value), value_type=value_type)
    for field_name, tag in PER_BASE_TAGS.items():
        values = [min(v, _SHORT_MAX) for v in getattr(read.stats, field_name)]
        a.set_tag(tag, array.array("h", values))
    return a


def iter_call_results(
    caller: DuplexConsensusCaller,
    molecules: Iterable[Tuple[str, List[RawRead]]],
    *,
    threads: int = 1,
    chunk_size: int = 500,
) -> Iterator[CallResult]:
    """Call molecules in input order, optionally fanning chunks out to worker processes."""
    if threads <= 1:
        for _, reads in molecules:
            yield caller.call(reads)
        return

    max_pending = threads * 2
    with ProcessPoolExecutor(max_workers=threads) as pool:
        pending: Deque[Future] = deque()
        for chunk in chunked((reads for _, reads in molecules), chunk_size):
            pending.append(pool.submit(caller.call_many, chunk))
            if len(pending) >= max_pending:
                yield from pending.popleft().result()
        while pending:
            yield from pending.popleft().result()


def _mean_qual(read: DuplexConsensusRead) -> float:
    return float(np.mean(read.quals)) if read.quals else 0.0


def call_duplex_bam(
    *,
    bam_path: str,
    out_bam: str | Path,
    outdir: str | Path,
    caller: DuplexConsensusCaller,
    read_name_prefix: Optional[str] = None,
    read_group_id: str = "A",
    molecules_tsv_gz: Optional[str] = None,
    threads: int = 1,
    chunk_size: int = 500,
    progress: bool = True,
    command_line: Optional[str] = None,
) -> Dict[str, object]:
    """Main workhorse: stream a molecule-grouped BAM, call duplex consensus, write outputs.

    Returns the run summary, which is also written to ``outdir/summary.json``.
    """
    t0 = time.time()
    outdir_path = ensure_outdir(outdir)

    bam = pysam.AlignmentFile(bam_path, "rb", check_sq=False)
    in_header = bam.header.to_dict()
    sort_order = check_input_header(in_header)

    if read_name_prefix is None:
        read_name_prefix = Path(bam_path).name.split(".")[0] or "duplex"

    out_header = pysam.AlignmentHeader.from_dict(
        build_output_header(in_header, read_group_id=read_group_id, command_line=command_line)
    )
    out_fh = pysam.AlignmentFile(str(out_bam), "wb", header=out_header)

    if molecules_tsv_gz is None:
        molecules_tsv_gz = str(outdir_path / "molecules.tsv.gz")
    tsv_fh = open_textmaybe_gzip(molecules_tsv_gz, "wt")
    tsv_fh.write(
        "\t".join(
            [
                "molecule_id",
                "raw_reads",
                "status",
                "ab_reads",
                "ba_reads",
                "r1_length",
                "r2_length",
                "r1_mean_qual",
                "r2_mean_qual",
                "error_rate",
            ]
        )
        + "\n"
    )

    counts = {
        "records_total": 0,
        "records_skipped_secondary": 0,
        "records_skipped_supplementary": 0,
        "records_skipped_ineligible": 0,
        "molecules_total": 0,
        "molecules_called": 0,
        "consensus_reads_written": 0,
    }
    rejections: Dict[str, int] = {}
    depth_hist: Dict[int, int] = {}

    qual_bins = np.arange(0, 95, 1)
    qual_counts = np.zeros(len(qual_bins) - 1, dtype=np.int64)

    def _primary_reads() -> Iterator[RawRead]:
        it: Iterable[pysam.AlignedSegment] = bam.fetch(until_eof=True)
        if progress:
            it = tqdm(it, unit="read", desc="Calling duplex consensus")
        for rec in it:
            counts["records_total"] += 1
            if rec.is_secondary:
                counts["records_skipped_secondary"] += 1
                continue
            if rec.is_supplementary:
                counts["records_skipped_supplementary"] += 1
                continue
            raw = raw_read_from_segment(rec)
            # fragments and unmapped mates never contribute and may lack an MI tag
            if not is_eligible(raw):
                counts["records_skipped_ineligible"] += 1
                continue
            yield raw

    try:
        for res in iter_call_results(
            caller,
            iter_molecules(_primary_reads()),
            threads=threads,
            chunk_size=chunk_size,
        ):
            counts["molecules_total"] += 1
            if not res.ok:
                reason = res.rejection or "unknown"
                rejections[reason] = rejections.get(reason, 0) + 1
                tsv_fh.write(f"{res.molecule_id}\t{res.raw_reads}\t{reason}\t\t\t\t\t\t\t\n")
                continue

            counts["molecules_called"] += 1
            r1, r2 = res.reads
            for read in res.reads:
                out_fh.write(
                    consensus_to_segment(
                        read,
                        header=out_header,
                        read_name_prefix=read_name_prefix,
                        read_group_id=read_group_id,
                    )
                )
                counts["consensus_reads_written"] += 1
                qual_counts += np.histogram(read.quals, bins=qual_bins)[0]

            depth = r1.stats.raw_read_count
            depth_hist[depth] = depth_hist.get(depth, 0) + 1

            tsv_fh.write(
                f"{res.molecule_id}\t{res.raw_reads}\tcalled\t"
                f"{r1.stats.ab_raw_read_count}\t{r1.stats.ba_raw_read_count}\t"
                f"{len(r1)}\t{len(r2)}\t{_mean_qual(r1):.2f}\t{_mean_qual(r2):.2f}\t"
                f"{r1.stats.raw_read_error_rate:.6f}\n"
            )
    finally:
        tsv_fh.close()
        out_fh.close()
        bam.close()

    dt = time.time() - t0
    logger.info(
        "Called %d of %d molecules in %.1fs",
        counts["molecules_called"],
        counts["molecules_total"],
        dt,
    )

    summary = {
        "bam_path": bam_path,
        "out_bam": str(out_bam),
        "input_sort_order": sort_order,
        "min_input_base_quality": int(caller.min_input_base_quality),
        "error_rate_pre_attachment": int(caller.error_rate_pre_attachment),
        "error_rate_post_attachment": int(caller.error_rate_post_attachment),
        "min_reads": list(caller.min_reads),
        "single_strand_bases": bool(caller.single_strand_bases),
        "read_name_prefix": read_name_prefix,
        "read_group_id": read_group_id,
        "molecules_tsv_gz": str(molecules_tsv_gz),
        "threads": int(threads),
        "counts": counts,
        "rejections": rejections,
        "depth_hist": depth_hist,
        "qual_hist": {
            "bin_edges": qual_bins.tolist(),
            "counts": qual_counts.tolist(),
        },
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", summary)
    return summary
