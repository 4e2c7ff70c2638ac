from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .calling import call_duplex_bam
from .duplex import (
    DEFAULT_ERROR_RATE_POST_ATTACHMENT,
    DEFAULT_ERROR_RATE_PRE_ATTACHMENT,
    DEFAULT_MIN_INPUT_BASE_QUALITY,
    DuplexConsensusCaller,
    expand_min_reads,
)
from .plotting import plot_depth_hist, plot_molecule_outcomes, plot_qual_hist
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="duplexcons",
        description=(
            "DuplexCons: duplex consensus calling for strand-tagged read pairs. "
            "Collapses the /A and /B read pairs of each source molecule into one "
            "error-corrected consensus pair with per-base provenance tags."
        ),
    )
    p.add_argument("--version", action="version", version=f"duplexcons {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny molecule-grouped BAM for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--seed", type=int, default=7, help="Random seed for the toy reference and noise.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Call duplex consensus reads from a BAM grouped by molecule (MI tag <id>/<strand>).",
    )
    c.add_argument("--bam", required=True, type=_path_exists, help="Input BAM, records grouped by MI.")
    c.add_argument("--outdir", required=True, help="Output directory.")
    c.add_argument(
        "--out-bam",
        default=None,
        help="Consensus BAM path (default: outdir/consensus.bam).",
    )

    # Model parameters
    c.add_argument(
        "--min-input-base-quality",
        type=int,
        default=DEFAULT_MIN_INPUT_BASE_QUALITY,
        help="Ignore raw bases below this quality.",
    )
    c.add_argument(
        "--error-rate-pre-umi",
        dest="error_rate_pre",
        type=int,
        default=DEFAULT_ERROR_RATE_PRE_ATTACHMENT,
        help="Phred-scaled error rate for errors before the molecular label was attached.",
    )
    c.add_argument(
        "--error-rate-post-umi",
        dest="error_rate_post",
        type=int,
        default=DEFAULT_ERROR_RATE_POST_ATTACHMENT,
        help="Phred-scaled error rate for errors after the molecular label was attached.",
    )
    c.add_argument(
        "--min-reads",
        type=int,
        nargs="+",
        default=[1],
        help="Minimum read pairs: total [larger strand [smaller strand]].",
    )
    c.add_argument(
        "--single-strand-bases",
        action="store_true",
        help="Keep calls at positions where only one strand has usable evidence.",
    )

    # Outputs
    c.add_argument("--read-name-prefix", default=None, help="Consensus read name prefix.")
    c.add_argument("--read-group-id", default="A", help="Read group ID for consensus reads.")
    c.add_argument(
        "--molecules-tsv",
        default=None,
        help="Optional path for per-molecule TSV.GZ (default: outdir/molecules.tsv.gz).",
    )
    c.add_argument("--threads", type=int, default=1, help="Worker processes for consensus calling.")
    c.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    c.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    c.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")

    c.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "DuplexCons quickstart (copy/paste):",
        "",
        "1) Try it on toy data:",
        "   duplexcons make-toy-data --outdir toy/",
        "   duplexcons call --bam toy/grouped.bam --outdir toy_out/",
        "",
        "2) Real data (records grouped by MI, e.g. from fgbio GroupReadsByUmi --strategy paired):",
        "   duplexcons call \\",
        "     --bam grouped.bam \\",
        "     --outdir results/ \\",
        "     --min-reads 2 1 1 \\",
        "     --threads 4",
        "   Outputs: results/consensus.bam, results/report.html, results/summary.json",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir, seed=int(args.seed))
    print(json.dumps(summary, indent=2))
    return 0


def cmd_call(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "call.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("duplexcons")
    logger.info("duplexcons %s", __version__)

    out_bam = Path(args.out_bam).expanduser().resolve() if args.out_bam else outdir / "consensus.bam"

    try:
        caller = DuplexConsensusCaller(
            min_input_base_quality=int(args.min_input_base_quality),
            error_rate_pre_attachment=int(args.error_rate_pre),
            error_rate_post_attachment=int(args.error_rate_post),
            min_reads=expand_min_reads(args.min_reads),
            single_strand_bases=bool(args.single_strand_bases),
        )

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Caller: {caller}")
            print("Planned outputs:")
            print(f"  consensus BAM -> {out_bam}")
            print(f"  report.html -> {outdir / 'report.html'}")
            print(f"  molecules.tsv.gz -> {outdir / 'molecules.tsv.gz'}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(outdir / "report.html"))
            return 0

        run = call_duplex_bam(
            bam_path=args.bam,
            out_bam=out_bam,
            outdir=outdir,
            caller=caller,
            read_name_prefix=args.read_name_prefix,
            read_group_id=str(args.read_group_id),
            molecules_tsv_gz=args.molecules_tsv,
            threads=int(args.threads),
            progress=not bool(args.no_progress),
            command_line=" ".join(["duplexcons"] + sys.argv[1:]),
        )

        plots_dir = Path(outdir) / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)

        outcomes_png = plots_dir / "molecule_outcomes.png"
        depth_png = plots_dir / "depth_hist.png"
        qual_png = plots_dir / "qual_hist.png"

        plot_molecule_outcomes(
            molecules_called=run["counts"]["molecules_called"],
            rejections=run["rejections"],
            out_png=outcomes_png,
        )
        plot_depth_hist(depth_hist=run["depth_hist"], out_png=depth_png)
        plot_qual_hist(
            bin_edges=run["qual_hist"]["bin_edges"],
            counts=run["qual_hist"]["counts"],
            out_png=qual_png,
        )

        plots_rel = {
            "outcomes": str(Path("plots") / outcomes_png.name),
            "depth_hist": str(Path("plots") / depth_png.name),
            "qual_hist": str(Path("plots") / qual_png.name),
        }

        report_path = render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)

        logger.info("Report written: %s", report_path)
        print(str(report_path))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "call":
        return cmd_call(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
