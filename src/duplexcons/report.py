from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>DuplexCons Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>DuplexCons Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>BAM</th><td><code>{{ bam_path }}</code></td></tr>
      <tr><th>Input order</th><td><code>{{ input_sort_order }}</code></td></tr>
      <tr><th>Consensus BAM</th><td><code>{{ out_bam }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Model</h3>
    <table>
      <tr><th>Min input baseQ</th><td>{{ min_input_base_quality }}</td></tr>
      <tr><th>Pre-attachment error rate (Phred)</th><td>{{ error_rate_pre_attachment }}</td></tr>
      <tr><th>Post-attachment error rate (Phred)</th><td>{{ error_rate_post_attachment }}</td></tr>
      <tr><th>Min reads (total, larger, smaller strand)</th><td>{{ min_reads|join(", ") }}</td></tr>
      <tr><th>Single-strand bases</th><td>{{ single_strand_bases }}</td></tr>
    </table>
  </div>
</div>

<h2>Records and molecules</h2>
<table>
  <tr><th>Records seen</th><td>{{ counts.records_total }}</td></tr>
  <tr><th>Secondary skipped</th><td>{{ counts.records_skipped_secondary }}</td></tr>
  <tr><th>Supplementary skipped</th><td>{{ counts.records_skipped_supplementary }}</td></tr>
  <tr><th>Fragments / unmapped skipped</th><td>{{ counts.records_skipped_ineligible }}</td></tr>
  <tr><th>Molecules</th><td>{{ counts.molecules_total }}</td></tr>
  <tr><th>Duplex consensus pairs</th><td>{{ counts.molecules_called }}</td></tr>
  <tr><th>Consensus reads written</th><td>{{ counts.consensus_reads_written }}</td></tr>
  {% for reason, n in rejections|dictsort %}
  <tr><th>Rejected: {{ reason }}</th><td>{{ n }}</td></tr>
  {% endfor %}
</table>

<h2>Plots</h2>

<div class="grid">
  <div class="card">
    <h3>Molecule outcomes</h3>
    <img src="{{ plots.outcomes }}" alt="molecule outcomes">
  </div>
  <div class="card">
    <h3>Raw reads per molecule</h3>
    <img src="{{ plots.depth_hist }}" alt="depth histogram">
  </div>
</div>

<div class="grid" style="margin-top:16px;">
  <div class="card">
    <h3>Consensus base qualities</h3>
    <img src="{{ plots.qual_hist }}" alt="quality histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ out_bam }}</code> (unmapped duplex consensus pairs)</li>
  <li><code>{{ molecules_tsv_gz }}</code> (per-molecule outcomes)</li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Molecules seen on one strand only never produce a duplex consensus.</li>
  <li>Consensus reads are unmapped and in sequencing order; realign them before variant calling.</li>
  <li>Per-base <code>ad/bd</code> and <code>ae/be</code> tags give strand depths and disagreeing raw bases.</li>
</ul>

<hr>
<p class="small">DuplexCons {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        bam_path=run.get("bam_path"),
        out_bam=run.get("out_bam"),
        input_sort_order=run.get("input_sort_order"),
        min_input_base_quality=run.get("min_input_base_quality"),
        error_rate_pre_attachment=run.get("error_rate_pre_attachment"),
        error_rate_post_attachment=run.get("error_rate_post_attachment"),
        min_reads=run.get("min_reads", []),
        single_strand_bases=run.get("single_strand_bases"),
        molecules_tsv_gz=run.get("molecules_tsv_gz"),
        counts=run.get("counts", {}),
        rejections=run.get("rejections", {}),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    return out_path
