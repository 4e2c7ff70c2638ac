from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def plot_qual_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Duplex consensus base qualities",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Phred quality")
    plt.ylabel("Base count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_molecule_outcomes(
    *,
    molecules_called: int,
    rejections: Dict[str, int],
    out_png: str | Path,
    title: str = "Molecule outcomes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["called"] + sorted(rejections)
    values = [int(molecules_called)] + [int(rejections[k]) for k in sorted(rejections)]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Molecule count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_depth_hist(
    *,
    depth_hist: Dict[int, int],
    out_png: str | Path,
    title: str = "Raw reads per duplex molecule",
    max_bin: int = 20,
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    # Collapse tail into max_bin+
    xs = list(range(0, max_bin + 1))
    ys = [0] * len(xs)
    tail = 0
    for k, v in depth_hist.items():
        k = int(k)
        if k <= max_bin:
            ys[k] += int(v)
        else:
            tail += int(v)

    xticklabels = [str(x) for x in range(0, max_bin + 1)]
    if tail > 0:
        xs.append(max_bin + 1)
        ys.append(tail)
        xticklabels.append(f"{max_bin + 1}+")

    plt.figure()
    plt.bar(range(len(xs)), ys)
    plt.xlabel("Raw reads contributing to the R1 consensus")
    plt.ylabel("Molecule count")
    plt.title(title)
    plt.xticks(range(len(xs)), xticklabels, rotation=0)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
