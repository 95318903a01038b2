from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_insert_size_hist(
    *,
    samples: Sequence[int],
    out_png: str | Path,
    title: str = "Insert size distribution",
    nbins: int = 50,
    trimmed_range: Sequence[float] | None = None,
) -> None:
    """Histogram of proper-pair insert sizes for one bucket.

    trimmed_range:
        Optional ``(low, high)`` bounds kept by RNA-mode trimming; drawn as
        vertical lines.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    plt.figure()
    if samples:
        plt.hist(list(samples), bins=nbins)
    if trimmed_range is not None:
        for x in trimmed_range:
            plt.axvline(x, linestyle="--", color="grey")
    plt.xlabel("Insert size (bp)")
    plt.ylabel("Pair count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_bucket_composition(
    *,
    rows: List[Dict[str, object]],
    out_png: str | Path,
    title: str = "Reads per read group and mate",
) -> None:
    """Stacked bars of duplicate / QC-failed / unmapped / other reads per bucket."""
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [f"{r['read_group']}/{r['read']}" for r in rows]
    dups = [int(r["duplicate_reads"]) for r in rows]
    qc = [int(r["qc_failed_reads"]) for r in rows]
    umap = [int(r["unmapped_reads"]) for r in rows]
    # categories overlap (a duplicate can also be unmapped); "other" is floored at 0
    other = [
        max(0, int(r["total_reads"]) - d - q - u) for r, d, q, u in zip(rows, dups, qc, umap)
    ]

    xs = range(len(labels))
    plt.figure()
    bottom = [0] * len(labels)
    for name, values in [("Duplicate", dups), ("QC fail", qc), ("Unmapped", umap), ("Other", other)]:
        plt.bar(xs, values, bottom=bottom, label=name)
        bottom = [b + v for b, v in zip(bottom, values)]
    plt.ylabel("Read count")
    plt.title(title)
    plt.xticks(xs, labels, rotation=15, ha="right")
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
