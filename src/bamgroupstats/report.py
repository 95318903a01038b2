from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jinja2 import Template

from .classifier import StatsRun
from .models import InsertSizeSummary
from .plotting import plot_bucket_composition, plot_insert_size_hist
from .utils import ensure_outdir, open_text_output, safe_filename, write_json

logger = logging.getLogger(__name__)

UNASSIGNED = "."

COLUMNS = [
    "read_group",
    "sample",
    "platform",
    "platform_unit",
    "library",
    "read",
    "read_length",
    "total_reads",
    "duplicate_reads",
    "qc_failed_reads",
    "mapped_bases",
    "unmapped_reads",
    "divergent_bases",
    "gc_bases",
    "proper_pairs",
    "mean_insert_size",
    "insert_size_sd",
    "median_insert_size",
    "insert_size_mad",
]

RNA_COLUMNS = ["trimmed_mean_insert_size", "trimmed_insert_size_sd", "trimmed_pairs"]

Summaries = Mapping[Tuple[int, int], InsertSizeSummary]


def build_rows(run: StatsRun, summaries: Summaries) -> List[Dict[str, Any]]:
    """One row per touched (read group, mate) bucket, in header order."""
    rows: List[Dict[str, Any]] = []
    for group_idx, mate_idx, stats in run.accumulator.buckets():
        entry = run.catalog.entry(group_idx)
        isize = summaries[(group_idx, mate_idx)]
        row: Dict[str, Any] = {
            "read_group": entry.identifier if entry else UNASSIGNED,
            "sample": entry.sample if entry else UNASSIGNED,
            "platform": entry.platform if entry else UNASSIGNED,
            "platform_unit": entry.platform_unit if entry else UNASSIGNED,
            "library": entry.library if entry else UNASSIGNED,
            "read": mate_idx + 1,
            "read_length": stats.read_length,
            "total_reads": stats.count,
            "duplicate_reads": stats.dups,
            "qc_failed_reads": stats.qc_fail,
            "mapped_bases": stats.mapped_bases,
            "unmapped_reads": stats.umap,
            "divergent_bases": stats.divergent,
            "gc_bases": stats.gc,
            "proper_pairs": stats.proper,
            "mean_insert_size": isize.mean,
            "insert_size_sd": isize.sd,
            "median_insert_size": isize.median,
            "insert_size_mad": isize.mad,
        }
        if run.config.rna:
            row["trimmed_mean_insert_size"] = isize.trimmed_mean
            row["trimmed_insert_size_sd"] = isize.trimmed_sd
            row["trimmed_pairs"] = isize.trimmed_n
        rows.append(row)
    return rows


def _fmt(value: Any) -> str:
    if value is None:
        return UNASSIGNED
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def write_stats_tsv(rows: List[Dict[str, Any]], out: str | Path, *, rna: bool = False) -> None:
    """Write the per-bucket table; ``-`` writes to stdout."""
    columns = COLUMNS + RNA_COLUMNS if rna else COLUMNS
    with open_text_output(out) as fh:
        fh.write("#" + "\t".join(columns) + "\n")
        for row in rows:
            fh.write("\t".join(_fmt(row[c]) for c in columns) + "\n")


def build_summary(run: StatsRun, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "input": run.path,
        "rna": bool(run.config.rna),
        "trim_k": float(run.config.trim_k),
        "max_trim_iterations": int(run.config.max_trim_iterations),
        "read_groups": len(run.catalog) - 1,
        "counts": dict(run.counts),
        "buckets": rows,
        "runtime_seconds": float(run.runtime_seconds),
    }


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>bamgroupstats Report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 6px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>bamgroupstats Report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<table>
  <tr><th>Input</th><td><code>{{ summary.input }}</code></td></tr>
  <tr><th>Read groups in header</th><td>{{ summary.read_groups }}</td></tr>
  <tr><th>Records seen</th><td>{{ summary.counts.records_total }}</td></tr>
  <tr><th>Records classified</th><td>{{ summary.counts.records_classified }}</td></tr>
  <tr><th>Without a known read group</th><td>{{ summary.counts.records_catch_all }}</td></tr>
  <tr><th>Secondary skipped</th><td>{{ summary.counts.skipped_secondary }}</td></tr>
  <tr><th>Supplementary skipped</th><td>{{ summary.counts.skipped_supplementary }}</td></tr>
  <tr><th>Malformed skipped</th><td>{{ summary.counts.skipped_malformed }}</td></tr>
  <tr><th>RNA insert-size mode</th><td>{{ summary.rna }}{% if summary.rna %} (k={{ summary.trim_k }}){% endif %}</td></tr>
</table>

<h2>Per read group</h2>
<table>
  <tr>{% for c in columns %}<th>{{ c }}</th>{% endfor %}</tr>
  {% for row in rows %}
  <tr>{% for c in columns %}<td>{{ fmt(row[c]) }}</td>{% endfor %}</tr>
  {% endfor %}
</table>

<h2>Plots</h2>
<div class="card">
  <h3>Read composition</h3>
  <img src="{{ plots.composition }}" alt="read composition">
</div>
<div class="grid" style="margin-top:16px;">
  {% for p in plots.insert_sizes %}
  <div class="card">
    <h3>{{ p.label }}</h3>
    <img src="{{ p.path }}" alt="insert sizes {{ p.label }}">
  </div>
  {% endfor %}
</div>

<hr>
<p class="small">bamgroupstats {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: StatsRun,
    rows: List[Dict[str, Any]],
    summaries: Summaries,
) -> Path:
    """Write ``report.html``, ``summary.json`` and plots into ``outdir``."""
    outdir = ensure_outdir(outdir)
    plots_dir = outdir / "plots"

    composition_png = plots_dir / "composition.png"
    plot_bucket_composition(rows=rows, out_png=composition_png)

    insert_plots: List[Dict[str, str]] = []
    for (group_idx, mate_idx, stats), row in zip(run.accumulator.buckets(), rows):
        if not stats.insert_sizes:
            continue
        isize = summaries[(group_idx, mate_idx)]
        trimmed_range: Optional[Tuple[float, float]] = None
        if isize.trimmed_mean is not None and isize.trimmed_sd is not None:
            half = run.config.trim_k * isize.trimmed_sd
            trimmed_range = (isize.trimmed_mean - half, isize.trimmed_mean + half)
        label = f"{row['read_group']} read {mate_idx + 1}"
        png = plots_dir / (
            f"insert_size_{group_idx}_{safe_filename(str(row['read_group']))}_{mate_idx + 1}.png"
        )
        plot_insert_size_hist(
            samples=stats.insert_sizes,
            out_png=png,
            title=f"Insert sizes: {label}",
            trimmed_range=trimmed_range,
        )
        insert_plots.append({"label": label, "path": str(Path("plots") / png.name)})

    summary = build_summary(run, rows)
    write_json(outdir / "summary.json", summary)

    columns = COLUMNS + RNA_COLUMNS if run.config.rna else COLUMNS
    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        summary=summary,
        columns=columns,
        rows=rows,
        fmt=_fmt,
        plots={"composition": str(Path("plots") / composition_png.name), "insert_sizes": insert_plots},
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
