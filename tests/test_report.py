import json
from pathlib import Path

import pytest

from bamgroupstats import __version__
from bamgroupstats.classifier import collect_stats
from bamgroupstats.config import StatsConfig
from bamgroupstats.insert_size import estimate_all
from bamgroupstats.report import COLUMNS, RNA_COLUMNS, build_rows, render_report, write_stats_tsv
from bamgroupstats.toy_data import make_toy_data


def _rows(path: Path, config: StatsConfig):
    run = collect_stats(str(path), config=config, progress=False)
    summaries = estimate_all(run.accumulator, config)
    return run, summaries, build_rows(run, summaries)


def test_rows_follow_header_order(stats_bam: Path):
    _, _, rows = _rows(stats_bam, StatsConfig())
    keys = [(r["read_group"], r["read"]) for r in rows]
    assert keys == [("29976", 1), ("29976", 2), ("29978", 1), ("29978", 2), (".", 1)]

    first = rows[0]
    assert first["platform_unit"] == "5178_6"
    assert first["total_reads"] == 4
    assert first["mean_insert_size"] == pytest.approx((150 + 200 + 180) / 3)
    assert "trimmed_mean_insert_size" not in first

    catch_all = rows[-1]
    assert catch_all["sample"] == "."
    assert catch_all["mean_insert_size"] == 0.0


def test_tsv_has_header_and_one_line_per_bucket(stats_bam: Path, tmp_path: Path):
    _, _, rows = _rows(stats_bam, StatsConfig())
    out = tmp_path / "stats.tsv"
    write_stats_tsv(rows, out)
    lines = out.read_text().splitlines()
    assert lines[0] == "#" + "\t".join(COLUMNS)
    assert len(lines) == 6
    fields = lines[1].split("\t")
    assert fields[0] == "29976"
    assert fields[COLUMNS.index("mean_insert_size")] == "176.667"


def test_rna_tsv_adds_trimmed_columns(stats_bam: Path, tmp_path: Path):
    _, _, rows = _rows(stats_bam, StatsConfig(rna=True))
    out = tmp_path / "stats.tsv"
    write_stats_tsv(rows, out, rna=True)
    lines = out.read_text().splitlines()
    assert lines[0].endswith("\t".join(RNA_COLUMNS))
    # catch-all bucket has no insert sizes, so trimmed values are absent
    assert lines[-1].split("\t")[-3:] == [".", ".", "."]


def test_render_report_writes_html_json_and_plots(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    config = StatsConfig(rna=True)
    run, summaries, rows = _rows(Path(toy["bam"]), config)

    outdir = tmp_path / "report"
    html_path = render_report(
        outdir=outdir, version=__version__, run=run, rows=rows, summaries=summaries
    )

    assert html_path == outdir / "report.html"
    html = html_path.read_text(encoding="utf-8")
    assert "bamgroupstats Report" in html
    assert "toy.1" in html

    summary = json.loads((outdir / "summary.json").read_text())
    assert summary["counts"]["records_total"] == 84
    assert summary["read_groups"] == 2
    assert len(summary["buckets"]) == 5

    plots = outdir / "plots"
    assert (plots / "composition.png").exists()
    assert (plots / "insert_size_0_toy.1_1.png").exists()
    assert (plots / "insert_size_1_toy.2_2.png").exists()


def test_toy_outlier_is_trimmed_in_rna_mode(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    _, summaries, rows = _rows(Path(toy["bam"]), StatsConfig(rna=True))
    toy2_read1 = summaries[(1, 0)]
    assert toy2_read1.n == 20
    assert toy2_read1.trimmed_n < toy2_read1.n
    assert toy2_read1.trimmed_mean < toy2_read1.mean
    assert toy2_read1.trimmed_mean < 300
