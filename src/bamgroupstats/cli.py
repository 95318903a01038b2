from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .classifier import collect_stats
from .config import (
    DEFAULT_MAX_TRIM_ITERATIONS,
    DEFAULT_MISMATCH_THRESHOLD,
    DEFAULT_TRIM_K,
    QcOutputConfig,
    StatsConfig,
)
from .errors import BamStatsError
from .insert_size import estimate_all
from .mismatch_qc import run_flag_modifier, run_mismatch_qc
from .report import build_rows, build_summary, render_report, write_stats_tsv
from .toy_data import make_toy_data
from .utils import STDIO, write_json


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
    if p in (STDIO, "/dev/stdin"):
        return STDIO
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _output_path(p: str) -> str:
    return STDIO if p == "/dev/stdout" else p


def _fraction(s: str) -> float:
    try:
        v = float(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not a number: {s}")
    if not 0.0 <= v <= 1.0:
        raise argparse.ArgumentTypeError(f"Should be a 1.0 >= float >= 0.0: {s}")
    return v


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if not isinstance(err, BamStatsError):
        logging.getLogger("bamgroupstats").debug("Unexpected error", exc_info=err)

    sys.stderr.write(f"{err.__class__.__name__}: {err}\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-@", "--threads", type=int, default=0, help="Threads for BAM/CRAM (de)compression."
    )
    p.add_argument("--log-file", default=None, help="Also write log messages to this file.")
    p.add_argument("--no-progress", action="store_true", help="Do not show a progress bar.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def _add_rewrite_outputs(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-i", "--input", default=STDIO, type=_path_exists, help="[bc]ram/sam input [stdin]."
    )
    p.add_argument("-o", "--output", default=STDIO, type=_output_path, help="Output path [stdout].")
    p.add_argument("-C", "--cram", action="store_true", help="Write CRAM [default: BAM].")
    p.add_argument(
        "-x",
        "--index",
        action="store_true",
        help="Build an index next to the output (not valid when writing to stdout).",
    )
    p.add_argument(
        "-r",
        "--reference",
        default=None,
        type=_path_exists,
        help="Reference FASTA for CRAM input/output instead of @SQ header lookups.",
    )
    p.add_argument(
        "-l",
        "--compression-level",
        type=int,
        default=None,
        choices=range(0, 10),
        metavar="0-9",
        help="Compression level for the output.",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bamgroupstats",
        description=(
            "bamgroupstats: per-read-group alignment statistics (read counts, duplicates, "
            "GC, divergence, insert sizes) and mismatch-rate QC flagging for BAM/CRAM files."
        ),
    )
    p.add_argument("--version", action="version", version=f"bamgroupstats {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common tasks.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny BAM with two read groups for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # stats
    # -----------------
    s = sub.add_parser(
        "stats",
        help="Per read group and mate statistics for a BAM/CRAM/SAM file.",
    )
    s.add_argument(
        "-i", "--input", default=STDIO, type=_path_exists, help="File to read [stdin]."
    )
    s.add_argument("-o", "--output", default=STDIO, type=_output_path, help="TSV output [stdout].")
    s.add_argument(
        "-r",
        "--ref-file",
        default=None,
        type=_path_exists,
        help="Reference FASTA for CRAM input.",
    )
    s.add_argument(
        "-a",
        "--rna",
        action="store_true",
        help=(
            "RNA mode: insert sizes are re-estimated ignoring anything outside "
            "mean +/- k*sd, and secondary alignments are counted."
        ),
    )
    s.add_argument(
        "--trim-k",
        type=float,
        default=DEFAULT_TRIM_K,
        help="Standard deviations kept around the mean when trimming (RNA mode).",
    )
    s.add_argument(
        "--max-trim-iterations",
        type=int,
        default=DEFAULT_MAX_TRIM_ITERATIONS,
        help="Maximum number of trimming passes (RNA mode).",
    )
    s.add_argument(
        "--skip-bad-records",
        action="store_true",
        help="Warn and skip malformed records instead of aborting.",
    )
    s.add_argument("--json", default=None, help="Also write a machine-readable summary JSON.")
    s.add_argument(
        "--report-dir",
        default=None,
        help="Write an HTML report with insert-size plots into this directory.",
    )
    _add_common(s)

    # -----------------
    # mismatch-qc
    # -----------------
    m = sub.add_parser(
        "mismatch-qc",
        help="Mark reads as QCFAIL where the mismatch rate is higher than a threshold.",
    )
    _add_rewrite_outputs(m)
    m.add_argument(
        "-t",
        "--mismatch-threshold",
        type=_fraction,
        default=DEFAULT_MISMATCH_THRESHOLD,
        help=f"Mismatch fraction above which a read is QC-failed (default: {DEFAULT_MISMATCH_THRESHOLD}).",
    )
    _add_common(m)

    # -----------------
    # flag-modifier
    # -----------------
    f = sub.add_parser(
        "flag-modifier",
        help="Remove or reinstate QCFAIL on reads carrying the mismatch QC tag.",
    )
    _add_rewrite_outputs(f)
    mode = f.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "-m", "--remove", action="store_true", help="Remove QCFAIL where the mm tag is present."
    )
    mode.add_argument(
        "-p", "--replace", action="store_true", help="Reinstate QCFAIL where the mm tag is present."
    )
    _add_common(f)

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "bamgroupstats quickstart (copy/paste):",
        "",
        "1) Per read group statistics:",
        "   bamgroupstats stats -i sample.bam -o sample.bas.tsv",
        "   Add --report-dir report/ for an HTML report, --json stats.json for JSON.",
        "",
        "2) RNA-seq (trim insert-size outliers, count secondary alignments):",
        "   bamgroupstats stats -i sample.bam -o sample.bas.tsv --rna --trim-k 2",
        "",
        "3) Mark divergent reads as QC fail, then undo it later:",
        "   bamgroupstats mismatch-qc -i in.bam -o marked.bam -t 0.05 -x",
        "   bamgroupstats flag-modifier -i marked.bam -o restored.bam --remove",
        "",
        "Tip: bamgroupstats make-toy-data --outdir toy/ creates a small BAM to try these on.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def _log_file(args: argparse.Namespace) -> Optional[Path]:
    return Path(args.log_file).expanduser().resolve() if args.log_file else None


def cmd_stats(args: argparse.Namespace) -> int:
    log_path = _log_file(args)
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("bamgroupstats")
    logger.info("bamgroupstats %s", __version__)

    try:
        config = StatsConfig(
            rna=bool(args.rna),
            trim_k=float(args.trim_k),
            max_trim_iterations=int(args.max_trim_iterations),
            on_record_error="skip" if args.skip_bad_records else "abort",
        )
        if args.ref_file is None and str(args.input).endswith(".cram"):
            logger.warning(
                "No reference file provided for a CRAM input; if the reference in the CRAM "
                "header can't be located reading may fail."
            )

        run = collect_stats(
            args.input,
            config=config,
            reference=args.ref_file,
            threads=int(args.threads),
            progress=not bool(args.no_progress),
        )
        summaries = estimate_all(run.accumulator, config)
        rows = build_rows(run, summaries)

        write_stats_tsv(rows, args.output, rna=config.rna)
        if args.json is not None:
            write_json(args.json, build_summary(run, rows))
        if args.report_dir is not None:
            render_report(
                outdir=args.report_dir,
                version=__version__,
                run=run,
                rows=rows,
                summaries=summaries,
            )
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def _qc_output_config(args: argparse.Namespace) -> QcOutputConfig:
    return QcOutputConfig(
        cram=bool(args.cram),
        reference=args.reference,
        compression_level=args.compression_level,
        threads=int(args.threads),
        index=bool(args.index),
    )


def cmd_mismatch_qc(args: argparse.Namespace) -> int:
    log_path = _log_file(args)
    _setup_logging(args.verbose, logfile=log_path)

    try:
        summary = run_mismatch_qc(
            args.input,
            args.output,
            threshold=float(args.mismatch_threshold),
            output_config=_qc_output_config(args),
            command_line=" ".join(sys.argv),
            progress=not bool(args.no_progress),
        )
        sys.stderr.write(
            f"Processed {summary['records_total']} reads in total, "
            f"marked {summary['records_modified']} as qc_failed.\n"
        )
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_flag_modifier(args: argparse.Namespace) -> int:
    log_path = _log_file(args)
    _setup_logging(args.verbose, logfile=log_path)

    try:
        summary = run_flag_modifier(
            args.input,
            args.output,
            mode="remove" if args.remove else "replace",
            output_config=_qc_output_config(args),
            command_line=" ".join(sys.argv),
            progress=not bool(args.no_progress),
        )
        sys.stderr.write(
            f"Processed {summary['records_total']} reads in total, "
            f"modified {summary['records_modified']} flags.\n"
        )
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
    if args.cmd == "stats":
        return cmd_stats(args)
    if args.cmd == "mismatch-qc":
        return cmd_mismatch_qc(args)
    if args.cmd == "flag-modifier":
        return cmd_flag_modifier(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
