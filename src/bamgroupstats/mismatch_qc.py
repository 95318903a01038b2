"""Mismatch-rate QC: mark highly divergent reads as QC-failed, or undo it.

``mismatch-qc`` sets the QC-fail flag (0x200) and an ``mm:A:Y`` tag on every
primary, mapped, non-duplicate read whose mate is not flagged unmapped and whose
MD-derived divergence fraction exceeds a threshold. ``flag-modifier`` later removes or
reinstates the flag on reads carrying that tag, leaving the tag in place so the
two states can be toggled.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable, Optional

import pysam
from tqdm import tqdm

from . import __version__
from .config import DEFAULT_MISMATCH_THRESHOLD, QcOutputConfig
from .divergence import score
from .readgroups import open_alignment

logger = logging.getLogger(__name__)

BAD_FLAGS = (
    pysam.FUNMAP
    | pysam.FMUNMAP
    | pysam.FQCFAIL
    | pysam.FDUP
    | pysam.FSECONDARY
    | pysam.FSUPPLEMENTARY
)

MM_TAG = "mm"
MM_VALUE = "Y"

FLAG_MODES = ("remove", "replace")


def mark_mismatch_qc(
    record: pysam.AlignedSegment, threshold: float = DEFAULT_MISMATCH_THRESHOLD
) -> bool:
    """Flag ``record`` as QC-failed if it is too divergent. Returns True if marked."""
    if record.flag & BAD_FLAGS:
        return False
    md = str(record.get_tag("MD")) if record.has_tag("MD") else None
    if score(md, record.cigartuples).fraction <= threshold:
        return False
    record.flag |= pysam.FQCFAIL
    # set_tag replaces an existing value, so the read never carries two mm tags
    record.set_tag(MM_TAG, MM_VALUE, value_type="A")
    return True


def has_mismatch_tag(record: pysam.AlignedSegment) -> bool:
    return record.has_tag(MM_TAG) and record.get_tag(MM_TAG) == MM_VALUE


def modify_qc_flag(record: pysam.AlignedSegment, mode: str) -> bool:
    """Remove or reinstate QC-fail on a mismatch-tagged read.

    Returns True if the read carries the mismatch tag (and was therefore
    considered), False otherwise.
    """
    if mode not in FLAG_MODES:
        raise ValueError(f"mode must be one of {', '.join(FLAG_MODES)}")
    if not has_mismatch_tag(record):
        return False
    if mode == "remove":
        record.flag &= ~pysam.FQCFAIL
    else:
        record.flag |= pysam.FQCFAIL
    return True


def _output_header(
    bam: pysam.AlignmentFile,
    *,
    program_id: str,
    description: str,
    command_line: Optional[str],
) -> Dict[str, object]:
    header = bam.header.to_dict()
    programs = header.setdefault("PG", [])
    taken = {p.get("ID") for p in programs}
    pg_id = program_id
    n = 1
    while pg_id in taken:
        pg_id = f"{program_id}.{n}"
        n += 1
    entry = {"ID": pg_id, "PN": program_id, "DS": description, "VN": __version__}
    if command_line:
        entry["CL"] = command_line
    if programs:
        entry["PP"] = programs[-1]["ID"]
    programs.append(entry)
    return header


def _rewrite_alignments(
    input_path: str,
    output_path: str,
    *,
    edit: Callable[[pysam.AlignedSegment], bool],
    output_config: QcOutputConfig,
    program_id: str,
    description: str,
    command_line: Optional[str],
    progress: bool,
) -> Dict[str, object]:
    if output_config.index and output_path == "-":
        raise ValueError("Cannot build an index when writing to stdout")

    t0 = time.time()
    total = 0
    modified = 0

    bam_in = open_alignment(
        input_path, reference=output_config.reference, threads=output_config.threads
    )
    try:
        header = _output_header(
            bam_in, program_id=program_id, description=description, command_line=command_line
        )
        logger.debug("Writing %s with mode %s", output_path, output_config.write_mode())
        bam_out = pysam.AlignmentFile(
            output_path,
            output_config.write_mode(),
            header=header,
            reference_filename=output_config.reference,
            threads=max(1, output_config.threads),
            format_options=output_config.format_options(),
        )
        try:
            it: Iterable[pysam.AlignedSegment] = bam_in.fetch(until_eof=True)
            if progress:
                it = tqdm(it, unit="read", desc=program_id)
            for record in it:
                total += 1
                if edit(record):
                    modified += 1
                bam_out.write(record)
        finally:
            bam_out.close()
    finally:
        bam_in.close()

    if output_config.index:
        logger.info("Building index for %s", output_path)
        pysam.index(output_path)

    dt = time.time() - t0
    return {
        "input": input_path,
        "output": output_path,
        "records_total": total,
        "records_modified": modified,
        "runtime_seconds": float(dt),
    }


def run_mismatch_qc(
    input_path: str,
    output_path: str,
    *,
    threshold: float = DEFAULT_MISMATCH_THRESHOLD,
    output_config: Optional[QcOutputConfig] = None,
    command_line: Optional[str] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Copy ``input_path`` to ``output_path`` marking divergent reads as QC-failed."""
    if not 0.0 <= threshold <= 1.0:
        raise ValueError("threshold must be between 0 and 1")

    summary = _rewrite_alignments(
        input_path,
        output_path,
        edit=lambda record: mark_mismatch_qc(record, threshold),
        output_config=output_config if output_config is not None else QcOutputConfig(),
        program_id="bamgroupstats-mismatch-qc",
        description="Marks a read as QCFAIL where the mismatch rate is higher than the threshold",
        command_line=command_line,
        progress=progress,
    )
    summary["threshold"] = float(threshold)
    logger.info(
        "Processed %d reads in total, marked %d as qc_failed.",
        summary["records_total"],
        summary["records_modified"],
    )
    return summary


def run_flag_modifier(
    input_path: str,
    output_path: str,
    *,
    mode: str,
    output_config: Optional[QcOutputConfig] = None,
    command_line: Optional[str] = None,
    progress: bool = True,
) -> Dict[str, object]:
    """Copy ``input_path`` to ``output_path`` removing or reinstating QC-fail on tagged reads."""
    if mode not in FLAG_MODES:
        raise ValueError(f"mode must be one of {', '.join(FLAG_MODES)}")

    summary = _rewrite_alignments(
        input_path,
        output_path,
        edit=lambda record: modify_qc_flag(record, mode),
        output_config=output_config if output_config is not None else QcOutputConfig(),
        program_id="bamgroupstats-flag-modifier",
        description="Removes or reinstates the QC fail flag on reads carrying the mismatch QC tag",
        command_line=command_line,
        progress=progress,
    )
    summary["mode"] = mode
    logger.info(
        "Processed %d reads in total, modified %d flags.",
        summary["records_total"],
        summary["records_modified"],
    )
    return summary
