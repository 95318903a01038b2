"""Run configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

DEFAULT_MISMATCH_THRESHOLD = 0.05
DEFAULT_TRIM_K = 2.0
DEFAULT_MAX_TRIM_ITERATIONS = 10

RECORD_ERROR_POLICIES = ("abort", "skip")


@dataclass(frozen=True)
class StatsConfig:
    """Statistics collection parameters.

    rna:
        Use iterative outlier trimming for insert sizes and keep secondary
        alignments.
    trim_k:
        Samples further than ``trim_k`` standard deviations from the mean are
        dropped on each trimming pass.
    max_trim_iterations:
        Upper bound on trimming passes.
    on_record_error:
        ``abort`` to stop the run on a malformed record, ``skip`` to warn and
        carry on.
    """

    rna: bool = False
    trim_k: float = DEFAULT_TRIM_K
    max_trim_iterations: int = DEFAULT_MAX_TRIM_ITERATIONS
    on_record_error: str = "abort"

    def __post_init__(self) -> None:
        if self.trim_k <= 0:
            raise ValueError("trim_k must be > 0")
        if self.max_trim_iterations < 1:
            raise ValueError("max_trim_iterations must be >= 1")
        if self.on_record_error not in RECORD_ERROR_POLICIES:
            raise ValueError(
                f"on_record_error must be one of {', '.join(RECORD_ERROR_POLICIES)}"
            )


@dataclass(frozen=True)
class QcOutputConfig:
    """How rewritten alignments are written."""

    cram: bool = False
    reference: Optional[str] = None
    compression_level: Optional[int] = None
    threads: int = 0
    index: bool = False

    def __post_init__(self) -> None:
        if self.compression_level is not None and not 0 <= self.compression_level <= 9:
            raise ValueError("compression_level must be between 0 and 9")
        if self.threads < 0:
            raise ValueError("threads must be >= 0")

    def write_mode(self) -> str:
        if self.cram:
            return "wc"
        if self.compression_level == 0:
            return "wb0"
        return "wb"

    def format_options(self) -> List[str]:
        # pysam only accepts a fixed set of mode strings; other levels go through hts options
        if self.compression_level is None or self.write_mode() == "wb0":
            return []
        return [f"level={self.compression_level}"]
