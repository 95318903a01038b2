"""bamgroupstats: per-read-group alignment statistics and mismatch QC for BAM/CRAM.

Public API is intentionally small; most users should use the CLI:

    bamgroupstats stats -i sample.bam -o sample.bas

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
