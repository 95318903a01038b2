from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class ReadGroupEntry:
    """A read group as declared by an ``@RG`` header line.

    Attributes
    ----------
    identifier:
        The ``ID`` field; unique within a catalog.
    sample:
        ``SM`` field, empty if absent.
    library:
        ``LB`` field, empty if absent.
    platform:
        ``PL`` field, empty if absent.
    platform_unit:
        ``PU`` field, empty if absent.
    """

    identifier: str
    sample: str = ""
    library: str = ""
    platform: str = ""
    platform_unit: str = ""


@dataclass(frozen=True)
class DivergenceResult:
    """Mismatch evidence for one record, derived from its MD tag and CIGAR."""

    mismatch_bases: int
    fraction: float


@dataclass
class PerBucketStats:
    """Running counters for one (read group, mate) bucket.

    ``read_length`` is pinned by the first record that touches the bucket.
    """

    read_length: int
    count: int = 0
    dups: int = 0
    gc: int = 0
    umap: int = 0
    divergent: int = 0
    mapped_bases: int = 0
    proper: int = 0
    qc_fail: int = 0
    insert_sizes: List[int] = field(default_factory=list)

    def merge(self, other: "PerBucketStats") -> None:
        """Fold ``other`` into this bucket; sample lists are concatenated."""
        self.count += other.count
        self.dups += other.dups
        self.gc += other.gc
        self.umap += other.umap
        self.divergent += other.divergent
        self.mapped_bases += other.mapped_bases
        self.proper += other.proper
        self.qc_fail += other.qc_fail
        self.insert_sizes.extend(other.insert_sizes)


@dataclass(frozen=True)
class InsertSizeSummary:
    """Insert-size distribution summary for one bucket.

    ``trimmed_*`` fields are only populated in RNA mode.
    """

    n: int
    mean: float
    sd: float
    median: float
    mad: float
    trimmed_n: Optional[int] = None
    trimmed_mean: Optional[float] = None
    trimmed_sd: Optional[float] = None
    iterations: int = 0
