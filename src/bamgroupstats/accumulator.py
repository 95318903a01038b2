from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Set, Tuple

from .models import PerBucketStats

logger = logging.getLogger(__name__)

MATES = (0, 1)


class StatsAccumulator:
    """Fixed ``[n_groups][2]`` table of per-bucket counters.

    Buckets are created on first touch. Indices come from a
    :class:`~bamgroupstats.readgroups.ReadGroupCatalog`, so the table never grows.
    """

    def __init__(self, n_groups: int) -> None:
        if n_groups < 1:
            raise ValueError("n_groups must be >= 1")
        self._table: List[List[Optional[PerBucketStats]]] = [
            [None, None] for _ in range(n_groups)
        ]
        self._length_warned: Set[Tuple[int, int]] = set()

    @property
    def n_groups(self) -> int:
        return len(self._table)

    def get(self, group_idx: int, mate_idx: int) -> Optional[PerBucketStats]:
        return self._table[group_idx][mate_idx]

    def bucket(self, group_idx: int, mate_idx: int, read_length: int) -> PerBucketStats:
        """Return the bucket, creating it if untouched.

        The first positive ``read_length`` pins the bucket's read length. A
        length of 0 (no stored sequence) never pins and never warns.
        """
        stats = self._table[group_idx][mate_idx]
        if stats is None:
            stats = PerBucketStats(read_length=max(0, int(read_length)))
            self._table[group_idx][mate_idx] = stats
            return stats
        if read_length <= 0:
            return stats
        if stats.read_length == 0:
            stats.read_length = int(read_length)
        elif read_length != stats.read_length and (group_idx, mate_idx) not in self._length_warned:
            self._length_warned.add((group_idx, mate_idx))
            logger.warning(
                "Read length %d differs from %d already recorded for read group %d, mate %d; "
                "keeping the first value.",
                read_length,
                stats.read_length,
                group_idx,
                mate_idx + 1,
            )
        return stats

    def buckets(self) -> Iterator[Tuple[int, int, PerBucketStats]]:
        """Yield ``(group_idx, mate_idx, stats)`` for touched buckets in index order."""
        for group_idx, row in enumerate(self._table):
            for mate_idx in MATES:
                stats = row[mate_idx]
                if stats is not None:
                    yield group_idx, mate_idx, stats

    def merge(self, other: "StatsAccumulator") -> None:
        """Fold a shard's accumulator into this one.

        Both must have been built from the same catalog. Insert-size samples are
        concatenated, so estimation has to run after all shards are merged.
        """
        if other.n_groups != self.n_groups:
            raise ValueError(
                f"Cannot merge accumulators of {other.n_groups} and {self.n_groups} read groups"
            )
        for group_idx, mate_idx, theirs in other.buckets():
            ours = self.bucket(group_idx, mate_idx, theirs.read_length)
            ours.merge(theirs)
