from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

import pysam
from tqdm import tqdm

from .accumulator import StatsAccumulator
from .cigar import mapped_base_count, query_consumed
from .config import StatsConfig
from .divergence import score
from .errors import RecordError
from .readgroups import ReadGroupCatalog, open_alignment, read_header_tables

logger = logging.getLogger(__name__)

_GC = frozenset("GCgc")


def gc_count(seq: Optional[str]) -> int:
    if not seq:
        return 0
    return sum(1 for base in seq if base in _GC)


def _optional_tag(record: pysam.AlignedSegment, tag: str) -> Optional[str]:
    if record.has_tag(tag):
        return str(record.get_tag(tag))
    return None


def check_record(record: pysam.AlignedSegment) -> None:
    """Raise RecordError if the CIGAR walks past the end of the stored sequence."""
    seq = record.query_sequence
    if seq is None or record.cigartuples is None:
        return
    consumed = query_consumed(record.cigartuples)
    if consumed > len(seq):
        raise RecordError(
            f"Record {record.query_name}: CIGAR {record.cigarstring} consumes {consumed} "
            f"bases but the sequence has {len(seq)}",
            qname=record.query_name,
        )


def read_length(record: pysam.AlignedSegment) -> int:
    """Stored sequence length, or the CIGAR-inferred length when SEQ is ``*``."""
    if record.query_length:
        return record.query_length
    return record.infer_read_length() or 0


def _new_counts() -> Dict[str, int]:
    return {
        "records_total": 0,
        "records_classified": 0,
        "records_catch_all": 0,
        "skipped_secondary": 0,
        "skipped_supplementary": 0,
        "skipped_malformed": 0,
    }


class AlignmentClassifier:
    """Routes records into read-group/mate buckets and updates their counters.

    Records must be fed in arrival order from a single thread. For sharded
    runs, give each shard its own accumulator and merge them afterwards.
    """

    def __init__(
        self,
        catalog: ReadGroupCatalog,
        accumulator: StatsAccumulator,
        config: Optional[StatsConfig] = None,
    ) -> None:
        if accumulator.n_groups != len(catalog):
            raise ValueError("Accumulator and catalog sizes differ")
        self.catalog = catalog
        self.accumulator = accumulator
        self.config = config if config is not None else StatsConfig()
        self.counts = _new_counts()

    def _skip(self, record: pysam.AlignedSegment) -> bool:
        if record.is_supplementary:
            self.counts["skipped_supplementary"] += 1
            return True
        # secondary alignments are kept for spliced data
        if record.is_secondary and not self.config.rna:
            self.counts["skipped_secondary"] += 1
            return True
        return False

    def classify(self, record: pysam.AlignedSegment) -> bool:
        """Account for one record. Returns False if the record was skipped."""
        self.counts["records_total"] += 1
        if self._skip(record):
            return False

        try:
            check_record(record)
        except RecordError as e:
            if self.config.on_record_error == "abort":
                raise
            logger.warning("Skipping malformed record: %s", e)
            self.counts["skipped_malformed"] += 1
            return False

        group_idx = self.catalog.index_of(_optional_tag(record, "RG"))
        if group_idx == self.catalog.catch_all_index:
            self.counts["records_catch_all"] += 1
        mate_idx = 1 if record.is_read2 else 0

        stats = self.accumulator.bucket(group_idx, mate_idx, read_length(record))
        stats.count += 1
        if record.is_duplicate:
            stats.dups += 1
        if record.is_qcfail:
            stats.qc_fail += 1

        if record.is_unmapped:
            stats.umap += 1
        else:
            cigar = record.cigartuples
            stats.mapped_bases += mapped_base_count(cigar)
            stats.divergent += score(_optional_tag(record, "MD"), cigar).mismatch_bases
            stats.gc += gc_count(record.query_sequence)
            if record.is_proper_pair:
                stats.proper += 1
                tlen = abs(int(record.template_length))
                if not record.mate_is_unmapped and tlen > 0:
                    stats.insert_sizes.append(tlen)

        self.counts["records_classified"] += 1
        return True

    def process(self, records: Iterable[pysam.AlignedSegment]) -> None:
        for record in records:
            self.classify(record)


@dataclass
class StatsRun:
    """Result of one full statistics pass over an alignment file."""

    path: str
    config: StatsConfig
    catalog: ReadGroupCatalog
    accumulator: StatsAccumulator
    counts: Dict[str, int] = field(default_factory=_new_counts)
    runtime_seconds: float = 0.0


def collect_stats(
    path: str,
    *,
    config: Optional[StatsConfig] = None,
    reference: Optional[str] = None,
    threads: int = 0,
    progress: bool = True,
) -> StatsRun:
    """Read every record of ``path`` and return the accumulated statistics.

    Header problems raise HeaderError; malformed records raise RecordError
    unless the config asks to skip them. Either way no partial result is
    returned.
    """
    t0 = time.time()
    config = config if config is not None else StatsConfig()

    bam = open_alignment(path, reference=reference, threads=threads)
    try:
        tables = read_header_tables(bam.header)
        classifier = AlignmentClassifier(tables.catalog, tables.accumulator, config)

        it: Iterable[pysam.AlignedSegment] = bam.fetch(until_eof=True)
        if progress:
            it = tqdm(it, unit="read", desc="Collecting stats")
        classifier.process(it)
    finally:
        bam.close()

    dt = time.time() - t0
    counts = classifier.counts
    logger.info(
        "Processed %d records (%d classified, %d without a known read group) in %.1f s",
        counts["records_total"],
        counts["records_classified"],
        counts["records_catch_all"],
        dt,
    )
    return StatsRun(
        path=path,
        config=config,
        catalog=tables.catalog,
        accumulator=tables.accumulator,
        counts=counts,
        runtime_seconds=float(dt),
    )
