from __future__ import annotations

import logging
from typing import Dict, Sequence, Tuple

import numpy as np

from .accumulator import StatsAccumulator
from .config import DEFAULT_MAX_TRIM_ITERATIONS, DEFAULT_TRIM_K, StatsConfig
from .models import InsertSizeSummary

logger = logging.getLogger(__name__)


def trim_outliers(
    values: np.ndarray,
    *,
    k: float = DEFAULT_TRIM_K,
    max_iterations: int = DEFAULT_MAX_TRIM_ITERATIONS,
) -> Tuple[np.ndarray, int]:
    """Iteratively drop samples outside ``mean ± k*sd``.

    Stops when a pass removes nothing or after ``max_iterations`` passes.
    Returns the kept samples and the number of passes run.
    """
    kept = values
    iterations = 0
    while iterations < max_iterations and kept.size > 0:
        iterations += 1
        mean = kept.mean()
        sd = kept.std()
        mask = (kept >= mean - k * sd) & (kept <= mean + k * sd)
        n_keep = int(mask.sum())
        if n_keep == kept.size or n_keep == 0:
            break
        kept = kept[mask]
    return kept, iterations


def estimate(
    samples: Sequence[int],
    *,
    rna: bool = False,
    k: float = DEFAULT_TRIM_K,
    max_iterations: int = DEFAULT_MAX_TRIM_ITERATIONS,
) -> InsertSizeSummary:
    """Summarise an insert-size sample list.

    The standard deviation is the population value (``ddof=0``). In RNA mode the
    untrimmed mean/sd are still reported next to the trimmed ones.
    """
    values = np.asarray(samples, dtype=np.float64)
    if values.size == 0:
        return InsertSizeSummary(n=0, mean=0.0, sd=0.0, median=0.0, mad=0.0)

    median = float(np.median(values))
    summary = dict(
        n=int(values.size),
        mean=float(values.mean()),
        sd=float(values.std()),
        median=median,
        mad=float(np.median(np.abs(values - median))),
    )
    if not rna:
        return InsertSizeSummary(**summary)

    kept, iterations = trim_outliers(values, k=k, max_iterations=max_iterations)
    if kept.size < values.size:
        logger.debug("Trimmed %d of %d insert sizes", values.size - kept.size, values.size)
    return InsertSizeSummary(
        **summary,
        trimmed_n=int(kept.size),
        trimmed_mean=float(kept.mean()),
        trimmed_sd=float(kept.std()),
        iterations=iterations,
    )


def estimate_all(
    accumulator: StatsAccumulator, config: StatsConfig
) -> Dict[Tuple[int, int], InsertSizeSummary]:
    """Insert-size summaries for every touched bucket, keyed by ``(group_idx, mate_idx)``."""
    return {
        (group_idx, mate_idx): estimate(
            stats.insert_sizes,
            rna=config.rna,
            k=config.trim_k,
            max_iterations=config.max_trim_iterations,
        )
        for group_idx, mate_idx, stats in accumulator.buckets()
    }
