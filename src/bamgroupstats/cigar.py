"""CIGAR helpers.

Operation codes are the SAM ones as exposed by ``pysam``:
M=0, I=1, D=2, N=3, S=4, H=5, P=6, ==7, X=8.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import pysam

CigarOps = Optional[Iterable[Tuple[int, int]]]

_ALIGNED_OPS = frozenset((pysam.CMATCH, pysam.CEQUAL, pysam.CDIFF))
_QUERY_OPS = frozenset((pysam.CMATCH, pysam.CINS, pysam.CSOFT_CLIP, pysam.CEQUAL, pysam.CDIFF))


def mapped_base_count(ops: CigarOps) -> int:
    """Number of bases aligned to the reference (M, = and X operations)."""
    if not ops:
        return 0
    return sum(length for op, length in ops if op in _ALIGNED_OPS)


def insertion_count(ops: CigarOps) -> int:
    """Number of insertion operations (not inserted bases)."""
    if not ops:
        return 0
    return sum(1 for op, _ in ops if op == pysam.CINS)


def deletion_count(ops: CigarOps) -> int:
    """Number of deletion operations (not deleted bases)."""
    if not ops:
        return 0
    return sum(1 for op, _ in ops if op == pysam.CDEL)


def query_consumed(ops: CigarOps) -> int:
    """Number of read bases the CIGAR walks over (hard clips excluded)."""
    if not ops:
        return 0
    return sum(length for op, length in ops if op in _QUERY_OPS)
