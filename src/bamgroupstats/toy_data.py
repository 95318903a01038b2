from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pysam

from .utils import ensure_outdir, write_json

READ_LENGTH = 50
CONTIG = "chr1"
CONTIG_LENGTH = 2000

READ_GROUPS = [
    {"ID": "toy.1", "SM": "TOY", "LB": "TOY_LIB1", "PL": "ILLUMINA", "PU": "TOYRUN_1"},
    {"ID": "toy.2", "SM": "TOY", "LB": "TOY_LIB2", "PL": "ILLUMINA", "PU": "TOYRUN_2"},
]


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _read_with_mismatches(ref: str, positions: List[int]) -> Tuple[str, str]:
    """Return (read sequence, MD string) for ``ref`` with substitutions at ``positions``."""
    seq = list(ref)
    md_parts: List[str] = []
    last = 0
    for p in sorted(set(positions)):
        seq[p] = _mutate_base(ref[p])
        md_parts.append(f"{p - last}{ref[p]}")
        last = p + 1
    md_parts.append(str(len(ref) - last))
    return "".join(seq), "".join(md_parts)


def _make_read(
    name: str,
    *,
    flag: int,
    start0: int,
    seq: str,
    md: Optional[str],
    rg: Optional[str],
    mate_start0: int = -1,
    tlen: int = 0,
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = 0 if flag & 0x4 else mapq
    if not (flag & 0x4):
        a.cigartuples = [(0, len(seq))]
    if flag & 0x1:
        a.next_reference_id = 0
        a.next_reference_start = mate_start0
        a.template_length = tlen
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    if md is not None:
        a.set_tag("MD", md, value_type="Z")
    if rg is not None:
        a.set_tag("RG", rg, value_type="Z")
    return a


def make_toy_data(*, outdir: str | Path, n_pairs: int = 40, seed: int = 7) -> Dict[str, str]:
    """Create a tiny BAM with two read groups suitable for quick demos/tests.

    The BAM contains properly paired reads with a spread of insert sizes (plus
    one chimeric-looking outlier), duplicates, a pair with an unmapped mate, a
    read without a read group and one highly divergent read.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)
    ref_seq = "".join(rng.choice("ACGT") for _ in range(CONTIG_LENGTH))

    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": CONTIG, "LN": CONTIG_LENGTH}],
        "RG": [dict(rg) for rg in READ_GROUPS],
    }

    reads: List[pysam.AlignedSegment] = []
    for i in range(n_pairs):
        rg = READ_GROUPS[i % 2]["ID"]
        insert = 900 if i == n_pairs - 1 else int(round(rng.gauss(200, 15)))
        start1 = 20 + 10 * i
        start2 = start1 + insert - READ_LENGTH
        dup = 0x400 if i % 7 == 3 else 0

        mm1 = [rng.randrange(READ_LENGTH)] if rng.random() < 0.3 else []
        seq1, md1 = _read_with_mismatches(ref_seq[start1 : start1 + READ_LENGTH], mm1)
        seq2, md2 = _read_with_mismatches(ref_seq[start2 : start2 + READ_LENGTH], [])

        reads.append(
            _make_read(
                f"pair{i}", flag=0x1 | 0x2 | 0x20 | 0x40 | dup, start0=start1, seq=seq1, md=md1,
                rg=rg, mate_start0=start2, tlen=insert,
            )
        )
        reads.append(
            _make_read(
                f"pair{i}", flag=0x1 | 0x2 | 0x10 | 0x80 | dup, start0=start2, seq=seq2, md=md2,
                rg=rg, mate_start0=start1, tlen=-insert,
            )
        )

    # pair with an unmapped mate, placed at the mapped mate's position
    start = 500
    seq, md = _read_with_mismatches(ref_seq[start : start + READ_LENGTH], [])
    reads.append(
        _make_read("orphan", flag=0x1 | 0x8 | 0x40, start0=start, seq=seq, md=md,
                   rg=READ_GROUPS[0]["ID"], mate_start0=start)
    )
    reads.append(
        _make_read("orphan", flag=0x1 | 0x4 | 0x80, start0=start,
                   seq="".join(rng.choice("ACGT") for _ in range(READ_LENGTH)), md=None,
                   rg=READ_GROUPS[0]["ID"], mate_start0=start)
    )

    # single-end read without a read group
    start = 700
    seq, md = _read_with_mismatches(ref_seq[start : start + READ_LENGTH], [])
    reads.append(_make_read("no_rg", flag=0, start0=start, seq=seq, md=md, rg=None))

    # divergent single-end read: 5 mismatches in 50 bases
    start = 900
    seq, md = _read_with_mismatches(ref_seq[start : start + READ_LENGTH], [3, 12, 21, 30, 44])
    reads.append(
        _make_read("divergent", flag=0, start0=start, seq=seq, md=md, rg=READ_GROUPS[1]["ID"])
    )

    reads.sort(key=lambda r: r.reference_start)

    bam_path = outdir_p / "toy.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)

    pysam.index(str(bam_path))

    summary = {
        "bam": str(bam_path),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
