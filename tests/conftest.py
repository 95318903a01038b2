from pathlib import Path
from typing import List, Optional, Tuple

import pysam
import pytest

SEQ_MIXED = "ACGTACGTACGTACGTACGT"  # 10 G/C
SEQ_AT = "AAAAATTTTTAAAAATTTTT"  # 0 G/C
SEQ_GC = "GGGGGCCCCCGGGGGCCCCC"  # 20 G/C

HEADER = {
    "HD": {"VN": "1.6", "SO": "unsorted"},
    "SQ": [{"SN": "1", "LN": 10000}],
    "RG": [
        {"ID": "29976", "SM": "PD1234a", "LB": "PD1234a LIB1", "PL": "ILLUMINA", "PU": "5178_6"},
        {"ID": "29978", "SM": "PD1234a", "LB": "PD1234a LIB1", "PL": "ILLUMINA", "PU": "5085_6"},
    ],
}


def make_read(
    seq: str,
    *,
    flag: int = 0,
    cigar: Optional[List[Tuple[int, int]]] = None,
    md: Optional[str] = None,
    rg: Optional[str] = None,
    tlen: int = 0,
    start: int = 100,
    name: str = "r1",
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = flag
    if flag & 0x4:
        a.reference_id = -1
        a.reference_start = -1
    else:
        a.reference_id = 0
        a.reference_start = start
        a.mapping_quality = 60
        a.cigartuples = cigar if cigar is not None else [(0, len(seq))]
    if flag & 0x1:
        a.next_reference_id = 0
        a.next_reference_start = start
        a.template_length = tlen
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    if md is not None:
        a.set_tag("MD", md)
    if rg is not None:
        a.set_tag("RG", rg)
    return a


def fixture_reads() -> List[pysam.AlignedSegment]:
    """Two named read groups plus reads that land in the catch-all bucket."""
    return [
        # read group 29976, first in pair
        make_read(SEQ_MIXED, flag=99, md="20", rg="29976", tlen=150, name="p1"),
        make_read(SEQ_MIXED, flag=147, md="10A9", rg="29976", tlen=-150, name="p1"),
        make_read(SEQ_MIXED, flag=99 | 0x400, cigar=[(4, 5), (0, 15)], md="7C7", rg="29976",
                  tlen=200, name="p2"),
        make_read(SEQ_AT, flag=69, rg="29976", name="u1"),
        make_read(SEQ_GC, flag=99 | 0x200, cigar=[(0, 8), (2, 2), (0, 12)], md="8^AG3T8",
                  rg="29976", tlen=180, name="p3"),
        # no read group / undeclared read group
        make_read(SEQ_MIXED, flag=0, name="s1"),
        make_read(SEQ_AT, flag=16, cigar=[(0, 10), (4, 10)], md="2G7", rg="nope", name="s2"),
        # secondary and supplementary
        make_read(SEQ_GC, flag=99 | 0x100, md="20", rg="29976", tlen=150, name="sec"),
        make_read(SEQ_GC, flag=99 | 0x800, md="20", rg="29976", tlen=150, name="sup"),
        # read group 29978
        make_read(SEQ_GC, flag=137, cigar=[(0, 3), (1, 1), (0, 16)], md="18A0", rg="29978",
                  name="p4"),
        make_read(SEQ_GC, flag=69, rg="29978", name="u2"),
        make_read(SEQ_MIXED, flag=0x1 | 0x2 | 0x80 | 0x200 | 0x400, md="0A0C18", rg="29978",
                  tlen=-300, name="p5"),
    ]


@pytest.fixture
def stats_bam(tmp_path: Path) -> Path:
    bam_path = tmp_path / "stats.bam"
    with pysam.AlignmentFile(str(bam_path), "wb", header=HEADER) as bam:
        for read in fixture_reads():
            bam.write(read)
    return bam_path
