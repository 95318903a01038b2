from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pysam

from .accumulator import StatsAccumulator
from .errors import HeaderError
from .models import ReadGroupEntry

logger = logging.getLogger(__name__)

HeaderLike = Union[pysam.AlignmentHeader, Mapping[str, Any]]


class ReadGroupCatalog:
    """Dense index over the read groups declared in a header.

    Read groups get indices ``0..N-1`` in header order. Index ``N`` is reserved
    for records whose ``RG`` tag is missing or names an undeclared group.
    """

    def __init__(self, entries: Iterable[ReadGroupEntry]) -> None:
        self._entries: Tuple[ReadGroupEntry, ...] = tuple(entries)
        self._index: Dict[str, int] = {}
        for i, entry in enumerate(self._entries):
            if entry.identifier in self._index:
                raise ValueError(f"Duplicate read group identifier: {entry.identifier}")
            self._index[entry.identifier] = i

    @classmethod
    def build(cls, header_read_groups: Iterable[Mapping[str, Any]]) -> "ReadGroupCatalog":
        """Build a catalog from ``@RG`` header records (pysam header dict form)."""
        entries: List[ReadGroupEntry] = []
        seen = set()
        for n, rg in enumerate(header_read_groups, start=1):
            rg_id = rg.get("ID")
            if rg_id is None or str(rg_id) == "":
                raise HeaderError(f"@RG line {n} has no ID field")
            rg_id = str(rg_id)
            if rg_id in seen:
                logger.warning("Read group %s declared more than once; keeping the first.", rg_id)
                continue
            seen.add(rg_id)
            entries.append(
                ReadGroupEntry(
                    identifier=rg_id,
                    sample=str(rg.get("SM", "")),
                    library=str(rg.get("LB", "")),
                    platform=str(rg.get("PL", "")),
                    platform_unit=str(rg.get("PU", "")),
                )
            )
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries) + 1

    @property
    def catch_all_index(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[ReadGroupEntry, ...]:
        return self._entries

    def index_of(self, tag: Optional[str]) -> int:
        if tag is None:
            return self.catch_all_index
        return self._index.get(tag, self.catch_all_index)

    def entry(self, index: int) -> Optional[ReadGroupEntry]:
        """Entry for ``index``; ``None`` for the catch-all bucket."""
        if index == self.catch_all_index:
            return None
        return self._entries[index]


@dataclass(frozen=True)
class HeaderTables:
    """Everything derived from a header before the first record is read."""

    catalog: ReadGroupCatalog
    accumulator: StatsAccumulator


def _header_dict(header: HeaderLike) -> Dict[str, Any]:
    if isinstance(header, pysam.AlignmentHeader):
        return header.to_dict()
    return dict(header)


def read_header_tables(header: HeaderLike) -> HeaderTables:
    """Build the read-group catalog and an empty accumulator sized to match."""
    read_groups = _header_dict(header).get("RG", [])
    catalog = ReadGroupCatalog.build(read_groups)
    logger.info("Header declares %d read group(s)", len(catalog) - 1)
    return HeaderTables(catalog=catalog, accumulator=StatsAccumulator(len(catalog)))


def open_alignment(
    path: str,
    *,
    reference: Optional[str] = None,
    threads: int = 0,
) -> pysam.AlignmentFile:
    """Open a SAM/BAM/CRAM file (``-`` for stdin) for reading.

    Raises
    ------
    HeaderError
        If the file cannot be opened or its header cannot be parsed.
    """
    try:
        return pysam.AlignmentFile(
            path,
            "r",
            reference_filename=reference,
            threads=max(1, int(threads)),
            check_sq=False,
        )
    except (OSError, ValueError) as e:
        raise HeaderError(f"Error reading header from '{path}': {e}", path=path) from e
