"""Per-read divergence from the MD tag.

The MD string interleaves runs of matching reference bases (decimal digits),
single mismatched reference bases (a letter) and deletions (``^`` followed by
the deleted reference bases). For example ``10A5^AC6`` reads as 10 matches,
one mismatch, 5 matches, a two-base deletion and 6 matches.

Divergence is scored as::

    total_map = matches + mismatches - n_deletion_ops
    fraction = (mismatches + n_insertion_ops) / total_map

where a whole deletion run counts as a single mismatch.
"""

from __future__ import annotations

import logging
import string
from typing import Optional, Tuple

from .cigar import CigarOps, deletion_count, insertion_count
from .errors import TagParseError
from .models import DivergenceResult

logger = logging.getLogger(__name__)

_DIGITS = frozenset(string.digits)
_BASES = frozenset(string.ascii_letters)

# parser states
_DIGIT_RUN = "digit-run"
_MISMATCH = "literal-mismatch"
_DELETION = "deletion-run"

_NO_DIVERGENCE = DivergenceResult(mismatch_bases=0, fraction=0.0)


def parse_md(md: str) -> Tuple[int, int]:
    """Parse an MD string into ``(match_count, mismatch_count)``.

    Raises
    ------
    TagParseError
        If the string is empty, contains a character that is neither a digit,
        a base nor ``^``, or has a ``^`` not followed by any deleted base.
    """
    if not md:
        raise TagParseError("Empty MD tag", md=md, offset=0)

    matches = 0
    mismatches = 0
    run = ""
    deleted = 0
    state = _DIGIT_RUN

    for offset, ch in enumerate(md):
        if ch in _DIGITS:
            if state == _DELETION and deleted == 0:
                raise TagParseError("Deletion without bases in MD tag", md=md, offset=offset)
            run += ch
            state = _DIGIT_RUN
            continue

        if run:
            matches += int(run)
            run = ""

        if ch == "^":
            if state == _DELETION and deleted == 0:
                raise TagParseError("Deletion without bases in MD tag", md=md, offset=offset)
            mismatches += 1
            deleted = 0
            state = _DELETION
        elif ch in _BASES:
            if state == _DELETION:
                deleted += 1
            else:
                mismatches += 1
                state = _MISMATCH
        else:
            raise TagParseError(f"Unexpected character {ch!r} in MD tag", md=md, offset=offset)

    if state == _DELETION and deleted == 0:
        raise TagParseError("Deletion without bases in MD tag", md=md, offset=len(md))
    if run:
        matches += int(run)

    return matches, mismatches


def score(md: Optional[str], ops: CigarOps) -> DivergenceResult:
    """Score the divergence of one record.

    A missing MD tag, a malformed MD tag and a zero aligned total all score as
    no divergence.
    """
    if md is None:
        return _NO_DIVERGENCE

    try:
        matches, mismatches = parse_md(md)
    except TagParseError as e:
        logger.debug("Ignoring unparseable MD tag %r: %s", md, e)
        return _NO_DIVERGENCE

    ops = list(ops) if ops else []
    n_ins = insertion_count(ops)
    n_del = deletion_count(ops)

    total_map = matches + mismatches - n_del
    if total_map <= 0:
        logger.debug("Zero aligned total for MD tag %r; divergence fraction set to 0", md)
        return DivergenceResult(mismatch_bases=mismatches, fraction=0.0)

    return DivergenceResult(
        mismatch_bases=mismatches,
        fraction=float(mismatches + n_ins) / float(total_map),
    )
