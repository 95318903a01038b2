from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, TextIO

logger = logging.getLogger(__name__)

STDIO = "-"


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


@contextmanager
def open_text_output(path: str | Path) -> Iterator[TextIO]:
    """Open ``path`` for writing text, or yield stdout for ``-``."""
    if str(path) == STDIO:
        yield sys.stdout
        sys.stdout.flush()
        return
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wt", encoding="utf-8") as f:
        yield f


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def safe_filename(name: str) -> str:
    """Make a read-group identifier usable as part of a file name."""
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in name) or "_"
