"""Readers that produce the rectangular table consumed by the normalizer."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import List


def read_csv_table(path: Path) -> List[List[str]]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        return [list(row) for row in csv.reader(handle)]


def parse_csv_text(text: str) -> List[List[str]]:
    return [list(row) for row in csv.reader(io.StringIO(text))]
