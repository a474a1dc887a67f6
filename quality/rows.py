"""
quality/rows.py

Pull-based CSV row iteration over a binary stream.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator
from typing import BinaryIO


def iter_csv_rows(stream: BinaryIO, *, encoding: str = "utf-8-sig") -> Iterator[list[str]]:
    """
    Yield one list of raw field strings per CSV record, header included.

    Blank lines are yielded as a single empty field so they count as rows.
    The underlying binary stream is left open for the caller to close.
    """

    text_stream = io.TextIOWrapper(stream, encoding=encoding, newline="")
    try:
        for record in csv.reader(text_stream):
            yield record if record else [""]
    finally:
        try:
            text_stream.detach()
        except ValueError:
            pass


def dedupe_header(header: list[str]) -> list[str]:
    """
    Make header names unique by suffixing repeats with ``_1``, ``_2``, ...
    """

    seen: dict[str, int] = {}
    names: list[str] = []
    for raw_name in header:
        name = raw_name.strip()
        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            seen[candidate] = 0
            names.append(candidate)
        else:
            seen[name] = 0
            names.append(name)
    return names
