"""A1-style cell address helpers.

Rows and columns are 0-based everywhere in the code; addresses use the
spreadsheet convention of letter columns (bijective base-26, no zero
digit) and 1-based row numbers.
"""

from __future__ import annotations

import re

_ADDR_RE = re.compile(r"^([A-Za-z]+)(\d+)$")
_RANGE_BODY = r"([A-Za-z]+\d+)\s*:\s*([A-Za-z]+\d+)"
_RANGE_RE = re.compile(rf"^\s*{_RANGE_BODY}\s*$")
_RANGE_SEARCH_RE = re.compile(_RANGE_BODY)


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    if idx < 0:
        raise ValueError(f"Column index must be >= 0, got {idx}")
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def make_addr(row: int, col: int) -> str:
    """Build cell address from 0-based row/col."""
    if row < 0:
        raise ValueError(f"Row index must be >= 0, got {row}")
    return f"{index_to_col_letter(col)}{row + 1}"


def parse_addr(addr: str) -> tuple[int, int] | None:
    """Parse 'A1' -> (row_0based, col_0based).

    Letters are case-insensitive and surrounding whitespace is ignored.
    Returns None for anything that is not letters followed by a row
    number >= 1.
    """
    if not isinstance(addr, str):
        return None
    m = _ADDR_RE.match(addr.strip())
    if not m:
        return None
    row = int(m.group(2)) - 1
    if row < 0:
        return None
    return row, col_letter_to_index(m.group(1))


def parse_range(text: str) -> tuple[tuple[int, int], tuple[int, int]] | None:
    """Parse 'A1:C50' into normalised ((r0, c0), (r1, c1)) corners.

    The corners may be given in any order; the result always has
    r0 <= r1 and c0 <= c1.  Returns None when *text* is not two
    addresses joined by a colon.
    """
    if not isinstance(text, str):
        return None
    return _corners(_RANGE_RE.match(text))


def find_range(text: str) -> tuple[tuple[int, int], tuple[int, int]] | None:
    """Like :func:`parse_range`, but take the first range found anywhere in *text*.

    ``"=A1:B3"`` and ``"sales A1:B3"`` both give the A1:B3 corners.
    """
    if not isinstance(text, str):
        return None
    return _corners(_RANGE_SEARCH_RE.search(text))


def _corners(m: re.Match[str] | None) -> tuple[tuple[int, int], tuple[int, int]] | None:
    if not m:
        return None
    start = parse_addr(m.group(1))
    end = parse_addr(m.group(2))
    if start is None or end is None:
        return None
    r0, r1 = sorted((start[0], end[0]))
    c0, c1 = sorted((start[1], end[1]))
    return (r0, c0), (r1, c1)
