"""Lark-based parser for spreadsheet cell formulas.

Supports:
- In-sheet cell references: ``F2``, ``aa10``, ``$B$3`` (case-insensitive,
  ``$`` markers are accepted and ignored)
- Rectangular ranges: ``A1:C10``
- Cross-sheet references: ``Sheet1!A1``, ``'My Sheet'!A1:B4``
- Named expressions (resolved at evaluation time)
- Arithmetic, comparisons, ``&`` concatenation, postfix percent (%)
- Spreadsheet string literals with ``""`` as an escaped quote
"""

from __future__ import annotations

import re

from lark import Lark, Token, Tree, Visitor

from gridbook.address import col_letter_to_index
from gridbook.formulas.errors import FormulaParseError

# LALR(1) grammar for spreadsheet formulas.
# Operator precedence (lowest to highest):
#   1. Comparison: > < >= <= = <>
#   2. Concatenation: &
#   3. Addition/subtraction: + -
#   4. Multiplication/division: * /
#   5. Unary plus/minus: + -
#   6. Exponentiation: ^ (right-associative)
#   7. Postfix percent: %  (3% = 0.03)
#   8. Atoms: number, bool, string, function call, reference, parenthesized expr
GRAMMAR = r"""
start: "=" expr

?expr: comparison

?comparison: concat
    | comparison ">" concat   -> gt
    | comparison "<" concat   -> lt
    | comparison ">=" concat  -> gte
    | comparison "<=" concat  -> lte
    | comparison "=" concat   -> eq
    | comparison "<>" concat  -> neq

?concat: addition
    | concat "&" addition  -> concat

?addition: multiplication
    | addition "+" multiplication  -> add
    | addition "-" multiplication  -> sub

?multiplication: unary
    | multiplication "*" unary  -> mul
    | multiplication "/" unary  -> div

?unary: exponentiation
    | "-" unary  -> neg
    | "+" unary  -> pos

?exponentiation: postfix
    | postfix "^" unary  -> pow

?postfix: atom
    | postfix "%"  -> percent

?atom: NUMBER                   -> number
    | BOOL                      -> boolean
    | STRING                    -> string
    | NAME "(" args ")"         -> func_call
    | QUOTED_SHEET_RANGE        -> sheet_range_ref
    | SHEET_RANGE               -> sheet_range_ref
    | QUOTED_SHEET_REF          -> sheet_cell_ref
    | SHEET_REF                 -> sheet_cell_ref
    | RANGE                     -> range_ref
    | CELL_REF                  -> cell_ref
    | NAME                      -> name_ref
    | "(" expr ")"

args: expr ("," expr)*
    |

// Cross-sheet ranges and cells: Sheet1!A1:B2, 'My Sheet'!A1
QUOTED_SHEET_RANGE.4: /'[^']+'!\$?[A-Za-z]{1,3}\$?[0-9]+:\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])/
SHEET_RANGE.4: /[A-Za-z_][A-Za-z0-9_]*!\$?[A-Za-z]{1,3}\$?[0-9]+:\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])/
QUOTED_SHEET_REF.3: /'[^']+'!\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])/
SHEET_REF.3: /[A-Za-z_][A-Za-z0-9_]*!\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])/

// In-sheet range and cell: A1:C3, $B$2
RANGE.3: /\$?[A-Za-z]{1,3}\$?[0-9]+:\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_])/
CELL_REF.2: /\$?[A-Za-z]{1,3}\$?[0-9]+(?![A-Za-z0-9_(])/

BOOL.2: /(?i:TRUE|FALSE)(?![A-Za-z0-9_.(])/
NAME.1: /[A-Za-z_][A-Za-z0-9_.]*/
NUMBER: /(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?/
STRING: /"(?:[^"]|"")*"/

%import common.WS
%ignore WS
"""

_parser = Lark(GRAMMAR, parser="lalr", start="start")

_CELL_RE = re.compile(r"^\$?([A-Za-z]{1,3})\$?([0-9]+)$")


def parse_formula(text: str) -> Tree:
    """Parse a formula string (must start with ``=``) into a Lark Tree.

    Args:
        text: The formula text, e.g. ``"=SUM(A1:A3) * 2"``.

    Returns:
        A Lark parse tree.

    Raises:
        FormulaParseError: If the formula has invalid syntax.
    """
    text = text.strip()
    if not text.startswith("="):
        raise FormulaParseError("Formula must start with '='", position=0)
    try:
        return _parser.parse(text)
    except RecursionError:
        raise
    except Exception as exc:
        pos = getattr(exc, "column", None)
        raise FormulaParseError(str(exc), position=pos) from exc


def parse_cell_token(text: str) -> tuple[int, int]:
    """Parse ``A1`` / ``$A$1`` into 0-based (row, col)."""
    m = _CELL_RE.match(text)
    if not m:
        raise FormulaParseError(f"Invalid cell reference: {text!r}")
    return int(m.group(2)) - 1, col_letter_to_index(m.group(1))


def parse_range_token(text: str) -> tuple[int, int, int, int]:
    """Parse ``A1:C3`` into normalised 0-based (r0, c0, r1, c1)."""
    start, end = text.split(":", 1)
    r0, c0 = parse_cell_token(start)
    r1, c1 = parse_cell_token(end)
    return min(r0, r1), min(c0, c1), max(r0, r1), max(c0, c1)


def split_sheet_ref(token_str: str) -> tuple[str, str]:
    """Split a sheet-qualified token into (sheet_name, reference).

    Examples:
        ``"Sheet1!A1"`` → ``("Sheet1", "A1")``
        ``"'My Sheet'!B2:C4"`` → ``("My Sheet", "B2:C4")``
    """
    s = token_str.strip()
    if s.startswith("'"):
        close_quote = s.index("'", 1)
        return s[1:close_quote], s[close_quote + 2:]
    bang = s.index("!")
    return s[:bang], s[bang + 1:]


def unquote_string(raw: str) -> str:
    """Strip the surrounding quotes of a STRING token and unescape ``""``."""
    return raw[1:-1].replace('""', '"')


class _RefCollector(Visitor):
    """Visitor that collects references, names and function names from a parse tree."""

    def __init__(self) -> None:
        self.names: set[str] = set()
        self.functions: set[str] = set()
        # (sheet or None, r0, c0, r1, c1)
        self.refs: list[tuple[str | None, int, int, int, int]] = []

    def cell_ref(self, tree: Tree) -> None:
        row, col = parse_cell_token(str(tree.children[0]))
        self.refs.append((None, row, col, row, col))

    def sheet_cell_ref(self, tree: Tree) -> None:
        sheet, ref = split_sheet_ref(str(tree.children[0]))
        row, col = parse_cell_token(ref)
        self.refs.append((sheet, row, col, row, col))

    def range_ref(self, tree: Tree) -> None:
        self.refs.append((None, *parse_range_token(str(tree.children[0]))))

    def sheet_range_ref(self, tree: Tree) -> None:
        sheet, ref = split_sheet_ref(str(tree.children[0]))
        self.refs.append((sheet, *parse_range_token(ref)))

    def name_ref(self, tree: Tree) -> None:
        token = tree.children[0]
        if isinstance(token, Token):
            self.names.add(str(token))

    def func_call(self, tree: Tree) -> None:
        self.functions.add(str(tree.children[0]).upper())


def extract_names(tree: Tree) -> set[str]:
    """Return the named-expression references used in a parsed formula."""
    collector = _RefCollector()
    collector.visit(tree)
    return collector.names


def extract_functions(tree: Tree) -> set[str]:
    """Return the (upper-cased) function names called in a parsed formula."""
    collector = _RefCollector()
    collector.visit(tree)
    return collector.functions


def extract_references(tree: Tree) -> list[tuple[str | None, int, int, int, int]]:
    """Return every cell and range reference in a parsed formula.

    Each entry is ``(sheet, r0, c0, r1, c1)`` with 0-based, normalised
    bounds; ``sheet`` is ``None`` for references to the formula's own sheet.
    """
    collector = _RefCollector()
    collector.visit(tree)
    return collector.refs
