"""gridbook -- multi-sheet workbook model synchronized with a formula engine."""

__version__ = "0.3.0"

from gridbook.address import find_range, make_addr, parse_addr, parse_range
from gridbook.model import Cell, CellFormat, ListValidation, Sheet, Workbook
from gridbook.service import WorkbookService

__all__ = [
    "Cell",
    "CellFormat",
    "ListValidation",
    "Sheet",
    "Workbook",
    "WorkbookService",
    "__version__",
    "find_range",
    "make_addr",
    "parse_addr",
    "parse_range",
]
