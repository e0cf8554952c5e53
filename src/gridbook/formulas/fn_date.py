"""Date formula functions: TODAY, DATE, YEAR, MONTH, DAY, EOMONTH.

Dates are spreadsheet serial numbers: whole days since 1899-12-30, so
serial 1 is 1900-01-01 for every date after February 1900.
"""

from __future__ import annotations

import calendar
import datetime
from typing import Any

from gridbook.formulas.errors import FormulaFunctionError, FormulaValueError
from gridbook.formulas.evaluator import scalar, to_number

_EXCEL_EPOCH = datetime.date(1899, 12, 30)


def date_to_serial(value: datetime.date) -> int:
    return (value - _EXCEL_EPOCH).days


def serial_to_date(serial: Any) -> datetime.date:
    """Convert a serial number (or ISO date string) to a ``datetime.date``."""
    value = scalar(serial)
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip())
        except ValueError:
            pass
    days = int(to_number(value))
    if days < 0:
        raise FormulaValueError(f"Invalid date serial number: {days}")
    try:
        return _EXCEL_EPOCH + datetime.timedelta(days=days)
    except OverflowError:
        raise FormulaValueError(f"Date serial number out of range: {days}") from None


def _fn_today(args: list) -> int:
    if args:
        raise FormulaFunctionError("TODAY", "TODAY takes no arguments")
    return date_to_serial(datetime.date.today())


def _fn_date(args: list) -> int:
    """DATE(year, month, day): month and day overflow into the next unit."""
    if len(args) != 3:
        raise FormulaFunctionError("DATE", "DATE requires exactly 3 arguments (year, month, day)")
    year, month, day = (int(to_number(a)) for a in args)
    total_months = year * 12 + (month - 1)
    try:
        first = datetime.date(total_months // 12, total_months % 12 + 1, 1)
        return date_to_serial(first + datetime.timedelta(days=day - 1))
    except (ValueError, OverflowError) as exc:
        raise FormulaValueError(f"Invalid date: {exc}") from None


def _fn_year(args: list) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("YEAR", "YEAR requires exactly 1 argument")
    return serial_to_date(args[0]).year


def _fn_month(args: list) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("MONTH", "MONTH requires exactly 1 argument")
    return serial_to_date(args[0]).month


def _fn_day(args: list) -> int:
    if len(args) != 1:
        raise FormulaFunctionError("DAY", "DAY requires exactly 1 argument")
    return serial_to_date(args[0]).day


def _fn_eomonth(args: list) -> int:
    """EOMONTH(start_date, months): end of month, offset by months.

    EOMONTH(DATE(2024,1,15), 1) => serial of 2024-02-29.
    """
    if len(args) != 2:
        raise FormulaFunctionError("EOMONTH", "EOMONTH requires exactly 2 arguments (start_date, months)")
    start = serial_to_date(args[0])
    months_offset = int(to_number(args[1]))
    total_months = (start.year * 12 + start.month - 1) + months_offset
    target_year = total_months // 12
    target_month = total_months % 12 + 1
    if not 1 <= target_year <= 9999:
        raise FormulaValueError(f"EOMONTH year out of range: {target_year}")
    last_day = calendar.monthrange(target_year, target_month)[1]
    return date_to_serial(datetime.date(target_year, target_month, last_day))


DATE_FUNCTIONS: dict[str, Any] = {
    "TODAY": _fn_today,
    "DATE": _fn_date,
    "YEAR": _fn_year,
    "MONTH": _fn_month,
    "DAY": _fn_day,
    "EOMONTH": _fn_eomonth,
}
