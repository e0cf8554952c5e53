"""Function registry used by the evaluator."""

from __future__ import annotations

from typing import Any

from gridbook.formulas.fn_date import DATE_FUNCTIONS
from gridbook.formulas.fn_logical import LOGICAL_FUNCTIONS, LOGICAL_LAZY_FUNCTIONS
from gridbook.formulas.fn_lookup import LOOKUP_FUNCTIONS
from gridbook.formulas.fn_math import MATH_FUNCTIONS
from gridbook.formulas.fn_text import TEXT_FUNCTIONS

EAGER_FUNCTIONS: dict[str, Any] = {
    **MATH_FUNCTIONS,
    **LOGICAL_FUNCTIONS,
    **TEXT_FUNCTIONS,
    **LOOKUP_FUNCTIONS,
    **DATE_FUNCTIONS,
}

LAZY_FUNCTIONS: dict[str, Any] = dict(LOGICAL_LAZY_FUNCTIONS)


def is_supported_function(name: str) -> bool:
    name = name.upper()
    return name in EAGER_FUNCTIONS or name in LAZY_FUNCTIONS
