"""Values reported by a formula engine for one cell."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel


class Scalar(BaseModel):
    """A single value.  ``None`` is an empty cell."""

    kind: Literal["scalar"] = "scalar"
    value: bool | int | float | str | None = None


class ArrayResult(BaseModel):
    """A multi-cell result (a formula that evaluated to a range)."""

    kind: Literal["array"] = "array"
    values: list[list[Any]]

    @property
    def n_rows(self) -> int:
        return len(self.values)

    @property
    def n_cols(self) -> int:
        return len(self.values[0]) if self.values else 0


class ErrorResult(BaseModel):
    kind: Literal["error"] = "error"
    code: str = "#ERROR!"
    message: str = ""


EngineValue = Scalar | ArrayResult | ErrorResult
