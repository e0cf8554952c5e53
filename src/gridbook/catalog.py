"""Function wizard catalog: ready-to-insert formula templates by category."""

from __future__ import annotations

from pydantic import BaseModel


class FunctionTemplate(BaseModel):
    name: str
    template: str
    hint: str


FUNCTION_CATALOG: dict[str, list[FunctionTemplate]] = {
    "Basics": [
        FunctionTemplate(name="SUM", template="=SUM(A1:A10)", hint="Adds numbers in a range"),
        FunctionTemplate(name="AVERAGE", template="=AVERAGE(A1:A10)", hint="Mean of numbers"),
        FunctionTemplate(name="COUNTIF", template='=COUNTIF(A1:A100, "x")', hint="Counts cells matching criteria"),
        FunctionTemplate(name="IF", template='=IF(A1>0, "Yes", "No")', hint="Conditional logic"),
    ],
    "Lookup": [
        FunctionTemplate(name="VLOOKUP", template="=VLOOKUP(A2, A1:D100, 3, FALSE)", hint="Lookup by first column"),
        FunctionTemplate(name="HLOOKUP", template="=HLOOKUP(B1, A1:Z10, 2, FALSE)", hint="Horizontal lookup"),
        FunctionTemplate(
            name="INDEX+MATCH",
            template="=INDEX(C1:C100, MATCH(A2, A1:A100, 0))",
            hint="Flexible lookup",
        ),
    ],
    "DateTime": [
        FunctionTemplate(name="TODAY", template="=TODAY()", hint="Current date"),
        FunctionTemplate(name="DATE", template="=DATE(2025,9,6)", hint="Build a date"),
        FunctionTemplate(name="EOMONTH", template="=EOMONTH(TODAY(),0)", hint="End of month"),
    ],
    "Text": [
        FunctionTemplate(name="TEXT", template='=TEXT(A1, "0.00")', hint="Format number as text"),
        FunctionTemplate(name="CONCAT", template='=CONCAT(A1, " ", B1)', hint="Join strings"),
        FunctionTemplate(name="LEFT", template="=LEFT(A1,3)", hint="Substring"),
        FunctionTemplate(name="RIGHT", template="=RIGHT(A1,3)", hint="Substring"),
    ],
}


def find_template(name: str) -> FunctionTemplate | None:
    """Look a template up by name, case-insensitively."""
    wanted = name.strip().upper()
    for templates in FUNCTION_CATALOG.values():
        for tpl in templates:
            if tpl.name.upper() == wanted:
                return tpl
    return None


def iter_templates() -> list[tuple[str, FunctionTemplate]]:
    return [(category, tpl) for category, templates in FUNCTION_CATALOG.items() for tpl in templates]
