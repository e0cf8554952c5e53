"""Command-line interface for gridbook projects."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from gridbook import __version__
from gridbook.address import parse_addr


@click.group()
@click.version_option(version=__version__, prog_name="gridbook")
def main() -> None:
    """gridbook -- multi-sheet workbook with formulas, validation and pivots."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _open(directory: str):
    from gridbook.project import open_project

    try:
        return open_project(Path(directory))
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


def _addr(addr: str) -> tuple[int, int]:
    parsed = parse_addr(addr)
    if parsed is None:
        raise click.ClickException(f"Invalid cell address: {addr!r}")
    return parsed


def _report(result: dict[str, Any], success: str) -> None:
    """Echo a service result, turning refusals into a non-zero exit."""
    if not result.get("ok"):
        raise click.ClickException(result.get("message") or "Refused")
    click.echo(success)
    for failure in result.get("name_failures", []):
        click.echo(
            f"  warning: name {failure['name']!r} on {failure['sheet']!r} rejected: {failure['error']}",
            err=True,
        )
    for idx, error in result.get("sheet_failures", {}).items():
        click.echo(f"  warning: sheet {idx} could not be loaded into the engine: {error}", err=True)


def _parse_filters(items: tuple[str, ...]):
    from gridbook.ui.view_filters import ColumnFilter

    filters = []
    for item in items:
        col, sep, query = item.partition(":")
        if not sep:
            raise click.ClickException(f"Invalid --filter {item!r}. Use COLUMN:TEXT.")
        if col.isdigit():
            idx = int(col)
        else:
            from gridbook.address import col_letter_to_index

            if not col.isalpha():
                raise click.ClickException(f"Invalid filter column {col!r}")
            idx = col_letter_to_index(col)
        filters.append(ColumnFilter(column=idx, query=query))
    return filters


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def new(directory: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from gridbook.project import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None, help="Sheet index (default: active).")
@click.option("--filter", "filters", multiple=True, help="Column filter as COLUMN:TEXT (column letter or index).")
@click.option("--raw", is_flag=True, help="Show inputs instead of computed values.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show(directory: str, sheet_index: int | None, filters: tuple[str, ...], raw: bool, as_json: bool) -> None:
    """Print a sheet of DIRECTORY."""
    from gridbook.address import index_to_col_letter

    svc = _open(directory)
    try:
        view = svc.get_sheet_view(sheet_index, _parse_filters(filters))
    except ValueError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(view, indent=2, ensure_ascii=False))
        return

    click.echo(f"Sheet {view['index']}: {view['name']} ({view['n_rows']}x{view['n_cols']})")
    header = ["    "] + [index_to_col_letter(c) for c in range(view["n_cols"])]
    click.echo("\t".join(header))
    for row in view["rows"]:
        values = []
        for cell in row["cells"]:
            text = cell["input"] if raw else cell["display"]
            values.append(text + ("!" if cell["invalid"] else ""))
        click.echo("\t".join([f"{row['row'] + 1:4d}"] + values))


@main.command("set")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("addr")
@click.argument("text")
@click.option("--sheet", "sheet_index", type=int, default=None, help="Sheet index (default: active).")
def set_cell(directory: str, addr: str, text: str, sheet_index: int | None) -> None:
    """Set the input of cell ADDR to TEXT."""
    svc = _open(directory)
    row, col = _addr(addr)
    try:
        result = svc.edit_cell(row, col, text, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"{addr.upper()} = {result.get('display', '')}")


@main.command("format")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("addr")
@click.option("--bold/--no-bold", default=None)
@click.option("--italic/--no-italic", default=None)
@click.option("--align", type=click.Choice(["left", "center", "right"]), default=None)
@click.option("--type", "fmt_type", type=click.Choice(["text", "number", "currency", "percent"]), default=None)
@click.option("--sheet", "sheet_index", type=int, default=None, help="Sheet index (default: active).")
def format_cell(
    directory: str,
    addr: str,
    bold: bool | None,
    italic: bool | None,
    align: str | None,
    fmt_type: str | None,
    sheet_index: int | None,
) -> None:
    """Change the format of cell ADDR."""
    svc = _open(directory)
    row, col = _addr(addr)
    try:
        result = svc.set_format(row, col, sheet_index, bold=bold, italic=italic, align=align, type=fmt_type)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Formatted {addr.upper()}")


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("addr")
@click.argument("values")
@click.option("--sheet", "sheet_index", type=int, default=None, help="Sheet index (default: active).")
def validate(directory: str, addr: str, values: str, sheet_index: int | None) -> None:
    """Restrict cell ADDR to the comma-separated VALUES ("" clears the rule)."""
    svc = _open(directory)
    row, col = _addr(addr)
    try:
        result = svc.set_validation(row, col, values, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Validation set on {addr.upper()}")


# ---------------------------------------------------------------------------
# Rows / columns
# ---------------------------------------------------------------------------


@main.group()
def row() -> None:
    """Append or remove the last row."""


@row.command("add")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None)
def row_add(directory: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        result = svc.insert_row(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Rows: {result.get('n_rows')}")


@row.command("remove")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None)
def row_remove(directory: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        result = svc.remove_row(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Rows: {result.get('n_rows')}")


@main.group()
def col() -> None:
    """Append or remove the last column."""


@col.command("add")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None)
def col_add(directory: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        result = svc.insert_column(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Columns: {result.get('n_cols')}")


@col.command("remove")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None)
def col_remove(directory: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        result = svc.remove_column(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Columns: {result.get('n_cols')}")


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------


@main.group()
def sheet() -> None:
    """Sheet management commands."""


@sheet.command("list")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def sheet_list(directory: str, as_json: bool) -> None:
    """List sheets (the active one is marked with *)."""
    info = _open(directory).get_workbook_info()
    if as_json:
        click.echo(json.dumps(info["sheets"], indent=2, ensure_ascii=False))
        return
    for s in info["sheets"]:
        marker = "*" if s["active"] else " "
        click.echo(f"{marker} {s['index']:3d}  {s['name']:20s} {s['n_rows']}x{s['n_cols']}")


@sheet.command("add")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("name", required=False)
def sheet_add(directory: str, name: str | None) -> None:
    """Add a sheet (named Sheet<N> when NAME is omitted) and activate it."""
    svc = _open(directory)
    try:
        result = svc.add_sheet(name)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Added sheet {result['name']!r} at index {result['index']}")


@sheet.command("rename")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("index", type=int)
@click.argument("name")
def sheet_rename(directory: str, index: int, name: str) -> None:
    svc = _open(directory)
    try:
        result = svc.rename_sheet(index, name)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Renamed sheet {index} to {result['name']!r}")


@sheet.command("delete")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("index", type=int)
def sheet_delete(directory: str, index: int) -> None:
    svc = _open(directory)
    try:
        result = svc.delete_sheet(index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Deleted sheet {result.get('deleted')!r}")


@sheet.command("use")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("index", type=int)
def sheet_use(directory: str, index: int) -> None:
    """Make sheet INDEX the active sheet."""
    svc = _open(directory)
    try:
        result = svc.set_active_sheet(index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Active sheet: {index}")


# ---------------------------------------------------------------------------
# Named ranges
# ---------------------------------------------------------------------------


@main.group()
def name() -> None:
    """Named range commands (scoped to one sheet)."""


@name.command("list")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--sheet", "sheet_index", type=int, default=None)
def name_list(directory: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        names = svc.list_named_ranges(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    if not names:
        click.echo("No named ranges.")
        return
    for key, ref in names.items():
        click.echo(f"  {key:20s} {ref}")


@name.command("set")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("key")
@click.argument("ref")
@click.option("--sheet", "sheet_index", type=int, default=None)
def name_set(directory: str, key: str, ref: str, sheet_index: int | None) -> None:
    """Bind name KEY to reference REF (e.g. A1:A10 or Sheet2!B3)."""
    svc = _open(directory)
    try:
        result = svc.set_named_range(key, ref, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"{key} -> {ref}")


@name.command("delete")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("key")
@click.option("--sheet", "sheet_index", type=int, default=None)
def name_delete(directory: str, key: str, sheet_index: int | None) -> None:
    svc = _open(directory)
    try:
        result = svc.delete_named_range(key, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Deleted {key}")


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


@main.command("import-csv")
@click.argument("directory", type=click.Path(exists=True))
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--sheet", "sheet_index", type=int, default=None)
def import_csv_cmd(directory: str, file: str, sheet_index: int | None) -> None:
    """Write the values of FILE into a sheet's cell inputs."""
    svc = _open(directory)
    text = Path(file).read_text(encoding="utf-8")
    try:
        result = svc.import_csv(text, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    _report(result, f"Imported {file}: sheet is now {result['n_rows']}x{result['n_cols']}")


@main.command("export-csv")
@click.argument("directory", type=click.Path(exists=True))
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None, help="Write to file instead of stdout.")
@click.option("--sheet", "sheet_index", type=int, default=None)
def export_csv_cmd(directory: str, output: str | None, sheet_index: int | None) -> None:
    """Export a sheet's cell inputs as CSV."""
    svc = _open(directory)
    try:
        text = svc.export_csv(sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    if output:
        Path(output).write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}")
    else:
        click.echo(text)


# ---------------------------------------------------------------------------
# Pivot
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.argument("range_text", metavar="RANGE")
@click.option("--key-col", type=int, default=0, help="Key column offset within RANGE.")
@click.option("--value-col", type=int, default=1, help="Value column offset within RANGE.")
@click.option("--agg", type=click.Choice(["SUM", "COUNT"]), default="SUM")
@click.option("--sheet", "sheet_index", type=int, default=None)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def pivot(
    directory: str,
    range_text: str,
    key_col: int,
    value_col: int,
    agg: str,
    sheet_index: int | None,
    as_json: bool,
) -> None:
    """Group the rows of RANGE by a key column."""
    from gridbook.formatting import display_text
    from gridbook.pivot import PivotError

    svc = _open(directory)
    try:
        result = svc.build_pivot(range_text, key_col, value_col, agg, sheet_index)
    except ValueError as e:
        raise click.ClickException(str(e))
    if isinstance(result, PivotError):
        raise click.ClickException(result.message)
    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
        return
    click.echo(f"{'key':20s} {'COUNT':>8s} {'SUM':>14s}")
    for r in result.rows:
        click.echo(f"{r.key:20s} {r.count:8d} {display_text(r.sum):>14s}")


# ---------------------------------------------------------------------------
# Function catalog
# ---------------------------------------------------------------------------


@main.command()
def functions() -> None:
    """List formula templates by category."""
    from gridbook.catalog import FUNCTION_CATALOG

    for category, templates in FUNCTION_CATALOG.items():
        click.echo(f"{category}:")
        for tpl in templates:
            click.echo(f"  {tpl.name:12s} {tpl.template:42s} {tpl.hint}")


# ---------------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", type=int, default=None, help="Port (auto-select if omitted).")
def ui(directory: str, host: str, port: int | None) -> None:
    """Serve the HTTP API for DIRECTORY."""
    import socket

    import uvicorn

    from gridbook.ui.server import create_app

    app = create_app(Path(directory))

    if port is None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            port = s.getsockname()[1]

    click.echo(f"Serving API at http://{host}:{port}/api")
    click.echo("Press Ctrl+C to stop")

    try:
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        click.echo("\nStopped.")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--sheet", default=None, help="Filter by sheet name.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    sheet: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from gridbook.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(level=level, event_type=event_type, sheet=sheet, limit=limit)

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


if __name__ == "__main__":
    main()
