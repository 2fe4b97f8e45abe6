"""groundwater_etl.workbook

Spreadsheet access for campaign imports: locating the campaign's workbook
and reading a sheet into ordered header -> cell mappings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from openpyxl import load_workbook

from groundwater_etl.shared import UnresolvedFileError


def resolve_source_file(candidates: Sequence[str], data_dir: Path) -> Path:
    """Return the first candidate file name that exists under data_dir."""
    for name in candidates:
        path = data_dir / name
        if path.is_file():
            return path
    raise UnresolvedFileError(
        f"none of {list(candidates)} found under {data_dir}"
    )


def _header_names(header_row: Sequence[Any]) -> list[str | None]:
    """Header strings per column; None for blank headers; duplicates get _N suffixes."""
    names: list[str | None] = []
    taken: set[str] = set()
    suffixes: dict[str, int] = {}
    for cell in header_row:
        if cell is None or (isinstance(cell, str) and not cell.strip()):
            names.append(None)
            continue
        base = cell if isinstance(cell, str) else str(cell)
        name = base
        while name in taken:
            suffixes[base] = suffixes.get(base, 0) + 1
            name = f"{base}_{suffixes[base]}"
        taken.add(name)
        names.append(name)
    return names


def _is_empty_row(values: Sequence[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def read_workbook_rows(path: Path, sheet: str | None = None) -> list[dict[str, Any]]:
    """Read one sheet into a list of {header: value} dicts.

    Row 1 is the header row.  Headers are kept exactly as typed (untrimmed)
    so alias lookup can try the raw spelling first.  Columns without a
    header and fully empty rows are dropped; empty cells are None.
    """
    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb[sheet] if sheet else wb.worksheets[0]
        rows_iter = ws.iter_rows(values_only=True)
        try:
            header_row = next(rows_iter)
        except StopIteration:
            return []
        headers = _header_names(header_row)

        rows: list[dict[str, Any]] = []
        for values in rows_iter:
            if _is_empty_row(values):
                continue
            row: dict[str, Any] = {}
            for idx, name in enumerate(headers):
                if name is None:
                    continue
                value = values[idx] if idx < len(values) else None
                row[name] = None if value == "" else value
            rows.append(row)
        return rows
    finally:
        wb.close()
