"""
CSV and XLSX rendering of an analytics export bundle.

Every list-of-rows section becomes one table. Nested keys are flattened to
dotted column names (``_id.year``) and list values are joined with ``; ``.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

_NON_TABLE_KEYS = frozenset({"exportInfo", "rawDataTruncated", "failures"})
_INVALID_SHEET_CHARS = ("\\", "/", "?", "*", "[", "]", ":")


def _cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return "; ".join(str(_cell(v)) for v in value)
    return value


def flatten_row(row: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in row.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_row(value, name))
        else:
            flat[name] = _cell(value)
    return flat


def tables(bundle: dict[str, Any]) -> list[tuple[str, list[str], list[dict[str, Any]]]]:
    """(name, columns, flat rows) for each tabular section, in bundle order."""
    result = []
    for name, value in bundle.items():
        if name in _NON_TABLE_KEYS or not isinstance(value, list):
            continue
        rows = [flatten_row(r) for r in value if isinstance(r, dict)]
        columns: list[str] = []
        for row in rows:
            for column in row:
                if column not in columns:
                    columns.append(column)
        result.append((name, columns, rows))
    return result


def _info_rows(bundle: dict[str, Any]) -> list[tuple[str, Any]]:
    info = bundle.get("exportInfo") or {}
    rows = [(key, _cell(value)) for key, value in info.items()]
    if "rawDataTruncated" in bundle:
        rows.append(("rawDataTruncated", bundle["rawDataTruncated"]))
    for failure in bundle.get("failures") or []:
        rows.append((f"failed:{failure.get('section')}", failure.get("error")))
    return rows


def to_csv(bundle: dict[str, Any]) -> str:
    """One CSV document with a ``# section`` line before each table."""
    output = io.StringIO()
    writer = csv.writer(output)

    for key, value in _info_rows(bundle):
        writer.writerow([f"# {key}", value])

    for name, columns, rows in tables(bundle):
        writer.writerow([])
        writer.writerow([f"# {name}"])
        writer.writerow(columns)
        for row in rows:
            writer.writerow([row.get(c, "") for c in columns])

    return output.getvalue()


def sanitize_sheet_name(name: str) -> str:
    """Excel sheet names: max 31 chars, no \\ / ? * [ ] :, never empty."""
    sanitized = str(name)
    for char in _INVALID_SHEET_CHARS:
        sanitized = sanitized.replace(char, "_")
    return sanitized[:31] or "Sheet"


def to_xlsx(bundle: dict[str, Any]) -> bytes:
    """Workbook with an export info sheet and one sheet per section."""
    wb = Workbook()
    info_ws = wb.active
    info_ws.title = "Export Info"
    info_ws.append(["key", "value"])
    for key, value in _info_rows(bundle):
        info_ws.append([key, value])

    for name, columns, rows in tables(bundle):
        ws = wb.create_sheet(title=sanitize_sheet_name(name))
        if not rows:
            ws.cell(row=1, column=1, value="No data for the requested period")
            continue
        ws.append(columns)
        for row in rows:
            ws.append([row.get(c) for c in columns])

    _style_headers(wb)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _style_headers(wb: Workbook) -> None:
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="CCCCCC", end_color="CCCCCC", fill_type="solid")
    for ws in wb.worksheets:
        for col in range(1, ws.max_column + 1):
            cell = ws.cell(row=1, column=col)
            cell.font = header_font
            cell.fill = header_fill
