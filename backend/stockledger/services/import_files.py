# Overview: Upload parsing for imports; turns CSV / JSON / Excel files into header-keyed row dicts.

"""
Supports CSV (UTF-8, BOM tolerant), JSON ({"rows": [...]} or a bare list)
and Excel workbooks (.xlsx family, first sheet). Blank spreadsheet rows are
dropped so trailing formatting does not turn into skipped import rows.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, BinaryIO

from openpyxl import load_workbook

from ..validation import ValidationError


EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


def _extension(filename: str | None) -> str:
    name = (filename or "").strip()
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def _is_blank(row: dict[str, Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _read_csv(stream: BinaryIO) -> list[dict[str, Any]]:
    try:
        text = stream.read().decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV files must be UTF-8 encoded")
    reader = csv.DictReader(io.StringIO(text))
    return [dict(row) for row in reader]


def _read_json(stream: BinaryIO) -> list[dict[str, Any]]:
    try:
        rows = json.load(stream)
    except ValueError:
        raise ValidationError("Invalid JSON upload")
    if isinstance(rows, dict):
        rows = rows.get("rows", [])
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValidationError("JSON upload must be a list of row objects")
    return rows


def _read_excel(stream: BinaryIO) -> list[dict[str, Any]]:
    try:
        wb = load_workbook(stream, data_only=True, read_only=True)
    except Exception as exc:
        raise ValidationError(f"Could not read Excel workbook: {exc}") from exc
    try:
        sheet = wb.active
        data = list(sheet.values)
    finally:
        wb.close()

    if not data:
        return []
    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    rows = []
    for values in data[1:]:
        rows.append({
            headers[i]: values[i] if i < len(values) else None
            for i in range(len(headers))
            if headers[i]
        })
    return rows


def read_rows(stream: BinaryIO, filename: str | None) -> list[dict[str, Any]]:
    """
    Parse an uploaded file into row dicts keyed by the header row.

    Raises:
        ValidationError: unsupported extension or unreadable content
    """
    ext = _extension(filename)
    if ext == "csv":
        rows = _read_csv(stream)
    elif ext == "json":
        rows = _read_json(stream)
    elif ext in EXCEL_EXTENSIONS:
        rows = _read_excel(stream)
    else:
        raise ValidationError("Unsupported file format (use .csv, .json or .xlsx)")
    return [row for row in rows if not _is_blank(row)]
