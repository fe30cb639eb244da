from __future__ import annotations

import csv
from datetime import date, datetime
from io import BytesIO, StringIO
from typing import Any, Dict, Iterable, List, Optional

from openpyxl import Workbook, load_workbook

from backend.consumption import FABRIC_WIDTHS
from backend.schema import CushionItem


NOT_FIT_MARKER = "NO CABE"
EXPORT_SHEET_NAME = "Consumo"
CONSUMPTION_DECIMALS = 4
SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".csv")
CSV_DELIMITERS = (",", ";", "\t")


def _cell_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return value


def _header_names(values: Iterable[Any]) -> List[str]:
    headers: List[str] = []
    seen: Dict[str, int] = {}
    for idx, value in enumerate(values):
        name = str(value).strip() if value is not None else ""
        if not name:
            name = f"__EMPTY_{idx}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        headers.append(name)
    return headers


def _rows_from_matrix(matrix: Iterable[Iterable[Any]]) -> List[Dict[str, Any]]:
    iterator = iter(matrix)
    try:
        header_row = next(iterator)
    except StopIteration:
        return []
    headers = _header_names(header_row)
    rows: List[Dict[str, Any]] = []
    for raw in iterator:
        values = [_cell_value(v) for v in raw]
        if all(v is None or v == "" for v in values):
            continue
        row = {}
        for name, value in zip(headers, values):
            if value is None or value == "":
                continue
            row[name] = value
        rows.append(row)
    return rows


def read_xlsx_rows(content: bytes) -> List[Dict[str, Any]]:
    workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        return _rows_from_matrix(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def read_csv_rows(content: bytes) -> List[Dict[str, Any]]:
    text = content.decode("utf-8-sig", errors="replace")
    if not text.strip():
        return []
    header_line = text.splitlines()[0]
    # European exports use ';' when ',' is the decimal separator.
    delimiter = max(CSV_DELIMITERS, key=header_line.count)
    reader = csv.reader(StringIO(text), delimiter=delimiter)
    return _rows_from_matrix(reader)


def read_rows(filename: str, content: bytes) -> List[Dict[str, Any]]:
    name = (filename or "").lower()
    if name.endswith((".xlsx", ".xlsm")):
        return read_xlsx_rows(content)
    if name.endswith(".csv"):
        return read_csv_rows(content)
    raise ValueError(f"Unsupported file type: {filename!r}. Use one of {', '.join(SUPPORTED_EXTENSIONS)}")


def build_export_rows(items: Iterable[CushionItem]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for item in items:
        row: Dict[str, Any] = dict(item.original_row)
        for fabric_width in FABRIC_WIDTHS:
            result = item.results.get(fabric_width)
            prefix = f"Tela_{fabric_width}cm"
            if result is not None and result.is_valid:
                row[f"{prefix}_Placas"] = result.plates_per_row
                row[f"{prefix}_CojinesTeo"] = result.cushions_per_strip
                row[f"{prefix}_Consumo_M"] = round(result.consumption_m, CONSUMPTION_DECIMALS)
            else:
                row[f"{prefix}_Estado"] = NOT_FIT_MARKER
        rows.append(row)
    return rows


def _columns(rows: List[Dict[str, Any]]) -> List[str]:
    columns: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def _plain(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def write_xlsx(rows: List[Dict[str, Any]], sheet_name: str = EXPORT_SHEET_NAME) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_name
    columns = _columns(rows)
    if columns:
        sheet.append(columns)
    for row in rows:
        sheet.append([_plain(row.get(column)) for column in columns])
    output = BytesIO()
    workbook.save(output)
    return output.getvalue()


def write_csv(rows: List[Dict[str, Any]], delimiter: Optional[str] = None) -> str:
    output = StringIO()
    columns = _columns(rows)
    writer = csv.writer(output, delimiter=delimiter or ",", lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if row.get(column) is None else row.get(column) for column in columns])
    return output.getvalue()


__all__ = [
    "NOT_FIT_MARKER",
    "read_rows",
    "read_xlsx_rows",
    "read_csv_rows",
    "build_export_rows",
    "write_xlsx",
    "write_csv",
]
