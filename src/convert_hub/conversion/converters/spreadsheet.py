"""Workbook conversion between xlsx, xls and delimited text."""

from __future__ import annotations

import asyncio
import csv
import datetime as dt
import io
import re
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence

import openpyxl
import xlrd
import xlwt

from ..compression import CompressionSettings
from ..engine import Engine
from ..errors import (
    EmptyInputError,
    UnsupportedFormatError,
    UnsupportedTargetError,
)
from ..models import ProgressReporter
from ..registry import FormatGroup
from .base import FormatConverter

CellValue = object
Row = tuple[CellValue, ...]

_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")
_MAX_SHEET_NAME = 31


@dataclass(frozen=True)
class Sheet:
    name: str
    rows: tuple[Row, ...]


@dataclass(frozen=True)
class Workbook:
    sheets: tuple[Sheet, ...]


# ------------- Readers -------------


def read_csv(data: bytes) -> Workbook:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    rows = tuple(tuple(row) for row in csv.reader(io.StringIO(text)))
    if not rows:
        return Workbook(sheets=())
    return Workbook(sheets=(Sheet(name="Sheet1", rows=rows),))


def read_xlsx(data: bytes) -> Workbook:
    book = openpyxl.load_workbook(
        io.BytesIO(data), read_only=True, data_only=True
    )
    try:
        sheets = tuple(
            Sheet(
                name=worksheet.title,
                rows=tuple(
                    tuple(row)
                    for row in worksheet.iter_rows(values_only=True)
                ),
            )
            for worksheet in book.worksheets
        )
    finally:
        book.close()
    return Workbook(sheets=sheets)


def read_xls(data: bytes) -> Workbook:
    book = xlrd.open_workbook(file_contents=data)
    sheets = []
    for sheet in book.sheets():
        rows = tuple(
            tuple(
                _xls_cell_value(cell, book.datemode)
                for cell in sheet.row(index)
            )
            for index in range(sheet.nrows)
        )
        sheets.append(Sheet(name=sheet.name, rows=rows))
    return Workbook(sheets=tuple(sheets))


def _xls_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> CellValue:
    if cell.ctype == xlrd.XL_CELL_EMPTY or cell.ctype == xlrd.XL_CELL_BLANK:
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
        return int(cell.value)
    return cell.value


# ------------- Writers -------------


def write_csv(book: Workbook) -> bytes:
    """Delimited text holds one table, so only the first sheet is written."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in book.sheets[0].rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue().encode("utf-8")


def write_xlsx(book: Workbook) -> bytes:
    output = openpyxl.Workbook()
    output.remove(output.active)
    for name, sheet in zip(_sheet_names(book.sheets), book.sheets):
        worksheet = output.create_sheet(title=name)
        for row_index, row in enumerate(sheet.rows, start=1):
            for col_index, value in enumerate(row, start=1):
                if value is None:
                    continue
                cell = worksheet.cell(
                    row=row_index, column=col_index, value=value
                )
                # Cell text is data; "=..." must not become a live formula.
                if cell.data_type == "f":
                    cell.data_type = "s"
    buffer = io.BytesIO()
    output.save(buffer)
    return buffer.getvalue()


def write_xls(book: Workbook) -> bytes:
    output = xlwt.Workbook(encoding="utf-8")
    date_style = xlwt.easyxf(num_format_str="YYYY-MM-DD HH:MM:SS")
    for name, sheet in zip(_sheet_names(book.sheets), book.sheets):
        worksheet = output.add_sheet(name, cell_overwrite_ok=True)
        for row_index, row in enumerate(sheet.rows):
            for col_index, value in enumerate(row):
                if value is None:
                    continue
                if isinstance(value, (dt.datetime, dt.date)):
                    worksheet.write(row_index, col_index, value, date_style)
                elif isinstance(value, (str, int, float, bool)):
                    worksheet.write(row_index, col_index, value)
                else:
                    worksheet.write(row_index, col_index, str(value))
    buffer = io.BytesIO()
    output.save(buffer)
    return buffer.getvalue()


def _sheet_names(sheets: Sequence[Sheet]) -> list[str]:
    names: list[str] = []
    seen: set[str] = set()
    for index, sheet in enumerate(sheets, start=1):
        base = _INVALID_SHEET_CHARS.sub("_", sheet.name).strip()
        base = base[:_MAX_SHEET_NAME] or f"Sheet{index}"
        candidate = base
        counter = 1
        while candidate.lower() in seen:
            suffix = f"-{counter:02d}"
            candidate = base[: _MAX_SHEET_NAME - len(suffix)] + suffix
            counter += 1
        seen.add(candidate.lower())
        names.append(candidate)
    return names


READERS: Mapping[str, Callable[[bytes], Workbook]] = {
    ".csv": read_csv,
    ".xlsx": read_xlsx,
    ".xls": read_xls,
}

WRITERS: Mapping[str, Callable[[Workbook], bytes]] = {
    ".csv": write_csv,
    ".xlsx": write_xlsx,
    ".xls": write_xls,
}


def convert_spreadsheet(
    data: bytes, source_format: str, target_format: str
) -> bytes:
    reader = READERS.get(source_format)
    if reader is None:
        raise UnsupportedFormatError(
            f"No spreadsheet reader for '{source_format}'."
        )
    writer = WRITERS.get(target_format)
    if writer is None:
        raise UnsupportedTargetError(
            f"Spreadsheets cannot be converted to '{target_format}'."
        )
    book = reader(data)
    if not book.sheets:
        raise EmptyInputError("Workbook contains no sheets.")
    return writer(book)


class SpreadsheetConverter(FormatConverter):
    groups = frozenset({FormatGroup.SPREADSHEET})

    async def convert(
        self,
        data: bytes,
        source_format: str,
        target_format: str,
        settings: CompressionSettings,
        *,
        engine: Optional[Engine] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> bytes:
        return await asyncio.to_thread(
            convert_spreadsheet, data, source_format, target_format
        )


__all__ = [
    "Sheet",
    "SpreadsheetConverter",
    "Workbook",
    "convert_spreadsheet",
]
