"""
Spreadsheet container I/O.

Reads .xlsx (openpyxl), .xls (xlrd) and .csv bytes into the in-memory
Workbook model and serializes a normalized Workbook back to bytes:
- spreadsheet inputs are written as .xlsx
- CSV inputs are written as UTF-8 with BOM, comma-delimited, LF newlines,
  first sheet only
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import PurePath
from typing import Any, Dict, Iterable, Optional, Set, Tuple

import openpyxl
import xlrd
from charset_normalizer import from_bytes
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.utils.units import DEFAULT_COLUMN_WIDTH

from .models import Cell, CellType, Sheet, Workbook
from .rules import NORMALIZED_DELIMITER, OUTPUT_SUFFIX, TARGET_ENCODING

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"

_OPENPYXL_TYPES = {
    "n": CellType.NUMBER,
    "s": CellType.TEXT,
    "inlineStr": CellType.TEXT,
    "str": CellType.TEXT,
    "b": CellType.BOOLEAN,
    "d": CellType.DATE,
    "e": CellType.ERROR,
}


class WorkbookReadError(ValueError):
    """Raised when input bytes cannot be parsed as a spreadsheet."""


class EmptyWorkbookError(WorkbookReadError):
    """Raised when a parsed container holds no sheets."""


class WorkbookWriteError(ValueError):
    """Raised when a normalized workbook cannot be serialized."""


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def output_filename(filename: str) -> str:
    """`report.xls` -> `report_fixed.xlsx`; CSV inputs stay CSV."""
    path = PurePath(filename)
    extension = ".csv" if path.suffix.lower() == ".csv" else ".xlsx"
    return f"{path.stem}{OUTPUT_SUFFIX}{extension}"


def used_range_of(coordinates: Iterable[Tuple[int, int]]) -> Optional[str]:
    """Bounding A1 range of zero-based (column, row) pairs, None if empty."""
    coordinates = list(coordinates)
    if not coordinates:
        return None
    cols = [c for c, _ in coordinates]
    rows = [r for _, r in coordinates]
    return (
        f"{get_column_letter(min(cols) + 1)}{min(rows) + 1}:"
        f"{get_column_letter(max(cols) + 1)}{max(rows) + 1}"
    )


def _is_present(value: Any) -> bool:
    return value is not None and value != ""


# --- readers ---


def _formula_text(value: Any) -> Optional[str]:
    # ArrayFormula and DataTableFormula carry their expression in .text
    text = getattr(value, "text", value)
    if not isinstance(text, str):
        return None
    return text[1:] if text.startswith("=") else text


def _read_xlsx(raw: bytes) -> Workbook:
    # Cached results become the cell values; formulas come from a second pass.
    values_wb = openpyxl.load_workbook(io.BytesIO(raw), data_only=True)
    formulas_wb = openpyxl.load_workbook(io.BytesIO(raw), data_only=False)

    try:
        sheets = []
        for formula_ws in formulas_wb.worksheets:
            ws = values_wb[formula_ws.title]
            cells: Dict[Tuple[int, int], Cell] = {}
            # styled blanks still count towards the used range
            used: Set[Tuple[int, int]] = set()

            for row in formula_ws.iter_rows():
                for formula_cell in row:
                    xl_cell = ws.cell(row=formula_cell.row, column=formula_cell.column)
                    formula = (
                        _formula_text(formula_cell.value)
                        if formula_cell.data_type == "f"
                        else None
                    )
                    coord = (xl_cell.column - 1, xl_cell.row - 1)
                    if not _is_present(xl_cell.value) and formula is None:
                        if formula_cell.has_style:
                            used.add(coord)
                        continue

                    used.add(coord)
                    cells[coord] = Cell(
                        value=xl_cell.value,
                        type=_OPENPYXL_TYPES.get(xl_cell.data_type, CellType.TEXT),
                        formula=formula,
                        format=xl_cell.number_format,
                    )

            widths: Dict[int, float] = {}
            for key, dim in ws.column_dimensions.items():
                # openpyxl reports the default width for columns that only
                # carry hidden/outline/style attributes
                if not dim.width or dim.width == DEFAULT_COLUMN_WIDTH:
                    continue
                start = dim.min or column_index_from_string(key)
                end = dim.max or start
                for idx in range(start, end + 1):
                    widths[idx - 1] = dim.width

            sheets.append(
                Sheet(
                    name=ws.title,
                    cells=cells,
                    used_range=used_range_of(used),
                    column_widths=widths,
                )
            )
    finally:
        values_wb.close()
        formulas_wb.close()

    return Workbook(sheets=sheets, source={"format": "xlsx"})


def _xls_cell(cell, book) -> Optional[Cell]:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None

    fmt = None
    xf_index = getattr(cell, "xf_index", None)
    if xf_index is not None and xf_index < len(book.xf_list):
        fmt_record = book.format_map.get(book.xf_list[xf_index].format_key)
        fmt = fmt_record.format_str if fmt_record is not None else None

    if ctype == xlrd.XL_CELL_DATE:
        try:
            value: Any = xlrd.xldate_as_datetime(cell.value, book.datemode)
            return Cell(value=value, type=CellType.DATE, format=fmt)
        except Exception as exc:
            logger.debug("date conversion failed: %s | keeping serial number", exc)
            return Cell(value=cell.value, type=CellType.NUMBER, format=fmt)
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return Cell(value=bool(cell.value), type=CellType.BOOLEAN, format=fmt)
    if ctype == xlrd.XL_CELL_ERROR:
        text = xlrd.error_text_from_code.get(cell.value, "#ERROR")
        return Cell(value=text, type=CellType.ERROR, format=fmt)
    if ctype == xlrd.XL_CELL_NUMBER:
        value = cell.value
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return Cell(value=value, type=CellType.NUMBER, format=fmt)
    return Cell(value=cell.value, type=CellType.TEXT, format=fmt)


def _read_xls(raw: bytes) -> Workbook:
    book = xlrd.open_workbook(file_contents=raw, formatting_info=True)
    try:
        sheets = []
        for xl_sheet in book.sheets():
            cells: Dict[Tuple[int, int], Cell] = {}
            used: Set[Tuple[int, int]] = set()
            for rowx in range(xl_sheet.nrows):
                for colx in range(xl_sheet.ncols):
                    xl_cell = xl_sheet.cell(rowx, colx)
                    if xl_cell.ctype == xlrd.XL_CELL_BLANK:
                        used.add((colx, rowx))  # formatted but empty
                    cell = _xls_cell(xl_cell, book)
                    if cell is not None:
                        cells[(colx, rowx)] = cell
                        used.add((colx, rowx))

            # Column info widths are in 1/256 of a character.
            widths = {
                colx: info.width / 256
                for colx, info in xl_sheet.colinfo_map.items()
                if info.width
            }
            sheets.append(
                Sheet(
                    name=xl_sheet.name,
                    cells=cells,
                    used_range=used_range_of(used),
                    column_widths=widths,
                )
            )
    finally:
        book.release_resources()

    return Workbook(sheets=sheets, source={"format": "xls"})


def decode_text(raw: bytes) -> Tuple[str, Dict[str, Any]]:
    """
    Decode CSV bytes to text with LF newlines.

    Rules:
    - Detect encoding best-effort via charset-normalizer.
    - If decode fails, fall back to UTF-8, then to replacement characters.
    """
    detected = None
    match = from_bytes(raw).best()
    if match is not None:
        detected = match.encoding

    decode_used = detected or "utf-8"
    # A UTF-8 BOM is not part of the first header field.
    if raw.startswith(b"\xef\xbb\xbf") and (decode_used.lower().replace("-", "_") in ("utf_8", "utf8")):
        decode_used = "utf-8-sig"

    decode_fallback = False

    try:
        text = raw.decode(decode_used)
    except Exception:
        try:
            text = raw.decode("utf-8")
            decode_used = "utf-8"
            decode_fallback = True
        except Exception:
            text = raw.decode(decode_used, errors="replace")
            decode_fallback = True

    text = text.replace("\r\n", "\n").replace("\r", "\n")

    return text, {
        "detected": detected,
        "decode_used": decode_used,
        "decode_fallback": decode_fallback,
    }


def _read_csv(raw: bytes) -> Workbook:
    text, encoding = decode_text(raw)

    sample = text[:4096]
    delimiter = NORMALIZED_DELIMITER
    sniffed = False
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=[",", ";", "\t", "|"])
        delimiter = dialect.delimiter
        sniffed = True
    except csv.Error:
        pass

    cells: Dict[Tuple[int, int], Cell] = {}
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    for rowx, row in enumerate(reader):
        for colx, value in enumerate(row):
            if value != "":
                cells[(colx, rowx)] = Cell(value=value, type=CellType.TEXT)

    sheet = Sheet(name="Sheet1", cells=cells, used_range=used_range_of(cells))
    return Workbook(
        sheets=[sheet],
        source={
            "format": "csv",
            "encoding": encoding,
            "delimiter": {"detected": delimiter, "sniffed": sniffed},
        },
    )


_READERS = {
    ".xlsx": _read_xlsx,
    ".xls": _read_xls,
    ".csv": _read_csv,
}


def read_workbook(raw: bytes, filename: str) -> Workbook:
    """Parse container bytes, choosing the reader from the file extension."""
    extension = file_extension(filename)
    reader = _READERS.get(extension)
    if reader is None:
        raise WorkbookReadError(f"Unsupported file type '{extension}' for {filename}")

    try:
        workbook = reader(raw)
    except Exception as exc:
        logger.exception("Failed to read %s", filename)
        raise WorkbookReadError(f"Failed to read {filename}: {exc}") from exc

    logger.info("Read %s: %d sheet(s)", filename, len(workbook.sheets))
    return workbook


# --- writers ---


def _cell_rows(sheet: Sheet) -> Iterable[list]:
    if not sheet.cells:
        return []
    max_col = max(c for c, _ in sheet.cells)
    max_row = max(r for _, r in sheet.cells)
    rows = []
    for rowx in range(max_row + 1):
        row = []
        for colx in range(max_col + 1):
            cell = sheet.cells.get((colx, rowx))
            row.append("" if cell is None or cell.value is None else str(cell.value))
        rows.append(row)
    return rows


def _write_csv(workbook: Workbook) -> bytes:
    outp = io.StringIO(newline="")
    writer = csv.writer(outp, delimiter=NORMALIZED_DELIMITER, lineterminator="\n")
    if workbook.sheets:
        for row in _cell_rows(workbook.sheets[0]):
            writer.writerow(row)
    return outp.getvalue().encode(TARGET_ENCODING)


def _write_xlsx(workbook: Workbook) -> bytes:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    for sheet in workbook.sheets:
        ws = wb.create_sheet(title=sheet.name)

        for (colx, rowx), cell in sorted(sheet.cells.items(), key=lambda item: (item[0][1], item[0][0])):
            value = f"={cell.formula}" if cell.formula is not None else cell.value
            if isinstance(value, str) and ILLEGAL_CHARACTERS_RE.search(value):
                logger.warning(
                    "Dropping control characters from %s!%s%d",
                    sheet.name, get_column_letter(colx + 1), rowx + 1,
                )
                value = ILLEGAL_CHARACTERS_RE.sub("", value)
            xl_cell = ws.cell(row=rowx + 1, column=colx + 1, value=value)
            if cell.formula is None and cell.type is CellType.TEXT and isinstance(cell.value, str):
                # openpyxl would otherwise read a leading "=" as a formula
                xl_cell.data_type = "s"
            if cell.format:
                xl_cell.number_format = cell.format

        for colx, width in sorted(sheet.column_widths.items()):
            ws.column_dimensions[get_column_letter(colx + 1)].width = width

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def write_workbook(workbook: Workbook, filename: str) -> Tuple[bytes, str, str]:
    """Serialize a workbook; returns (content, output filename, media type)."""
    out_name = output_filename(filename)
    is_csv = file_extension(out_name) == ".csv"
    try:
        content = _write_csv(workbook) if is_csv else _write_xlsx(workbook)
    except Exception as exc:
        logger.exception("Failed to write %s", out_name)
        raise WorkbookWriteError(f"Failed to write {out_name}: {exc}") from exc

    return content, out_name, CSV_MEDIA_TYPE if is_csv else XLSX_MEDIA_TYPE
