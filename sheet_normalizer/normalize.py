"""
Sheet normalization pipeline.

Responsibilities:
- visit every real cell inside a sheet's used range
- freeze each cell to text; target columns become fixed-decimal comma text
- drop formulas from normalized cells
- size columns from the normalized text lengths
- report fallbacks deterministically
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Any, Dict, List, Tuple

from openpyxl.utils import get_column_letter, range_boundaries

from .layout import adjust_widths
from .models import CellType, Sheet, Workbook
from .rules import DEFAULT_RULES, TEXT_NUMBER_FORMAT, NormalizationRules
from .values import Outcome, normalize_cell_value
from .workbook import EmptyWorkbookError, read_workbook, write_workbook

logger = logging.getLogger(__name__)


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _empty_sheet_report(sheet: Sheet) -> Dict[str, Any]:
    return {
        "name": sheet.name,
        "used_range": sheet.used_range,
        "skipped": True,
        "cells_normalized": 0,
        "target_cells": 0,
        "parsed": 0,
        "padded": 0,
        "kept_as_text": 0,
        "formulas_removed": 0,
        "column_widths": {},
    }


def normalize_sheet(
    sheet: Sheet,
    rules: NormalizationRules = DEFAULT_RULES,
) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """
    Normalize one sheet in place.

    Returns the sheet report and its warning items. A sheet without a used
    range is left untouched.
    """
    report = _empty_sheet_report(sheet)
    warnings: List[Dict[str, Any]] = []

    if not sheet.used_range:
        logger.debug("Skipping empty sheet %r", sheet.name)
        return report, warnings

    try:
        min_col, min_row, max_col, max_row = range_boundaries(sheet.used_range)
    except (TypeError, ValueError):
        logger.warning("Skipping sheet %r: invalid used range %r", sheet.name, sheet.used_range)
        warnings.append({
            "sheet": sheet.name,
            "row": None,
            "column": None,
            "issue": "invalid_used_range",
            "value": str(sheet.used_range),
            "action": "sheet_skipped",
        })
        return report, warnings
    if None in (min_col, min_row, max_col, max_row):
        # whole-row/column ranges such as "A:C" carry no row bounds
        min_col, min_row = min_col or 1, min_row or 1
        max_col, max_row = max_col or float("inf"), max_row or float("inf")

    max_lengths: Dict[int, int] = {}
    counts = {outcome: 0 for outcome in Outcome}
    cells_normalized = 0
    target_cells = 0
    formulas_removed = 0

    for (col, row), cell in sorted(sheet.cells.items(), key=lambda item: (item[0][1], item[0][0])):
        if not (min_col <= col + 1 <= max_col and min_row <= row + 1 <= max_row):
            continue
        if cell.value is None or cell.value == "":
            continue

        text, outcome = normalize_cell_value(cell.value, col, rules)
        if outcome is not None:
            target_cells += 1
            counts[outcome] += 1
            if outcome is Outcome.KEPT:
                logger.debug("Non-numeric value in %s%d kept as text", get_column_letter(col + 1), row + 1)
                warnings.append({
                    "sheet": sheet.name,
                    "row": row + 1,
                    "column": get_column_letter(col + 1),
                    "issue": "not_numeric",
                    "value": text,
                    "action": Outcome.KEPT.value,
                })

        cell.value = text
        cell.type = CellType.TEXT
        cell.format = TEXT_NUMBER_FORMAT
        if cell.formula is not None:
            cell.formula = None
            formulas_removed += 1

        cells_normalized += 1
        max_lengths[col] = max(max_lengths.get(col, 0), len(text))

    sheet.column_widths = adjust_widths(sheet.column_widths, max_lengths, rules)

    report.update({
        "skipped": False,
        "cells_normalized": cells_normalized,
        "target_cells": target_cells,
        "parsed": counts[Outcome.PARSED],
        "padded": counts[Outcome.PADDED],
        "kept_as_text": counts[Outcome.KEPT],
        "formulas_removed": formulas_removed,
        "column_widths": {
            get_column_letter(col + 1): width
            for col, width in sorted(sheet.column_widths.items())
        },
    })
    logger.info(
        "Sheet %r: %d cells normalized, %d target cells (%d parsed, %d padded, %d kept)",
        sheet.name, cells_normalized, target_cells,
        counts[Outcome.PARSED], counts[Outcome.PADDED], counts[Outcome.KEPT],
    )
    return report, warnings


def normalize_workbook(
    workbook: Workbook,
    rules: NormalizationRules = DEFAULT_RULES,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Normalize every sheet; each sheet gets its own width accumulator."""
    if not workbook.sheets:
        raise EmptyWorkbookError("Workbook has no sheets")

    reports: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    for sheet in workbook.sheets:
        sheet_report, sheet_warnings = normalize_sheet(sheet, rules)
        reports.append(sheet_report)
        warnings.extend(sheet_warnings)
    return reports, warnings


def normalize_file_bytes(
    raw: bytes,
    filename: str,
    rules: NormalizationRules = DEFAULT_RULES,
) -> Dict[str, Any]:
    """
    Read, normalize and re-serialize one uploaded file.
    Returns a dict matching the API's response envelope.
    """
    workbook = read_workbook(raw, filename)
    sheet_reports, warnings = normalize_workbook(workbook, rules)
    content, out_name, media_type = write_workbook(workbook, filename)

    errors: List[Dict[str, Any]] = []
    logger.info("Normalized %s -> %s (%d bytes)", filename, out_name, len(content))

    return {
        "normalized_file": {
            "filename": out_name,
            "media_type": media_type,
            "sha256": _sha256_hex(content),
            "content_b64": base64.b64encode(content).decode("ascii"),
        },
        "report": {
            "summary": {
                "sheets": len(sheet_reports),
                "sheets_skipped": sum(1 for r in sheet_reports if r["skipped"]),
                "cells_normalized": sum(r["cells_normalized"] for r in sheet_reports),
                "target_cells": sum(r["target_cells"] for r in sheet_reports),
                "warnings": len(warnings),
                "errors": len(errors),
                "deterministic": True,
            },
            "normalizations": {
                "source": workbook.source,
                "rules": {
                    "target_columns": [get_column_letter(c + 1) for c in sorted(rules.target_columns)],
                    "decimal_places": rules.decimal_places,
                    "decimal_separator": ",",
                    "text_format": TEXT_NUMBER_FORMAT,
                },
                "sheets": sheet_reports,
            },
            "warnings": warnings,
            "errors": errors,
        },
    }
