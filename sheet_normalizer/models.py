from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class CellType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ERROR = "error"


class Cell(BaseModel):
    value: Any = None
    type: CellType = CellType.TEXT
    formula: Optional[str] = None
    format: Optional[str] = None


class Sheet(BaseModel):
    """One worksheet; cells are keyed by zero-based (column, row)."""

    name: str
    cells: Dict[Tuple[int, int], Cell] = Field(default_factory=dict)
    used_range: Optional[str] = None
    column_widths: Dict[int, float] = Field(default_factory=dict)


class Workbook(BaseModel):
    sheets: List[Sheet] = Field(default_factory=list)
    source: Dict[str, Any] = Field(default_factory=dict)


class NormalizedFile(BaseModel):
    filename: str
    media_type: str
    sha256: str
    content_b64: str


class ReportSummary(BaseModel):
    sheets: int = 0
    sheets_skipped: int = 0
    cells_normalized: int = 0
    target_cells: int = 0
    warnings: int = 0
    errors: int = 0
    deterministic: bool = True


class ReportItem(BaseModel):
    sheet: Optional[str] = None
    row: Optional[int] = None
    column: Optional[str] = None
    issue: str
    value: Optional[str] = None
    action: str


class NormalizationReport(BaseModel):
    summary: ReportSummary
    normalizations: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[ReportItem] = Field(default_factory=list)
    errors: List[ReportItem] = Field(default_factory=list)


class NormalizeResponse(BaseModel):
    normalized_file: NormalizedFile
    report: NormalizationReport

class HealthResponse(BaseModel):
    ok: bool = True
