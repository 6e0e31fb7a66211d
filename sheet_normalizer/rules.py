"""
Deterministic normalization rules.

This file exists to make the fixed-decimal columns and width bounds explicit
and swappable by a host pipeline.
"""

from __future__ import annotations

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

TARGET_ENCODING = "utf-8-sig"  # UTF-8 with BOM
NORMALIZED_DELIMITER = ","
TEXT_NUMBER_FORMAT = "@"  # literal-text display format
OUTPUT_SUFFIX = "_fixed"


class NormalizationRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    # K, L, M, S, T, U
    target_columns: FrozenSet[int] = frozenset({10, 11, 12, 18, 19, 20})
    decimal_places: int = Field(default=4, ge=0)

    min_column_width: float = Field(default=8, gt=0)
    max_column_width: float = Field(default=30, gt=0)
    width_padding: int = Field(default=2, ge=0)
    adjusted_columns: int = Field(default=24, ge=0)  # A..X
    narrow_columns: int = Field(default=8, ge=0)  # A..H
    narrow_factor: float = Field(default=0.6, gt=0)

    date_format: str = "%Y-%m-%d %H:%M:%S"

    def is_target(self, column: int) -> bool:
        return column in self.target_columns


DEFAULT_RULES = NormalizationRules()
