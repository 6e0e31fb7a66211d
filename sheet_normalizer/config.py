"""
Service configuration loaded from the environment.

Every normalization rule can be overridden with a SHEET_NORMALIZER_* variable;
collections are given as JSON, e.g. SHEET_NORMALIZER_TARGET_COLUMNS='[10, 11]'.
"""

from __future__ import annotations

from typing import FrozenSet, Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict

from .rules import DEFAULT_RULES, NormalizationRules


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SHEET_NORMALIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    allowed_extensions: Tuple[str, ...] = (".xls", ".xlsx", ".csv")
    max_file_size_mb: int = 100

    target_columns: FrozenSet[int] = DEFAULT_RULES.target_columns
    decimal_places: int = DEFAULT_RULES.decimal_places
    min_column_width: float = DEFAULT_RULES.min_column_width
    max_column_width: float = DEFAULT_RULES.max_column_width
    width_padding: int = DEFAULT_RULES.width_padding
    adjusted_columns: int = DEFAULT_RULES.adjusted_columns
    narrow_columns: int = DEFAULT_RULES.narrow_columns
    narrow_factor: float = DEFAULT_RULES.narrow_factor
    date_format: str = DEFAULT_RULES.date_format

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def rules(self) -> NormalizationRules:
        return NormalizationRules(
            **self.model_dump(include=set(NormalizationRules.model_fields))
        )


def get_settings() -> Settings:
    """Settings for one request (FastAPI dependency)."""
    return Settings()
