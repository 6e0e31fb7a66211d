"""Column width sizing from observed text lengths."""

from __future__ import annotations

from typing import Dict, Mapping

from .rules import DEFAULT_RULES, NormalizationRules


def adjust_widths(
    existing_hints: Mapping[int, float],
    observed_max_lengths: Mapping[int, int],
    rules: NormalizationRules = DEFAULT_RULES,
) -> Dict[int, float]:
    """
    Compute display widths (in characters) for the adjusted column block.

    Columns in `range(rules.adjusted_columns)` get
    min(max_width, max(hint or min_width, observed + padding)); the first
    `rules.narrow_columns` are then scaled by `rules.narrow_factor` even when
    their content is wider. Hints for columns outside the block are copied
    through unchanged.
    """
    widths: Dict[int, float] = dict(existing_hints)

    for col in range(rules.adjusted_columns):
        base = existing_hints.get(col) or rules.min_column_width
        content = observed_max_lengths.get(col, 0) + rules.width_padding

        final = min(rules.max_column_width, max(base, content))
        if col < rules.narrow_columns:
            final *= rules.narrow_factor

        widths[col] = final

    return widths
