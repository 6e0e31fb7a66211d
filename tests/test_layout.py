import pytest
from sheet_normalizer.layout import adjust_widths
from sheet_normalizer.rules import NormalizationRules


def test_unhinted_unobserved_columns():
    widths = adjust_widths({}, {})
    assert len(widths) == 24
    for col in range(8):
        assert widths[col] == pytest.approx(4.8)
    for col in range(8, 24):
        assert widths[col] == 8


def test_content_width_is_capped():
    widths = adjust_widths({}, {9: 40})
    assert widths[9] == 30


def test_content_width_includes_padding():
    widths = adjust_widths({}, {10: 9})
    assert widths[10] == 11


def test_existing_hint_wins_when_wider():
    widths = adjust_widths({12: 20}, {12: 5})
    assert widths[12] == 20


def test_zero_hint_counts_as_absent():
    widths = adjust_widths({12: 0}, {})
    assert widths[12] == 8


def test_leading_columns_are_narrowed_even_with_wide_content():
    widths = adjust_widths({}, {0: 40, 7: 10})
    assert widths[0] == pytest.approx(18.0)
    assert widths[7] == pytest.approx(7.2)


def test_columns_outside_block_are_untouched():
    hints = {30: 55.5}
    widths = adjust_widths(hints, {40: 12})
    assert widths[30] == 55.5
    assert 40 not in widths
    assert set(widths) == set(range(24)) | {30}
    # input mapping is not mutated
    assert hints == {30: 55.5}


def test_custom_rules():
    rules = NormalizationRules(
        min_column_width=10,
        max_column_width=12,
        adjusted_columns=4,
        narrow_columns=1,
        narrow_factor=0.5,
    )
    widths = adjust_widths({}, {1: 20}, rules)
    assert widths == {0: 5.0, 1: 12, 2: 10, 3: 10}
