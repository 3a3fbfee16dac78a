from datetime import date, datetime

import pytest

from gymapp.core.exceptions import ValidationError
from gymapp.services import recurrence


def test_expand_monday_wednesday_january():
    dates = recurrence.expand(["Lunes", "Miércoles"], date(2024, 1, 1), date(2024, 1, 31))

    assert len(dates) == 10
    assert dates[0] == datetime(2024, 1, 1, 12, 0)
    assert dates[-1] == datetime(2024, 1, 31, 12, 0)
    assert {d.weekday() for d in dates} == {0, 2}
    assert dates == sorted(dates)


def test_expand_is_deterministic():
    first = recurrence.expand(["Martes", "Jueves"], date(2024, 3, 1), date(2024, 4, 30))
    second = recurrence.expand(["Jueves", "Martes"], date(2024, 3, 1), date(2024, 4, 30))
    assert first == second


def test_expand_empty_when_range_inverted():
    assert recurrence.expand(["Lunes"], date(2024, 2, 1), date(2024, 1, 1)) == []


def test_expand_empty_without_weekdays():
    assert recurrence.expand([], date(2024, 1, 1), date(2024, 1, 31)) == []


def test_expand_includes_both_range_ends():
    # 2024-01-06 y 2024-01-13 son sábados
    dates = recurrence.expand(["Sábado"], date(2024, 1, 6), date(2024, 1, 13))
    assert [d.date() for d in dates] == [date(2024, 1, 6), date(2024, 1, 13)]


def test_weekday_labels_accept_case_and_missing_accents():
    assert recurrence.normalize_weekdays(["miercoles", "LUNES", "Sabado", "lunes"]) == [
        "Lunes", "Miércoles", "Sábado"
    ]


def test_invalid_weekday_label_is_a_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        recurrence.weekday_index("Funday")
    assert "Funday" in exc_info.value.message


def test_rule_token_is_unique_per_series():
    a = recurrence.rule_token(["Lunes"], date(2024, 1, 1), date(2024, 1, 31))
    b = recurrence.rule_token(["Lunes"], date(2024, 1, 1), date(2024, 1, 31))

    assert a != b
    assert "FREQ=WEEKLY" in a
    assert "BYDAY=MO" in a


def test_rule_token_none_without_dates():
    assert recurrence.rule_token([], date(2024, 1, 1), date(2024, 1, 31)) is None
