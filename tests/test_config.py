"""Тесты разбора переменных окружения."""

from dataclasses import fields

import pytest

from cashdesk.config import Settings, _as_bool, _as_scope, settings


def test_as_bool():
    assert _as_bool("True") is True
    assert _as_bool("on") is True
    assert _as_bool("0") is False
    assert _as_bool(None) is False


def test_as_scope_parses_and_validates():
    assert _as_scope(" Operator , register ") == ("operator", "register")
    assert _as_scope("") == ("operator",)
    with pytest.raises(ValueError):
        _as_scope("operator,terminal")


def test_settings_cover_only_used_options():
    assert {item.name for item in fields(Settings)} == {
        "database_url",
        "debug",
        "cash_tolerance",
        "shift_scope",
        "timezone",
        "history_page_size",
        "stats_sample_size",
    }
    assert settings.cash_tolerance >= 0
