"""Unit tests for environment variable readers."""

import pytest

from pharmacy_usage.utils.env_utils import (
    parse_bool_env,
    parse_csv_env,
    parse_float_env,
    parse_int_env,
)


@pytest.mark.parametrize(
    "value,expected",
    [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False), ("nope", False)],
)
def test_parse_bool_env(monkeypatch, value, expected):
    monkeypatch.setenv("FLAG", value)

    assert parse_bool_env("FLAG") is expected


def test_parse_bool_env_default(monkeypatch):
    monkeypatch.delenv("FLAG", raising=False)

    assert parse_bool_env("FLAG", True) is True


def test_parse_int_env_invalid_falls_back(monkeypatch):
    monkeypatch.setenv("COUNT", "ten")

    assert parse_int_env("COUNT", 10) == 10


def test_parse_float_env(monkeypatch):
    monkeypatch.setenv("WAIT", "0.25")

    assert parse_float_env("WAIT", 1.0) == 0.25


def test_parse_csv_env(monkeypatch):
    monkeypatch.setenv("ORIGINS", "http://a.test, ,http://b.test ")

    assert parse_csv_env("ORIGINS") == ["http://a.test", "http://b.test"]
    monkeypatch.delenv("ORIGINS")
    assert parse_csv_env("ORIGINS", ["*"]) == ["*"]
