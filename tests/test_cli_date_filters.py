"""Tests for CLI date filter helper."""

import click
import pytest

from pocketledger.cli.date_filters import resolve_cli_date_range
from pocketledger.utils.date_parser import get_date_range, parse_date


def _ctx() -> click.Context:
    return click.Context(click.Command("test"))


def test_resolve_cli_date_range_rejects_period_with_start_end(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(_ctx(), start_date=None, end_date="2024-01-31", period="last-month")

    assert excinfo.value.exit_code == 1
    assert "cannot be combined" in capsys.readouterr().err


def test_resolve_cli_date_range_returns_period_range():
    start, end = resolve_cli_date_range(_ctx(), start_date=None, end_date=None, period="this-month")

    assert (start, end) == get_date_range("this-month")


def test_resolve_cli_date_range_parses_explicit_dates():
    start, end = resolve_cli_date_range(_ctx(), start_date="2024-01-02", end_date="2024-01-05", period=None)

    assert start == parse_date("2024-01-02")
    assert end == parse_date("2024-01-05")


def test_resolve_cli_date_range_open_ended():
    assert resolve_cli_date_range(_ctx(), start_date=None, end_date=None, period=None) == (None, None)


def test_resolve_cli_date_range_invalid_end_date(capsys):
    with pytest.raises(click.exceptions.Exit) as excinfo:
        resolve_cli_date_range(_ctx(), start_date=None, end_date="not-a-date", period=None)

    assert excinfo.value.exit_code == 1
    assert "Invalid end date" in capsys.readouterr().err
