"""
Tests for the command line interface, run against the bundled mock data.
"""

import pytest
from typer.testing import CliRunner

from bookingslots import __version__
from bookingslots.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
    # Keep any developer config.yaml out of the way
    monkeypatch.chdir(tmp_path)


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_hours_lists_open_days():
    result = runner.invoke(app, ["hours", "--mock"])

    assert result.exit_code == 0
    assert "Monday" in result.output
    assert "Sunday" not in result.output


def test_slots_for_open_day():
    result = runner.invoke(app, ["slots", "2026-10-21", "--mock", "--duration", "60"])

    assert result.exit_code == 0
    assert "of 15 slot(s)" in result.output


def test_slots_for_closed_day():
    result = runner.invoke(app, ["slots", "2026-10-25", "--mock"])

    assert result.exit_code == 0
    assert "No slots" in result.output


def test_slots_rejects_bad_date():
    result = runner.invoke(app, ["slots", "next tuesday", "--mock"])

    assert result.exit_code == 1
    assert "Invalid date" in result.output


def test_slots_rejects_bad_duration():
    result = runner.invoke(app, ["slots", "2026-10-21", "--mock", "--duration", "0"])

    assert result.exit_code == 1
    assert "greater than zero" in result.output


def test_settings_shows_record():
    result = runner.invoke(app, ["settings", "--mock"])

    assert result.exit_code == 0
    assert "15 min" in result.output
    assert "America/Los_Angeles" in result.output


def test_book_in_the_past_fails():
    result = runner.invoke(app, ["book", "2020-01-01", "09:00", "--mock"])

    assert result.exit_code == 1
    assert "no longer available" in result.output


def test_cancel_cancelled_appointment_fails():
    result = runner.invoke(app, ["cancel", "a3", "--mock"])

    assert result.exit_code == 1
    assert "cannot be cancelled" in result.output


def test_unblock_unknown_block_fails():
    result = runner.invoke(app, ["unblock", "missing", "--mock"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_block_creates_time_block():
    result = runner.invoke(
        app,
        ["block", "Dentist", "2026-10-22 12:00", "2026-10-22 13:00", "--type", "personal", "--mock"],
    )

    assert result.exit_code == 0
    assert "Blocked" in result.output


def test_missing_config_without_mock_fails():
    result = runner.invoke(app, ["hours"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output
