"""Tests for the operator password reset script."""

from __future__ import annotations

from typing import Iterator, List

import pytest

from plots.database import Database
from scripts import reset_admin_password


def _answers(monkeypatch: pytest.MonkeyPatch, values: List[str]) -> None:
    supplied: Iterator[str] = iter(values)
    monkeypatch.setattr(reset_admin_password.getpass, "getpass", lambda prompt="": next(supplied))


def _url(database: Database) -> str:
    return database.engine.url.render_as_string(hide_password=False)


def test_set_admin_password_updates_digest(database: Database) -> None:
    assert database.set_admin_password("admin", "rotated-password") is True
    assert database.authenticate_admin("admin", "rotated-password") is not None
    assert database.authenticate_admin("admin", "admin123") is None


def test_set_admin_password_unknown_user(database: Database) -> None:
    assert database.set_admin_password("ghost", "whatever123") is False


def test_reset_script_updates_password(database: Database, monkeypatch, capsys) -> None:
    _answers(monkeypatch, ["new-password-1", "new-password-1"])

    status = reset_admin_password.main(["admin", "--database-url", _url(database)])

    assert status == 0
    assert "Password updated for admin" in capsys.readouterr().out
    assert database.authenticate_admin("admin", "new-password-1") is not None


def test_reset_script_retries_mismatched_and_short_passwords(database: Database, monkeypatch) -> None:
    _answers(monkeypatch, ["first-choice", "second-choice", "short", "short", "finally-ok", "finally-ok"])

    assert reset_admin_password.main(["admin", "--database-url", _url(database)]) == 0
    assert database.authenticate_admin("admin", "finally-ok") is not None


def test_reset_script_gives_up_after_three_attempts(database: Database, monkeypatch) -> None:
    _answers(monkeypatch, ["a", "b"] * 3)

    with pytest.raises(SystemExit):
        reset_admin_password.main(["admin", "--database-url", _url(database)])
    assert database.authenticate_admin("admin", "admin123") is not None


def test_reset_script_reports_unknown_admin(database: Database, monkeypatch, capsys) -> None:
    _answers(monkeypatch, ["new-password-1", "new-password-1"])

    assert reset_admin_password.main(["ghost", "--database-url", _url(database)]) == 1
    assert "no administrator named 'ghost'" in capsys.readouterr().err


def test_reset_script_help_describes_temporary_reset(capsys) -> None:
    with pytest.raises(SystemExit):
        reset_admin_password.parse_args(["--help"])

    output = " ".join(capsys.readouterr().out.split())
    assert "temporary" in output.lower()
    assert "PLOTS_ADMIN_PASSWORD" in output


def test_reset_script_warns_change_is_temporary(database: Database, monkeypatch, capsys) -> None:
    _answers(monkeypatch, ["new-password-1", "new-password-1"])

    reset_admin_password.main(["admin", "--database-url", _url(database)])

    assert "next start" in capsys.readouterr().out
