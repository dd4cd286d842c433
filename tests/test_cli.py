"""
tests/test_cli.py -- Command-line entry point (main.py).
"""

from __future__ import annotations

import pytest

import main
from core.config import get_settings


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Point get_settings() at a throwaway database for the duration of a test."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_no_command_prints_help(capsys):
    assert main.main([]) == 1
    assert "serve" in capsys.readouterr().out


def test_routes_lists_every_named_route(isolated_settings, capsys):
    assert main.main(["routes"]) == 0
    out = capsys.readouterr().out
    assert "users.show" in out
    assert "/roles/{id}/permissions" in out
    assert "route(s)." in out


def test_seed_requires_email_and_password_together(isolated_settings, capsys):
    assert main.main(["seed", "--admin-email", "root@example.com"]) == 2
    assert "must be given together" in capsys.readouterr().out


def test_seed_creates_catalogue_and_admin(isolated_settings, capsys):
    args = ["seed", "--admin-email", "root@example.com", "--admin-password", "RootPass123"]
    assert main.main(args) == 0
    assert "12 permission(s) created" in capsys.readouterr().out

    # Second run reuses everything
    assert main.main(args) == 0
    assert "0 permission(s) created" in capsys.readouterr().out
