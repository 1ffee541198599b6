"""Unit tests for OSC-8 hyperlink helpers."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from buildline.entrypoints.cli.helpers.hyperlinks import file_link, hyperlink, supports_osc8


class FakeTTY(io.StringIO):
    """A stream claiming to be an interactive terminal."""

    def isatty(self) -> bool:
        return True


@pytest.fixture(autouse=True)
def _clean_osc8_env(monkeypatch):
    """Clear terminal-identifying env vars so only the ones under test are set."""
    for k in ("TERM_PROGRAM", "WT_SESSION", "VTE_VERSION", "TERM"):
        monkeypatch.delenv(k, raising=False)


@pytest.mark.parametrize(
    ("var", "value", "expected"),
    [
        ("TERM_PROGRAM", "vscode", True),
        ("TERM_PROGRAM", "iTerm.app", True),
        ("WT_SESSION", "1", True),
        ("VTE_VERSION", "7200", True),
        ("TERM", "alacritty", True),
        ("TERM", "xterm-256color", False),
        ("TERM_PROGRAM", "unknown", False),
    ],
)
def test_supports_osc8_matrix(monkeypatch, var, value, expected):
    monkeypatch.setenv(var, value)
    assert supports_osc8(FakeTTY()) is expected


def test_non_tty_never_supports_links(monkeypatch):
    monkeypatch.setenv("TERM_PROGRAM", "vscode")
    assert supports_osc8(io.StringIO()) is False


def test_hyperlink_wraps_label_when_supported(monkeypatch):
    monkeypatch.setenv("TERM_PROGRAM", "wezterm")
    link = hyperlink("https://example.test/", "docs", FakeTTY())
    assert link == "\x1b]8;;https://example.test/\x07docs\x1b]8;;\x07"


def test_hyperlink_plain_text_otherwise():
    assert hyperlink("https://example.test/", None, io.StringIO()) == "https://example.test/"


def test_file_link_label_is_relative_to_base(tmp_path: Path):
    report = tmp_path / "build" / "reports" / "build-01.json"
    assert file_link(report, tmp_path, io.StringIO()) == "build/reports/build-01.json"


def test_file_link_outside_base_keeps_absolute_label(tmp_path: Path):
    outside = tmp_path / "elsewhere" / "x.json"
    base = tmp_path / "project"
    assert file_link(outside, base, io.StringIO()) == str(outside.resolve())
