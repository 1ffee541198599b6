"""Unit tests for configuration helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from buildline.config import (
    CACHE_DIR_ENV,
    OFFLINE_ENV,
    PROJECT_FILE_ENV,
    PROJECT_FILE_NAME,
    ProjectFileNotFoundError,
    find_project_file,
    get_cache_dir,
    is_offline,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (PROJECT_FILE_ENV, CACHE_DIR_ENV, OFFLINE_ENV):
        monkeypatch.delenv(name, raising=False)


class TestFindProjectFile:
    """Descriptor lookup: env var first, then upwards from the start directory."""

    @staticmethod
    def test_walks_up_from_a_module_directory(tmp_path: Path):
        descriptor = tmp_path / PROJECT_FILE_NAME
        descriptor.write_text("group: g\n", encoding="utf-8")
        nested = tmp_path / "server" / "src" / "carsapi"
        nested.mkdir(parents=True)

        assert find_project_file(nested) == descriptor.resolve()

    @staticmethod
    def test_env_var_wins(tmp_path: Path, monkeypatch):
        (tmp_path / PROJECT_FILE_NAME).write_text("group: g\n", encoding="utf-8")
        other = tmp_path / "other.yaml"
        other.write_text("group: other\n", encoding="utf-8")
        monkeypatch.setenv(PROJECT_FILE_ENV, str(other))

        assert find_project_file(tmp_path) == other.resolve()

    @staticmethod
    def test_env_var_pointing_nowhere(tmp_path: Path, monkeypatch):
        monkeypatch.setenv(PROJECT_FILE_ENV, str(tmp_path / "missing.yaml"))
        with pytest.raises(ProjectFileNotFoundError, match=PROJECT_FILE_ENV):
            find_project_file(tmp_path)

    @staticmethod
    def test_not_found(tmp_path: Path):
        with pytest.raises(ProjectFileNotFoundError) as excinfo:
            find_project_file(tmp_path)
        assert excinfo.value.start == tmp_path.resolve()


def test_cache_dir_from_env(tmp_path: Path, monkeypatch):
    monkeypatch.setenv(CACHE_DIR_ENV, str(tmp_path / "cache"))
    assert get_cache_dir() == tmp_path / "cache"


def test_default_cache_dir_is_per_user():
    assert get_cache_dir().name == "buildline"


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("TRUE", True), (" yes ", True), ("on", True), ("0", False), ("", False)],
)
def test_is_offline(monkeypatch, value: str, expected: bool):
    monkeypatch.setenv(OFFLINE_ENV, value)
    assert is_offline() is expected
