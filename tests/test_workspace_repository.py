"""Tests for the output directory, scratch scopes and cleanup."""

import os
import time

import pytest

from imagevec import settings
from imagevec.repositories.workspace_repository import WorkspaceRepository


def test_configured_directory_is_created(tmp_path):
    root = tmp_path / "nested" / "out"
    workspace = WorkspaceRepository(root)
    assert workspace.root == root
    assert root.is_dir()
    assert not workspace.is_temporary


def test_blank_directory_falls_back_to_temp(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "DEFAULT_OUTPUT_DIRECTORY", tmp_path / "fallback")
    workspace = WorkspaceRepository("   ")
    assert workspace.is_temporary
    assert workspace.root == tmp_path / "fallback"


def test_temp_file_with_data(tmp_path):
    workspace = WorkspaceRepository(tmp_path)
    path = workspace.create_temp_file("potrace-", ".pbm", b"P1\n1 1\n0\n")
    assert path.parent == tmp_path
    assert path.name.startswith("potrace-") and path.suffix == ".pbm"
    assert workspace.read_and_delete(path) == b"P1\n1 1\n0\n"
    assert not path.exists()


def test_request_scope_removed_after_error(tmp_path):
    workspace = WorkspaceRepository(tmp_path)

    with pytest.raises(RuntimeError):
        with workspace.request_scope("abc") as scratch:
            (scratch / "input.png").write_bytes(b"x")
            raise RuntimeError("vectorizer crashed")

    assert not scratch.exists()
    assert list(tmp_path.iterdir()) == []


def _age(path, hours):
    past = time.time() - hours * 3600
    os.utime(path, (past, past))


def test_cleanup_removes_only_old_files(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "DEFAULT_OUTPUT_DIRECTORY", tmp_path)
    workspace = WorkspaceRepository("")
    old = tmp_path / "old.svg"
    fresh = tmp_path / "fresh.svg"
    old.write_bytes(b"a")
    fresh.write_bytes(b"b")
    _age(old, 48)

    assert workspace.cleanup_old_files(max_age_hours=24) == 1
    assert not old.exists()
    assert fresh.exists()


def test_configured_directory_needs_force(tmp_path):
    workspace = WorkspaceRepository(tmp_path)
    old = tmp_path / "old.svg"
    old.write_bytes(b"a")
    _age(old, 48)

    assert workspace.cleanup_old_files(max_age_hours=24) == 0
    assert old.exists()
    assert workspace.cleanup_old_files(max_age_hours=24, force=True) == 1
