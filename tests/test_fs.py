"""Test atomic filesystem operations.

Tests for src.utils.fs:
    - Atomic writes apply permissions and never leave tmp files behind
    - Backups are byte-identical and never overwrite earlier backups
    - reset_dir recreates an empty directory with explicit mode
    - symlink_atomic replaces existing symlinks
    - append_once is idempotent per marker

Run:
    pytest tests/test_fs.py -v
"""

import os
import stat

import pytest

from src.utils import fs


# ============================================================================
# ATOMIC WRITES
# ============================================================================

def test_atomic_write_bytes_creates_parents(tmp_path):
    """Parent directories are created and content lands intact."""
    target = tmp_path / "etc" / "tlp.conf"
    fs.atomic_write_bytes(target, b"TLP_ENABLE=1\n")
    assert target.read_bytes() == b"TLP_ENABLE=1\n"
    assert not (tmp_path / "etc" / "tlp.conf.tmp").exists()


def test_atomic_write_text_mode(tmp_path):
    """Requested permission bits are applied regardless of umask."""
    target = tmp_path / "start.sh"
    fs.atomic_write_text(target, "#!/bin/bash\n", mode=0o755)
    assert stat.S_IMODE(target.stat().st_mode) == 0o755


def test_atomic_write_overwrites(tmp_path):
    target = tmp_path / "policy.conf"
    fs.atomic_write_text(target, "old\n")
    fs.atomic_write_text(target, "new\n")
    assert target.read_text() == "new\n"


def test_atomic_write_failure_cleans_tmp(tmp_path):
    """A failed rename raises RuntimeError and removes the tmp file."""
    target = tmp_path / "occupied"
    target.mkdir()
    with pytest.raises(RuntimeError, match="atomically"):
        fs.atomic_write_bytes(target, b"data")
    assert not (tmp_path / "occupied.tmp").exists()


# ============================================================================
# BACKUPS
# ============================================================================

def test_backup_file_is_identical(tmp_path):
    """Backup keeps content and mode of the original."""
    original = tmp_path / "tlp.conf"
    original.write_bytes(b"# vendor\nTLP_ENABLE=1\n")
    os.chmod(original, 0o640)

    backup = fs.backup_file(original, "20250115_103000")

    assert backup == tmp_path / "tlp.conf.backup.20250115_103000"
    assert backup.read_bytes() == original.read_bytes()
    assert stat.S_IMODE(backup.stat().st_mode) == 0o640


def test_backup_file_missing_returns_none(tmp_path):
    assert fs.backup_file(tmp_path / "absent.conf", "20250115_103000") is None


def test_backup_same_second_keeps_both(tmp_path):
    """Two backups with the same stamp get distinct names."""
    original = tmp_path / "tlp.conf"
    original.write_text("first\n")
    first = fs.backup_file(original, "20250115_103000")
    original.write_text("second\n")
    second = fs.backup_file(original, "20250115_103000")

    assert second == tmp_path / "tlp.conf.backup.20250115_103000.1"
    assert first.read_text() == "first\n"
    assert second.read_text() == "second\n"


def test_copy_into(tmp_path):
    src = tmp_path / "nvidia-powerd.service"
    src.write_text("[Unit]\n")
    dest = fs.copy_into(src, tmp_path / "backup")
    assert dest == tmp_path / "backup" / "nvidia-powerd.service"
    assert dest.read_text() == "[Unit]\n"
    assert fs.copy_into(tmp_path / "absent", tmp_path / "backup") is None


# ============================================================================
# DIRECTORIES AND LINKS
# ============================================================================

def test_reset_dir_empties_and_sets_mode(tmp_path):
    log_dir = tmp_path / "var" / "log" / "nvtopps"
    log_dir.mkdir(parents=True)
    (log_dir / "stale.log").write_text("old")
    (log_dir / "nested").mkdir()

    result = fs.reset_dir(log_dir, mode=0o750)

    assert result == log_dir
    assert list(log_dir.iterdir()) == []
    assert stat.S_IMODE(log_dir.stat().st_mode) == 0o750


def test_reset_dir_replaces_file(tmp_path):
    path = tmp_path / "nvtopps"
    path.write_text("not a directory")
    fs.reset_dir(path)
    assert path.is_dir()


def test_symlink_atomic_replaces_existing(tmp_path):
    """Flipping the link points it at the new target, no tmp left over."""
    old = tmp_path / "isaacsim-5.0.0"
    new = tmp_path / "isaacsim-5.1.0"
    old.mkdir()
    new.mkdir()
    link = tmp_path / "isaac-sim"

    fs.symlink_atomic(old.name, link)
    fs.symlink_atomic(new.name, link)

    assert os.readlink(link) == "isaacsim-5.1.0"
    assert link.resolve() == new.resolve()
    assert not (tmp_path / "isaac-sim.tmp_symlink").exists()


def test_safe_remove(tmp_path):
    path = tmp_path / "archive.zip"
    path.write_bytes(b"PK")
    assert fs.safe_remove(path) is True
    assert fs.safe_remove(path) is False


# ============================================================================
# APPEND / YAML
# ============================================================================

def test_append_once_is_idempotent(tmp_path):
    bashrc = tmp_path / ".bashrc"
    bashrc.write_text("export EDITOR=vim")  # no trailing newline

    assert fs.append_once(bashrc, "# Marker", "# Marker\nalias x=y\n") is True
    assert fs.append_once(bashrc, "# Marker", "# Marker\nalias x=y\n") is False

    assert bashrc.read_text() == "export EDITOR=vim\n# Marker\nalias x=y\n"


def test_append_once_creates_file(tmp_path):
    target = tmp_path / "new" / "activate"
    assert fs.append_once(target, "# Marker", "# Marker\n") is True
    assert target.read_text() == "# Marker\n"


def test_load_yaml(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("preflight:\n  min_glibc: '2.35'\n")
    assert fs.load_yaml(path) == {"preflight": {"min_glibc": "2.35"}}
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "absent.yaml")
