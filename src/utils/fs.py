"""Atomic filesystem operations for safe configuration writes.

Provides:
    - Atomic writes: tmp file → fsync → rename (prevents partial reads)
    - Timestamped sibling backups before overwriting
    - Directory reset with explicit permissions
    - YAML loading with validation
    - Atomic symlink creation for "current install" pointers

Critical for provisioning:
    - A daemon reading /etc/tlp.conf never sees a half-written policy
    - An interrupted run leaves either the old file or the new one
    - Earlier backups are never overwritten by later ones

All paths use pathlib.Path.

Usage:
    from src.utils import fs
    backup = fs.backup_file("/etc/tlp.conf", stamp="20250101_120000")
    fs.atomic_write_text("/etc/tlp.conf", text, mode=0o644)
    fs.symlink_atomic(extract_dir, workspace / "isaac-sim")
"""

import os
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create *p* and any missing parents; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(
    path: Union[str, Path],
    data: bytes,
    tmp_suffix: str = ".tmp",
    mode: Optional[int] = None,
) -> None:
    """Write bytes to file atomically (tmp → fsync → rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"
    mode : int, optional
        Permission bits applied to the file before it is renamed into
        place; None keeps the process umask default

    Raises
    ------
    RuntimeError
        If the write or rename fails (tmp file is removed)

    Notes
    -----
    Uses same directory for tmp file to ensure atomic rename on same filesystem.
    """
    path = Path(path)
    ensure_dir(path.parent)

    tmp_path = path.with_name(path.name + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        if mode is not None:
            os.chmod(tmp_path, mode)

        # Atomic rename (overwrites existing file on POSIX)
        tmp_path.replace(path)
    except Exception as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(
    path: Union[str, Path],
    text: str,
    encoding: str = "utf-8",
    mode: Optional[int] = None,
) -> None:
    """Write text to file atomically.

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    text : str
        Text content
    encoding : str
        Text encoding, default "utf-8"
    mode : int, optional
        Permission bits for the written file

    Notes
    -----
    Convenience wrapper around atomic_write_bytes.
    """
    atomic_write_bytes(path, text.encode(encoding), mode=mode)


def backup_path_for(path: Union[str, Path], stamp: str) -> Path:
    """Return a free sibling path ``<path>.backup.<stamp>``.

    A numeric suffix (``.1``, ``.2``...) is appended when the stamped name
    is already taken, so two runs within the same second keep both backups.
    """
    path = Path(path)
    candidate = path.with_name(f"{path.name}.backup.{stamp}")
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.backup.{stamp}.{n}")
        n += 1
    return candidate


def backup_file(path: Union[str, Path], stamp: str) -> Optional[Path]:
    """Copy an existing file to a timestamped sibling backup.

    Parameters
    ----------
    path : Union[str, Path]
        File to back up
    stamp : str
        Timestamp string, conventionally ``%Y%m%d_%H%M%S``

    Returns
    -------
    Optional[Path]
        Backup path, or None if *path* does not exist

    Notes
    -----
    Uses copy2 so the backup keeps the original mode and mtime.
    The backup content is byte-identical to the original.
    """
    path = Path(path)
    if not path.is_file():
        return None

    backup = backup_path_for(path, stamp)
    shutil.copy2(path, backup)
    return backup


def copy_into(src: Union[str, Path], dest_dir: Union[str, Path]) -> Optional[Path]:
    """Copy *src* into *dest_dir* keeping its name; None if *src* is missing."""
    src = Path(src)
    if not src.is_file():
        return None
    dest = ensure_dir(dest_dir) / src.name
    shutil.copy2(src, dest)
    return dest


def reset_dir(path: Union[str, Path], mode: int = 0o755) -> Path:
    """Remove a directory tree if present and recreate it empty.

    Parameters
    ----------
    path : Union[str, Path]
        Directory to recreate
    mode : int
        Permission bits for the fresh directory, default 0o755

    Returns
    -------
    Path
        The recreated directory

    Notes
    -----
    chmod is applied after mkdir so the result is independent of umask.
    """
    path = Path(path)
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    os.chmod(path, mode)
    return path


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Parse a YAML file with safe_load.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist
    yaml.YAMLError
        If parsing fails (message names the file)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e


def symlink_atomic(target: Union[str, Path], link_path: Union[str, Path]) -> None:
    """Create or update symlink atomically.

    Parameters
    ----------
    target : Union[str, Path]
        Symlink target (can be relative or absolute)
    link_path : Union[str, Path]
        Symlink path to create

    Notes
    -----
    Uses tmp symlink + rename for atomicity.
    Overwrites existing symlink safely.
    Creates parent directories as needed.
    """
    target = Path(target)
    link_path = Path(link_path)
    ensure_dir(link_path.parent)

    tmp_link = link_path.with_name(link_path.name + ".tmp_symlink")

    try:
        if tmp_link.exists() or tmp_link.is_symlink():
            tmp_link.unlink()

        tmp_link.symlink_to(target)
        tmp_link.replace(link_path)
    except Exception as e:
        if tmp_link.exists() or tmp_link.is_symlink():
            tmp_link.unlink()
        raise RuntimeError(f"Failed to create symlink {link_path} → {target}: {e}") from e


def append_once(path: Union[str, Path], marker: str, block: str) -> bool:
    """Append *block* to a text file unless *marker* already occurs in it.

    Parameters
    ----------
    path : Union[str, Path]
        File to append to (created if missing)
    marker : str
        Substring whose presence means the block was already added
    block : str
        Text to append

    Returns
    -------
    bool
        True if the block was appended, False if it was already present
    """
    path = Path(path)
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    if marker in existing:
        return False
    ensure_dir(path.parent)
    with open(path, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        f.write(block)
    return True


def safe_remove(path: Union[str, Path]) -> bool:
    """Remove a file or symlink; False if it was already gone or could not be removed."""
    path = Path(path)
    try:
        if path.is_symlink() or path.exists():
            path.unlink()
            return True
        return False
    except OSError:
        return False
