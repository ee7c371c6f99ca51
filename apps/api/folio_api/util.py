from __future__ import annotations

import hashlib
import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from .domain.exceptions import PathError


def rfc3339(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def rfc3339_from_timestamp(ts: float) -> str:
    return rfc3339(datetime.fromtimestamp(ts, tz=timezone.utc))


def rfc3339_now() -> str:
    return rfc3339(datetime.now(timezone.utc))


def normalize_newlines_for_hash(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}")
    tmp_path.write_text(content, encoding="utf-8")
    tmp_path.replace(path)


def atomic_write_json(path: Path, data: object) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, sort_keys=True) + "\n")


def normalize_relative_path(path: str) -> str:
    """Clean a user supplied relative path and reject anything that could leave its root."""
    if "\x00" in path:
        raise PathError("path_contains_nul")

    cleaned = path.strip().replace("\\", "/")
    if not cleaned:
        raise PathError("path_empty")

    p = PurePosixPath(cleaned)
    if p.is_absolute():
        raise PathError("path_absolute_not_allowed")
    if ".." in p.parts:
        raise PathError("path_traversal_not_allowed")
    if p.parts and p.parts[0] == ".folio":
        raise PathError("path_reserved")
    return p.as_posix()


def staging_path(target: Path, label: str) -> Path:
    return target.with_name(f".{target.name}.{label}.{os.getpid()}")


def swap_directory(staging: Path, target: Path) -> None:
    """Move `staging` into place at `target`, keeping the old tree until the rename succeeded."""
    backup = None
    if target.exists():
        backup = staging_path(target, "old")
        if backup.exists():
            shutil.rmtree(backup)
        target.replace(backup)
    try:
        staging.replace(target)
    except OSError:
        if backup is not None:
            backup.replace(target)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


def tree_digest(root: Path) -> str:
    """sha256 over every file's relative path and bytes, in sorted order."""
    h = hashlib.sha256()
    for p in sorted(root.rglob("*")):
        if not p.is_file():
            continue
        h.update(p.relative_to(root).as_posix().encode("utf-8"))
        h.update(b"\x00")
        h.update(p.read_bytes())
        h.update(b"\x00")
    return h.hexdigest()


def list_files(root: Path) -> list[str]:
    if not root.exists():
        return []
    return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())
