from __future__ import annotations

import hashlib
import io
import json
import logging
import shutil
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import httpx

from .config import ModuleSpec
from .domain.exceptions import BuildError, ModuleFetchError
from .util import atomic_write_json, staging_path, swap_directory

LOCK_NAME = "modules.lock.json"

logger = logging.getLogger("folio.modules")


@dataclass(frozen=True)
class ModuleResult:
    path: str
    url: str
    sha256: str
    fetched: bool


def resolve_theme_dir(site_dir: Path, theme: str) -> Path:
    """A theme is a directory with a non-empty `layouts/`. An uninitialised submodule is an empty dir."""
    theme_dir = site_dir / "themes" / theme
    layouts = theme_dir / "layouts"
    if not layouts.is_dir() or not any(layouts.iterdir()):
        raise BuildError(f"theme_missing:{theme}")
    return theme_dir


def _member_target(dest: Path, name: str) -> Path:
    p = PurePosixPath(name.replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts:
        raise ModuleFetchError("module_archive_unsafe_member")
    target = (dest / p).resolve()
    if dest.resolve() not in target.parents and target != dest.resolve():
        raise ModuleFetchError("module_archive_unsafe_member")
    return target


def _common_root(file_names: list[str]) -> str | None:
    """The single directory every file sits under, if there is one."""
    parts = [PurePosixPath(n).parts for n in file_names]
    if not parts or any(len(p) < 2 for p in parts):
        return None
    tops = {p[0] for p in parts}
    return tops.pop() if len(tops) == 1 else None


def _strip(name: str, root: str | None) -> str | None:
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ModuleFetchError("module_archive_unsafe_member")
    parts = path.parts
    if root is not None:
        parts = parts[1:]
    return PurePosixPath(*parts).as_posix() if parts else None


def extract_archive(data: bytes, url: str, dest: Path) -> int:
    """Extract a .zip or .tar(.gz) archive into `dest`, dropping a single wrapper directory."""
    dest.mkdir(parents=True, exist_ok=True)
    count = 0
    lowered = url.lower().split("?", 1)[0]
    try:
        if lowered.endswith(".zip"):
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                infos = zf.infolist()
                root = _common_root([i.filename for i in infos if not i.is_dir()])
                for info in infos:
                    rel = _strip(info.filename, root)
                    if rel is None or info.is_dir():
                        continue
                    target = _member_target(dest, rel)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(zf.read(info))
                    count += 1
        else:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tf:
                members = tf.getmembers()
                root = _common_root([m.name for m in members if m.isfile()])
                for m in members:
                    rel = _strip(m.name, root)
                    if rel is None or not m.isfile():
                        continue
                    target = _member_target(dest, rel)
                    fh = tf.extractfile(m)
                    if fh is None:
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(fh.read())
                    count += 1
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as e:
        raise ModuleFetchError("module_archive_invalid") from e
    if count == 0:
        raise ModuleFetchError("module_archive_empty")
    return count


class ModuleResolver:
    def __init__(self, site_dir: Path, state_dir: Path | None = None, client: httpx.Client | None = None, timeout_s: float = 60.0) -> None:
        self.site_dir = site_dir
        self.state_dir = state_dir or site_dir / ".folio"
        self.lock_path = self.state_dir / LOCK_NAME
        self._client = client
        self.timeout_s = timeout_s

    def _load_lock(self) -> dict[str, dict]:
        if not self.lock_path.exists():
            return {}
        try:
            data = json.loads(self.lock_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("module_lock_unreadable", extra={"path": str(self.lock_path)})
            return {}
        return data if isinstance(data, dict) else {}

    def _download(self, client: httpx.Client, url: str) -> bytes:
        try:
            resp = client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise ModuleFetchError("module_request_failed") from e
        if resp.status_code >= 400:
            raise ModuleFetchError(f"module_http_{resp.status_code}")
        return resp.content

    def _fetch_one(self, client: httpx.Client, spec: ModuleSpec) -> ModuleResult:
        data = self._download(client, spec.url)
        digest = hashlib.sha256(data).hexdigest()
        if spec.sha256 and spec.sha256.lower() != digest:
            raise ModuleFetchError("module_checksum_mismatch")

        dest = self.site_dir / PurePosixPath(spec.path)
        staging = staging_path(dest, "fetch")
        if staging.exists():
            shutil.rmtree(staging)
        try:
            files = extract_archive(data, spec.url, staging)
            swap_directory(staging, dest)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        logger.info("module_fetched", extra={"module": spec.path, "files": files, "sha256": digest})
        return ModuleResult(path=spec.path, url=spec.url, sha256=digest, fetched=True)

    def fetch(self, modules: list[ModuleSpec], update: bool = False) -> list[ModuleResult]:
        lock = self._load_lock()
        results: list[ModuleResult] = []
        client = self._client or httpx.Client(timeout=self.timeout_s)
        try:
            for spec in modules:
                entry = lock.get(spec.path) or {}
                dest = self.site_dir / PurePosixPath(spec.path)
                pinned = spec.sha256 is None or entry.get("sha256") == spec.sha256.lower()
                if not update and entry.get("url") == spec.url and pinned and dest.is_dir():
                    results.append(ModuleResult(path=spec.path, url=spec.url, sha256=entry.get("sha256", ""), fetched=False))
                    continue
                result = self._fetch_one(client, spec)
                lock[spec.path] = {"url": result.url, "sha256": result.sha256}
                results.append(result)
        finally:
            if self._client is None:
                client.close()

        declared = {m.path for m in modules}
        lock = {k: v for k, v in lock.items() if k in declared}
        self.state_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_json(self.lock_path, lock)
        return results
