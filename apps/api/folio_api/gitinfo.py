from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath

logger = logging.getLogger("folio.git")

_COMMIT_MARKER = "__folio_commit__"


class GitCommandError(RuntimeError):
    def __init__(self, code: str, stderr: str = "") -> None:
        super().__init__(code)
        self.code = code
        self.stderr = stderr


@dataclass(frozen=True)
class SubmoduleState:
    path: str
    commit: str
    state: str  # "ok" | "uninitialized" | "modified" | "conflict"


_SUBMODULE_STATES = {" ": "ok", "-": "uninitialized", "+": "modified", "U": "conflict"}


def git_available(git: str = "git") -> bool:
    return shutil.which(git) is not None


class GitRepo:
    def __init__(self, path: Path, git: str = "git") -> None:
        self.path = path
        self.git = git

    def run(self, *args: str, check: bool = True, redact: str | None = None) -> str:
        try:
            proc = subprocess.run(
                [self.git, *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=False,
            )
        except OSError as e:
            raise GitCommandError("git_unavailable", str(e)) from e
        if check and proc.returncode != 0:
            stderr = proc.stderr.strip()
            if redact:
                stderr = stderr.replace(redact, "***")
            verb = next((a for a in args if not a.startswith("-") and "=" not in a), "command")
            raise GitCommandError(f"git_{verb}_failed", stderr)
        return proc.stdout.strip()

    def is_repo(self) -> bool:
        try:
            return self.run("rev-parse", "--is-inside-work-tree", check=False) == "true"
        except GitCommandError:
            return False

    def toplevel(self) -> Path:
        return Path(self.run("rev-parse", "--show-toplevel")).resolve()

    def is_shallow(self) -> bool:
        return self.run("rev-parse", "--is-shallow-repository") == "true"

    def unshallow(self) -> None:
        self.run("fetch", "--unshallow", "--quiet")

    def head_commit(self) -> str:
        return self.run("rev-parse", "HEAD")

    def current_branch(self) -> str:
        return self.run("rev-parse", "--abbrev-ref", "HEAD")

    def checkout_commit(self, commit: str, ref: str | None = None, remote: str = "origin") -> None:
        self.run("fetch", "--quiet", remote, ref or commit)
        self.run("checkout", "--quiet", "--detach", commit)

    def init_submodules(self) -> None:
        self.run("submodule", "sync", "--recursive")
        self.run("submodule", "update", "--init", "--recursive")

    def submodule_status(self) -> list[SubmoduleState]:
        out = self.run("submodule", "status", "--recursive")
        states: list[SubmoduleState] = []
        for line in out.splitlines():
            if not line:
                continue
            flag, rest = line[0], line[1:].split()
            if len(rest) < 2:
                continue
            states.append(SubmoduleState(path=rest[1], commit=rest[0], state=_SUBMODULE_STATES.get(flag, "unknown")))
        return states

    def last_commit_time(self, rel_path: str) -> datetime | None:
        out = self.run("log", "-1", "--format=%cI", "--", rel_path)
        return datetime.fromisoformat(out) if out else None

    def lastmod_map(self, prefix: str = ".") -> dict[str, datetime]:
        """Last commit time of every file under `prefix`, keyed by path relative to the repo root.

        One `git log` walk instead of a process per file; the first time a path shows up
        is its most recent change because the log is newest first.
        """
        # quotePath off so non-ASCII names come back as-is instead of octal-escaped.
        out = self.run(
            "-c",
            "core.quotePath=false",
            "log",
            f"--format={_COMMIT_MARKER}%cI",
            "--name-only",
            "--no-renames",
            "--",
            f":(top){prefix}" if prefix != "." else ":(top)",
        )
        result: dict[str, datetime] = {}
        current: datetime | None = None
        for line in out.splitlines():
            line = line.strip()
            if not line:
                continue
            if line.startswith(_COMMIT_MARKER):
                current = datetime.fromisoformat(line[len(_COMMIT_MARKER) :])
                continue
            if current is not None and line not in result:
                result[line] = current
        return result


class GitLastmod:
    """Resolves content paths to their last commit time, loaded lazily on first use."""

    def __init__(self, repo: GitRepo, content_dir: Path) -> None:
        self.repo = repo
        self.content_dir = content_dir.resolve()
        self._map: dict[str, datetime] | None = None
        self._prefix = ""

    def _load(self) -> dict[str, datetime]:
        if self._map is None:
            top = self.repo.toplevel()
            self._prefix = self.content_dir.relative_to(top).as_posix()
            self._map = self.repo.lastmod_map(self._prefix or ".")
            logger.debug("lastmod_loaded", extra={"files": len(self._map)})
        return self._map

    def __call__(self, content_path: str) -> datetime | None:
        mapping = self._load()
        key = (PurePosixPath(self._prefix) / content_path).as_posix() if self._prefix else content_path
        return mapping.get(key)
