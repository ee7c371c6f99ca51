from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from .domain.exceptions import PublishError
from .gitinfo import GitCommandError, GitRepo
from .util import list_files, staging_path, swap_directory

logger = logging.getLogger("folio.publish")


@dataclass(frozen=True)
class PublishResult:
    target: str
    commit: str | None
    files: int


def authenticated_remote(remote: str, token: str | None) -> str:
    parts = urlsplit(remote)
    if parts.scheme != "https" or not token:
        return remote
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"x-access-token:{token}@{host}", parts.path, parts.query, parts.fragment))


class DirectoryPublisher:
    """Replaces a local directory wholesale, e.g. a path served by a web server."""

    def __init__(self, target_dir: Path) -> None:
        self.target_dir = target_dir

    def publish(self, source_dir: Path, *, commit: str | None) -> PublishResult:
        staging = staging_path(self.target_dir, "publish")
        if staging.exists():
            shutil.rmtree(staging)
        try:
            self.target_dir.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(source_dir, staging)
            swap_directory(staging, self.target_dir)
        except OSError as e:
            raise PublishError("publish_copy_failed") from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        files = len(list_files(self.target_dir))
        logger.info("publish_directory", extra={"target": str(self.target_dir), "commit": commit, "files": files})
        return PublishResult(target=str(self.target_dir), commit=commit, files=files)


class GitBranchPublisher:
    """Force-pushes the built tree as the single commit of a hosting branch (GitHub Pages style)."""

    def __init__(
        self,
        remote: str,
        branch: str,
        *,
        token: str | None,
        user_name: str,
        user_email: str,
        cname: str | None = None,
        git: str = "git",
    ) -> None:
        self.remote = remote
        self.branch = branch
        self.token = token
        self.user_name = user_name
        self.user_email = user_email
        self.cname = cname
        self.git = git

    def publish(self, source_dir: Path, *, commit: str | None) -> PublishResult:
        if self.remote.startswith("https://") and not self.token:
            raise PublishError("publish_token_missing")

        with tempfile.TemporaryDirectory(prefix="folio-publish-") as tmp:
            work = Path(tmp) / "site"
            shutil.copytree(source_dir, work)
            (work / ".nojekyll").write_text("", encoding="utf-8")
            if self.cname:
                (work / "CNAME").write_text(self.cname.strip() + "\n", encoding="utf-8")
            files = len(list_files(work))

            repo = GitRepo(work, git=self.git)
            message = f"deploy: {commit}" if commit else "deploy"
            try:
                repo.run("init", "--quiet")
                repo.run("symbolic-ref", "HEAD", f"refs/heads/{self.branch}")
                repo.run("add", "--all")
                repo.run(
                    "-c", f"user.name={self.user_name}",
                    "-c", f"user.email={self.user_email}",
                    "commit", "--quiet", "--allow-empty", "-m", message,
                )
                repo.run(
                    "push", "--quiet", "--force",
                    authenticated_remote(self.remote, self.token),
                    f"HEAD:refs/heads/{self.branch}",
                    redact=self.token,
                )
            except GitCommandError as e:
                logger.error("publish_git_failed", extra={"code": e.code, "stderr": e.stderr, "branch": self.branch})
                raise PublishError("publish_push_failed") from e

        logger.info("publish_branch", extra={"remote": self.remote, "branch": self.branch, "commit": commit, "files": files})
        return PublishResult(target=f"{self.remote}#{self.branch}", commit=commit, files=files)
