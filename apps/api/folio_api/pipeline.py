from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Callable, Literal

import httpx

from .build import BuildReport, SiteBuilder
from .config import Settings, SiteConfig, load_site_config
from .content import CONTENT_DIR
from .domain.exceptions import (
    BuildError,
    CheckoutError,
    ConfigError,
    FolioError,
    PipelineError,
    ProvisionError,
    PublishError,
)
from .domain.ports import PublishTarget
from .gitinfo import GitCommandError, GitLastmod, GitRepo, git_available
from .modules import ModuleResolver
from .publish import DirectoryPublisher, GitBranchPublisher
from .util import rfc3339_now

STAGES = ("checkout", "provision", "modules", "build", "publish")
DIST_NAME = "folio"

StageStatus = Literal["pending", "succeeded", "failed", "skipped"]
RunStatus = Literal["queued", "running", "succeeded", "failed"]

logger = logging.getLogger("folio.pipeline")


@dataclass
class StageResult:
    name: str
    status: StageStatus = "pending"
    started_at: str | None = None
    duration_ms: float = 0.0
    error: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunRecord:
    id: str
    trigger: str
    ref: str | None
    commit: str | None
    status: RunStatus
    created_at: str
    finished_at: str | None = None
    error: str | None = None
    stages: list[StageResult] = field(default_factory=list)

    @classmethod
    def new(cls, trigger: str, ref: str | None = None, commit: str | None = None) -> "RunRecord":
        return cls(
            id=str(uuid.uuid4()),
            trigger=trigger,
            ref=ref,
            commit=commit,
            status="queued",
            created_at=rfc3339_now(),
            stages=[StageResult(name=s) for s in STAGES],
        )

    def stage(self, name: str) -> StageResult:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def installed_version() -> str | None:
    try:
        return version(DIST_NAME)
    except PackageNotFoundError:
        return None


@dataclass
class _RunContext:
    repo: GitRepo | None = None
    site: SiteConfig | None = None
    report: BuildReport | None = None


class Pipeline:
    """checkout -> provision -> modules -> build -> publish. The first failure skips the rest."""

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.Client | None = None,
        publisher: PublishTarget | None = None,
        update_modules: bool = True,
    ) -> None:
        self.settings = settings
        self.http_client = http_client
        self._publisher = publisher
        self.update_modules = update_modules

    def run(self, record: RunRecord | None = None, trigger: str = "manual") -> RunRecord:
        record = record or RunRecord.new(trigger)
        record.status = "running"
        ctx = _RunContext()
        steps: dict[str, Callable[[RunRecord, _RunContext], dict[str, Any]]] = {
            "checkout": self._checkout,
            "provision": self._provision,
            "modules": self._modules,
            "build": self._build,
            "publish": self._publish,
        }
        logger.info("run_start", extra={"run": record.id, "trigger": record.trigger, "ref": record.ref})

        failed = False
        for name in STAGES:
            result = record.stage(name)
            if failed:
                result.status = "skipped"
                continue
            result.started_at = rfc3339_now()
            start = time.perf_counter()
            try:
                result.detail = steps[name](record, ctx)
                result.status = "succeeded"
            except PipelineError as e:
                result.status = "failed"
                result.error = str(e)
                failed = True
                logger.error("stage_failed", extra={"run": record.id, "stage": name, "error": str(e)})
            except Exception:
                result.status = "failed"
                result.error = "internal_error"
                failed = True
                logger.exception("stage_crashed", extra={"run": record.id, "stage": name})
            result.duration_ms = (time.perf_counter() - start) * 1000.0
            if result.status == "succeeded":
                logger.info("stage_ok", extra={"run": record.id, "stage": name, "ms": result.duration_ms})

        record.status = "failed" if failed else "succeeded"
        record.error = next((f"{s.name}:{s.error}" for s in record.stages if s.status == "failed"), None)
        record.finished_at = rfc3339_now()
        logger.info("run_finish", extra={"run": record.id, "status": record.status, "commit": record.commit})
        return record

    def _checkout(self, record: RunRecord, ctx: _RunContext) -> dict[str, Any]:
        site_dir = self.settings.site_dir
        if not site_dir.is_dir():
            raise CheckoutError("site_dir_missing")

        repo = GitRepo(site_dir)
        detail: dict[str, Any] = {"git": False}
        if git_available() and repo.is_repo():
            try:
                if record.commit and repo.head_commit() != record.commit:
                    repo.checkout_commit(record.commit, record.ref)
                    detail["checked_out"] = record.commit
                if repo.is_shallow():
                    # Per-file lastmod needs the whole history.
                    repo.unshallow()
                    detail["unshallowed"] = True
                repo.init_submodules()
                broken = [s.path for s in repo.submodule_status() if s.state in {"uninitialized", "conflict"}]
                if broken:
                    raise CheckoutError(f"submodule_uninitialized:{','.join(broken)}")
                head = repo.head_commit()
            except GitCommandError as e:
                raise CheckoutError(e.code) from e
            record.commit = head
            ctx.repo = repo
            detail.update({"git": True, "commit": head})
        elif self.settings.require_git:
            raise CheckoutError("not_a_git_repository")

        try:
            ctx.site = load_site_config(site_dir)
        except ConfigError as e:
            raise CheckoutError(str(e)) from e
        return detail

    def _provision(self, record: RunRecord, ctx: _RunContext) -> dict[str, Any]:
        needs_git = self.settings.require_git or self.settings.publish_mode == "git"
        if needs_git and not git_available():
            raise ProvisionError("tool_missing:git")
        current = installed_version()
        pinned = self.settings.generator_version
        if pinned:
            if current is None:
                raise ProvisionError("generator_not_installed")
            if current != pinned:
                raise ProvisionError(f"generator_version_mismatch:{pinned}!={current}")
        return {"version": current, "pinned": pinned}

    def _modules(self, record: RunRecord, ctx: _RunContext) -> dict[str, Any]:
        assert ctx.site is not None
        resolver = ModuleResolver(self.settings.site_dir, self.settings.state_dir, client=self.http_client)
        results = resolver.fetch(ctx.site.modules, update=self.update_modules)
        return {"modules": [r.path for r in results], "fetched": sum(1 for r in results if r.fetched)}

    def _build(self, record: RunRecord, ctx: _RunContext) -> dict[str, Any]:
        assert ctx.site is not None
        lastmod = GitLastmod(ctx.repo, self.settings.site_dir / CONTENT_DIR) if ctx.repo else None
        builder = SiteBuilder(
            self.settings.site_dir,
            ctx.site,
            minify=self.settings.minify,
            build_drafts=self.settings.build_drafts,
            lastmod_source=lastmod,
        )
        try:
            ctx.report = builder.build(self.settings.output_dir)
        except BuildError:
            raise
        except GitCommandError as e:
            raise BuildError(e.code) from e
        except (FolioError, OSError) as e:
            raise BuildError(str(e)) from e
        return {
            "pages": len(ctx.report.pages),
            "drafts_skipped": ctx.report.drafts_skipped,
            "files": ctx.report.files,
            "digest": ctx.report.digest,
            "warnings": ctx.report.warnings,
        }

    def publisher(self, site: SiteConfig | None) -> PublishTarget | None:
        if self._publisher is not None:
            return self._publisher
        mode = self.settings.publish_mode
        if mode == "directory":
            if self.settings.publish_dir is None:
                raise PublishError("publish_target_missing")
            return DirectoryPublisher(self.settings.publish_dir)
        if mode == "git":
            if not self.settings.publish_remote:
                raise PublishError("publish_target_missing")
            return GitBranchPublisher(
                self.settings.publish_remote,
                self.settings.publish_branch,
                token=self.settings.github_token,
                user_name=self.settings.git_user_name,
                user_email=self.settings.git_user_email,
                cname=site.cname if site else None,
            )
        return None

    def _publish(self, record: RunRecord, ctx: _RunContext) -> dict[str, Any]:
        assert ctx.report is not None
        target = self.publisher(ctx.site)
        if target is None:
            return {"published": False}
        result = target.publish(ctx.report.output_dir, commit=record.commit)
        return {"published": True, "target": result.target, "files": result.files}


class RunQueue:
    """Serializes pipeline runs and keeps a bounded history, newest first."""

    def __init__(self, pipeline_factory: Callable[[], Pipeline], *, history: int = 50, log_path: Path | None = None) -> None:
        self._factory = pipeline_factory
        self._history = history
        self._log_path = log_path
        self._lock = threading.Lock()
        self._records_lock = threading.Lock()
        self._records: list[RunRecord] = []

    def enqueue(self, trigger: str, ref: str | None = None, commit: str | None = None) -> RunRecord:
        record = RunRecord.new(trigger, ref=ref, commit=commit)
        with self._records_lock:
            self._records.insert(0, record)
            del self._records[self._history :]
        return record

    def execute(self, record: RunRecord) -> RunRecord:
        with self._lock:
            self._factory().run(record)
        self._append_log(record)
        return record

    def run_now(self, trigger: str, ref: str | None = None, commit: str | None = None) -> RunRecord:
        return self.execute(self.enqueue(trigger, ref=ref, commit=commit))

    def list(self) -> list[RunRecord]:
        with self._records_lock:
            return list(self._records)

    def get(self, run_id: str) -> RunRecord | None:
        with self._records_lock:
            for r in self._records:
                if r.id == run_id:
                    return r
        return None

    def _append_log(self, record: RunRecord) -> None:
        if self._log_path is None:
            return
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with self._log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record.to_dict(), sort_keys=True) + "\n")

