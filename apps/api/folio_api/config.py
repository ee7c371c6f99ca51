from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .domain.exceptions import ConfigError
from .util import normalize_relative_path

SITE_CONFIG_NAME = "site.yaml"

PublishMode = Literal["none", "directory", "git"]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    site_dir: Path
    output_dir: Path
    state_dir: Path
    primary_branch: str
    require_git: bool
    publish_mode: PublishMode
    publish_dir: Path | None
    publish_remote: str | None
    publish_branch: str
    github_token: str | None
    git_user_name: str
    git_user_email: str
    minify: bool
    build_drafts: bool
    generator_version: str | None
    webhook_secret: str | None
    api_auth_mode: str
    api_auth_token: str | None
    api_debug_log: bool
    log_level: str


def load_settings(site_dir: Path | None = None) -> Settings:
    site_dir = Path(site_dir or os.environ.get("SITE_DIR", "./site")).resolve()
    output_dir = Path(os.environ.get("OUTPUT_DIR") or site_dir / "public").resolve()
    state_dir = Path(os.environ.get("FOLIO_STATE_DIR") or site_dir / ".folio").resolve()
    publish_mode = os.environ.get("PUBLISH_MODE", "none").strip().lower()
    if publish_mode not in {"none", "directory", "git"}:
        raise ConfigError(f"publish_mode_invalid:{publish_mode}")
    publish_dir_raw = os.environ.get("PUBLISH_DIR")
    return Settings(
        site_dir=site_dir,
        output_dir=output_dir,
        state_dir=state_dir,
        primary_branch=os.environ.get("PRIMARY_BRANCH", "main"),
        require_git=_env_bool("FOLIO_REQUIRE_GIT", True),
        publish_mode=publish_mode,  # type: ignore[arg-type]
        publish_dir=Path(publish_dir_raw).resolve() if publish_dir_raw else None,
        publish_remote=os.environ.get("PUBLISH_REMOTE"),
        publish_branch=os.environ.get("PUBLISH_BRANCH", "gh-pages"),
        github_token=os.environ.get("GITHUB_TOKEN"),
        git_user_name=os.environ.get("GIT_USER_NAME", "github-actions[bot]"),
        git_user_email=os.environ.get("GIT_USER_EMAIL", "41898282+github-actions[bot]@users.noreply.github.com"),
        minify=_env_bool("FOLIO_MINIFY", True),
        build_drafts=_env_bool("FOLIO_BUILD_DRAFTS", False),
        generator_version=os.environ.get("FOLIO_GENERATOR_VERSION") or None,
        webhook_secret=os.environ.get("WEBHOOK_SECRET") or None,
        api_auth_mode=os.environ.get("API_AUTH_MODE", "none").lower(),
        api_auth_token=os.environ.get("API_AUTH_TOKEN"),
        api_debug_log=_env_bool("API_DEBUG_LOG", False),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


class ModuleSpec(BaseModel):
    path: str
    url: str
    sha256: Optional[str] = None

    @field_validator("path")
    @classmethod
    def _safe_path(cls, v: str) -> str:
        return normalize_relative_path(v)


class SiteConfig(BaseModel):
    title: str = "Untitled site"
    base_url: str = "/"
    language_code: str = "en"
    description: str = ""
    author: Optional[str] = None
    theme: str
    cname: Optional[str] = None
    modules: list[ModuleSpec] = Field(default_factory=list)
    taxonomies: dict[str, str] = Field(default_factory=lambda: {"tag": "tags", "category": "categories"})
    feed_limit: int = Field(20, ge=1)
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("base_url")
    @classmethod
    def _trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else v + "/"

    def absurl(self, path: str) -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")


def load_site_config(site_dir: Path) -> SiteConfig:
    path = site_dir / SITE_CONFIG_NAME
    if not path.exists():
        raise ConfigError("site_config_missing")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError("site_config_yaml_error") from e
    if not isinstance(raw, dict):
        raise ConfigError("site_config_not_mapping")
    try:
        return SiteConfig(**raw)
    except ValidationError as e:
        raise ConfigError("site_config_invalid") from e
