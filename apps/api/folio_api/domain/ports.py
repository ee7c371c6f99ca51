from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..publish import PublishResult


@runtime_checkable
class PublishTarget(Protocol):
    def publish(self, source_dir: Path, *, commit: str | None) -> "PublishResult":
        ...
