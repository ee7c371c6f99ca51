import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from folio_api.config import Settings
from folio_api.content import ContentTree, series_warnings
from folio_api.dependencies import get_content, get_run_queue, get_settings
from folio_api.domain.exceptions import ContentError, PathError
from folio_api.domain.schemas import (
    HookAckOut,
    PostDetailOut,
    PostSummaryOut,
    RunOut,
    RunTriggerIn,
    SeriesOut,
)
from folio_api.parsing import render_markdown
from folio_api.pipeline import RunQueue

router = APIRouter()
logger = logging.getLogger("folio.api")


def _load(content: ContentTree, include_drafts: bool = False):
    try:
        return content.load(include_drafts=include_drafts)
    except ContentError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def verify_signature(secret: str, body: bytes, header: str | None) -> bool:
    if not header:
        return False
    expected = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header)


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/posts")
def list_posts(
    limit: int = Query(100, ge=1, le=500),
    cursor: int = Query(0, ge=0),
    tag: Optional[str] = None,
    series: Optional[str] = None,
    include_drafts: bool = False,
    content: ContentTree = Depends(get_content),
):
    items = _load(content, include_drafts=include_drafts).published
    if tag:
        wanted = tag.strip().lower()
        items = [a for a in items if wanted in {t.lower() for t in a.tags}]
    if series:
        items = [a for a in items if a.series == series]
    page = items[cursor : cursor + limit]
    next_cursor = cursor + limit if cursor + limit < len(items) else None
    return {"items": [PostSummaryOut.from_article(a).model_dump() for a in page], "next_cursor": next_cursor}


@router.get("/posts/{slug}", response_model=PostDetailOut)
def get_post(slug: str, include_drafts: bool = False, content: ContentTree = Depends(get_content)):
    article = _load(content, include_drafts=include_drafts).by_slug(slug)
    if article is None:
        raise HTTPException(status_code=404, detail="post_not_found")
    return PostDetailOut.from_article(article, content_html=render_markdown(article.body_markdown))


@router.get("/series/{name}", response_model=SeriesOut)
def get_series(name: str, content: ContentTree = Depends(get_content)):
    parts = _load(content).series(name)
    if not parts:
        raise HTTPException(status_code=404, detail="series_not_found")
    return SeriesOut(
        name=name,
        parts=[PostSummaryOut.from_article(a) for a in parts],
        warnings=series_warnings(parts),
    )


@router.get("/check")
def check_content(content: ContentTree = Depends(get_content)):
    try:
        errors, warnings = content.check()
    except PathError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {
        "ok": not errors,
        "errors": [{"code": e.code, "path": e.path} for e in errors],
        "warnings": warnings,
    }


@router.get("/runs")
def list_runs(queue: RunQueue = Depends(get_run_queue)):
    return {"items": [RunOut(**r.to_dict()).model_dump() for r in queue.list()]}


@router.get("/runs/{run_id}", response_model=RunOut)
def get_run(run_id: str, queue: RunQueue = Depends(get_run_queue)):
    record = queue.get(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail="run_not_found")
    return RunOut(**record.to_dict())


@router.post("/runs", status_code=202, response_model=RunOut)
def trigger_run(
    payload: RunTriggerIn,
    request: Request,
    background: BackgroundTasks,
    queue: RunQueue = Depends(get_run_queue),
):
    record = queue.enqueue("manual", commit=payload.commit)
    logger.info("run_enqueued", extra={"rid": getattr(request.state, "request_id", ""), "run": record.id, "trigger": "manual"})
    background.add_task(queue.execute, record)
    return RunOut(**record.to_dict())


@router.post("/hooks/github", status_code=202, response_model=HookAckOut)
async def github_hook(
    request: Request,
    background: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    queue: RunQueue = Depends(get_run_queue),
):
    if not settings.webhook_secret:
        raise HTTPException(status_code=403, detail="webhook_disabled")
    body = await request.body()
    if not verify_signature(settings.webhook_secret, body, request.headers.get("x-hub-signature-256")):
        raise HTTPException(status_code=401, detail="bad_signature")

    event = request.headers.get("x-github-event", "")
    if event == "ping":
        return JSONResponse(status_code=200, content=HookAckOut(reason="pong").model_dump())
    if event != "push":
        return HookAckOut(ignored=True, reason=f"event_{event or 'missing'}")

    try:
        payload = json.loads(body or b"{}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail="payload_invalid") from e
    ref = payload.get("ref") if isinstance(payload, dict) else None
    if ref != f"refs/heads/{settings.primary_branch}":
        return HookAckOut(ignored=True, reason="ref_not_primary")
    if payload.get("deleted"):
        return HookAckOut(ignored=True, reason="ref_deleted")

    commit = payload.get("after") if isinstance(payload.get("after"), str) else None
    record = queue.enqueue("push", ref=ref, commit=commit)
    logger.info(
        "run_enqueued",
        extra={"rid": getattr(request.state, "request_id", ""), "run": record.id, "trigger": "push", "commit": commit},
    )
    background.add_task(queue.execute, record)
    return HookAckOut(run_id=record.id)
