from functools import lru_cache

from folio_api.config import load_settings
from folio_api.content import ContentTree
from folio_api.pipeline import Pipeline, RunQueue


@lru_cache()
def get_settings():
    return load_settings()


@lru_cache()
def get_content():
    settings = get_settings()
    return ContentTree(settings.site_dir)


@lru_cache()
def get_run_queue():
    settings = get_settings()
    return RunQueue(lambda: Pipeline(settings), log_path=settings.state_dir / "runs.jsonl")
