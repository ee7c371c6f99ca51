from __future__ import annotations


class FolioError(Exception):
    """Base class for errors raised by folio. Messages are short snake_case codes."""


class ConfigError(FolioError):
    pass


class PathError(FolioError, ValueError):
    pass


class ContentError(FolioError):
    def __init__(self, code: str, path: str) -> None:
        super().__init__(f"{code}:{path}")
        self.code = code
        self.path = path


class PipelineError(FolioError):
    stage = "pipeline"


class CheckoutError(PipelineError):
    stage = "checkout"


class ProvisionError(PipelineError):
    stage = "provision"


class ModuleFetchError(PipelineError):
    stage = "modules"


class BuildError(PipelineError):
    stage = "build"


class PublishError(PipelineError):
    stage = "publish"
