from __future__ import annotations

import logging

_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Appends the `extra={...}` fields we log with as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {k: v for k, v in vars(record).items() if k not in _RESERVED}
        if not extras:
            return base
        pairs = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return f"{base} {pairs}"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger("folio")
    if any(getattr(h, "_folio", False) for h in root.handlers):
        root.setLevel(level)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(ExtraFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    handler._folio = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
