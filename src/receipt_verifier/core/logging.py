from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any

_verification_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "verification_id", default=None
)
_provider_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "provider", default=None
)

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line; structured fields ride on ``record.fields``."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update((k, v) for k, v in fields.items() if v is not None)
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging(level: str | None = None, *, force: bool = False) -> None:
    """Attach the JSON handler to the ``receipt_verifier`` logger tree.

    The level comes from ``level`` or ``LOG_LEVEL`` and defaults to INFO. Later
    calls are no-ops unless ``force`` is set.
    """
    global _configured  # noqa: PLW0603
    if _configured and not force:
        return
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger("receipt_verifier")
    root.setLevel(resolved)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def set_verification_context(
    *, verification_id: str | None, provider: str | None
) -> tuple[contextvars.Token, contextvars.Token]:
    token_verification = _verification_id_var.set(verification_id)
    token_provider = _provider_var.set(provider)
    return token_verification, token_provider


def reset_verification_context(tokens: tuple[contextvars.Token, contextvars.Token]) -> None:
    token_verification, token_provider = tokens
    _verification_id_var.reset(token_verification)
    _provider_var.reset(token_provider)


def _merge_fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "verification_id": _verification_id_var.get(),
        "provider": _provider_var.get(),
    }
    payload.update(fields)
    return {k: v for k, v in payload.items() if v is not None}


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _merge_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _merge_fields(fields)})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
