"""JSON log lines for the visitor service.

Every line carries ``ts``, ``level``, ``logger``, ``message`` and, inside a
request, ``request_id``. Detection context passed through ``extra=``
(``event``, ``source``, ``outcome``, ``connection_type`` ...) is lifted to the
top level so lookups and verdicts can be filtered without parsing messages.
Anything else passed through ``extra=`` lands under ``context``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, MutableMapping, Tuple

from iptracker.middleware.request_id import get_request_id

# Attributes every LogRecord has; they never count as ``extra``.
_RECORD_ATTRS: FrozenSet[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

DETECTION_FIELDS: Tuple[str, ...] = (
    "event",
    "source",
    "outcome",
    "reason",
    "budget_ms",
    "connection_type",
    "score",
    "tor_method",
    "method",
    "path",
    "status_code",
    "duration_ms",
)

_HANDLER_MARK = "_iptracker_handler"


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {
            k: v
            for k, v in vars(record).items()
            if k not in _RECORD_ATTRS and not k.startswith("_")
        }
        rid = extra.pop("request_id", None) or get_request_id()
        if rid:
            payload["request_id"] = rid

        for key in DETECTION_FIELDS:
            if key in extra:
                payload[key] = extra.pop(key)
        if extra:
            payload["context"] = extra

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=_json_default)


def configure_logging(level: int | str = "INFO", *, json_lines: bool = True) -> None:
    """
    Install (or replace) the service's stdout handler on the root logger.

    Handlers installed by others, such as pytest's capture handler, are left
    alone; calling this twice swaps our handler rather than adding a second.
    """
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else str(level).upper())

    for h in list(root.handlers):
        if getattr(h, _HANDLER_MARK, False):
            root.removeHandler(h)

    handler = logging.StreamHandler(stream=sys.stdout)
    setattr(handler, _HANDLER_MARK, True)
    if json_lines:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)


class EventLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Stamps a fixed ``event`` on every line; per-call ``extra`` is kept."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        call_extra = kwargs.get("extra")
        merged: Dict[str, Any] = dict(self.extra or {})
        if isinstance(call_extra, Mapping):
            merged.update(call_extra)
        kwargs["extra"] = merged
        return msg, kwargs


def event_logger(logger: logging.Logger, event: str) -> EventLogger:
    return EventLogger(logger, {"event": event})
