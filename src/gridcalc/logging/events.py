"""Event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context: failures are
swallowed and reported on stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Cell writes
    cell_set = "cell_set"
    cell_rejected = "cell_rejected"
    cell_cleared = "cell_cleared"

    # Whole sheet
    sheet_cleared = "sheet_cleared"
    snapshot_imported = "snapshot_imported"

    # Persistence
    snapshot_saved = "snapshot_saved"
    snapshot_loaded = "snapshot_loaded"


# ---------------------------------------------------------------------------
# Context clipping
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def clip_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long strings truncated.

    Cell inputs are user text of arbitrary length; the log keeps only
    the first 256 characters of any string value.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = clip_context(v)
        elif isinstance(v, list):
            out[k] = [_clip_value(item) for item in v]
        else:
            out[k] = _clip_value(v)
    return out


def _clip_value(v: Any) -> Any:
    if isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
        return v[:_MAX_VALUE_LEN] + "...[truncated]"
    return v


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Active sink
# ---------------------------------------------------------------------------

# ``None`` until ``set_log_dir`` is called; events are then discarded.
_sink: Any = None  # EventSink | None
_log_dir: Path | None = None


def _sink_options(directory: Path) -> dict[str, Any]:
    """``EventSink`` keyword options from the project's ``gridcalc.yaml``."""
    from gridcalc.project import load_config

    try:
        cfg = load_config(directory)
        tail_bytes = cfg.get("logging_tail_bytes")
        return {
            "fsync": bool(cfg.get("logging_fsync")),
            "tail_bytes": int(tail_bytes) if tail_bytes is not None else None,
        }
    except (OSError, ValueError, TypeError, yaml.YAMLError) as exc:
        _stderr_warning(f"could not read logging options: {exc}")
        return {}


def set_log_dir(directory: Path | str | None) -> None:
    """Send subsequent events to ``<directory>/logs/events.ndjson``.

    ``None`` detaches the sink.  CLI commands call this once they know
    which project they operate on.
    """
    global _sink, _log_dir
    from gridcalc.logging.sink import EventSink

    if directory is None:
        _sink, _log_dir = None, None
        return
    _log_dir = Path(directory)
    _sink = EventSink(_log_dir, **_sink_options(_log_dir))


def get_sink() -> Any:
    return _sink


# ---------------------------------------------------------------------------
# stderr fallback
# ---------------------------------------------------------------------------

_last_stderr_ts: float | None = None
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Report a logging problem on stderr, at most once a minute."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts is None or now - _last_stderr_ts >= _STDERR_INTERVAL_SECS:
        _last_stderr_ts = now
        sys.stderr.write(f"[gridcalc] {msg}\n")


# ---------------------------------------------------------------------------
# Emit helpers
# ---------------------------------------------------------------------------


def emit(event: GridEvent) -> None:
    """Append *event* to the active sink, if any.

    Never raises: a failing sink is reported through :func:`_stderr_warning`.
    """
    sink = _sink
    if sink is None:
        return
    try:
        sink.write(event.model_copy(update={"context": clip_context(event.context)}))
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    try:
        event = GridEvent(
            level=level,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    except Exception:
        _stderr_warning(f"invalid event: {traceback.format_exc()}")
        return
    emit(event)


def emit_info(event_type: EventType, message: str, context: dict[str, Any] | None = None) -> None:
    _emit_at(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code)
