"""Logfire bridge for workflow and scheduler events.

Engine and scheduler code reports through ``record``, ``workflow_failure``
and ``record_exception``: each writes the stdlib log line and, when logfire is
configured, the same event as a structured logfire record. Transitions and
scheduler ticks run inside ``span``. Logfire calls are no-ops unless logfire
is installed and ``logfire.enabled`` is set.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from folio.config import Settings
    from folio.workflow.guards import Actor

_logfire = None
_configured = False

# stdlib level -> logfire method
_LOGFIRE_METHODS = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
}


def is_available() -> bool:
    return _logfire is not None and _configured


def configure(settings: Settings) -> None:
    """Initialize logfire from the ``logfire`` settings section.

    No-ops if logfire is not installed or not enabled.
    """
    global _logfire, _configured

    if not settings.logfire.enabled:
        return

    try:
        import logfire as lf
    except ImportError:
        return

    kwargs: dict[str, Any] = {
        "service_name": settings.logfire.service_name,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire.environment:
        kwargs["environment"] = settings.logfire.environment
    if settings.logfire.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = settings.logfire.sample_rate
    if settings.logfire.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    _configured = True


def instrument_app(app):
    if not is_available():
        return app
    return _logfire.instrument_asgi(app)


def instrument_sqlalchemy(engine) -> None:
    if is_available():
        _logfire.instrument_sqlalchemy(engine=engine)


@contextmanager
def span(name: str, **attrs: Any):
    """Yield a logfire span around a workflow operation, or None if unavailable."""
    if is_available():
        with _logfire.span(name, **attrs) as s:
            yield s
    else:
        yield None


def _emit(level: int, event: str, attrs: dict[str, Any]) -> None:
    if is_available():
        getattr(_logfire, _LOGFIRE_METHODS.get(level, "error"))(event, **attrs)


def record(logger: logging.Logger, level: int, event: str, msg: str, *args: Any, **attrs: Any) -> None:
    """Log ``msg % args`` on ``logger`` and emit ``event`` with ``attrs`` to logfire."""
    logger.log(level, msg, *args)
    _emit(level, event, attrs)


def actor_label(actor: Actor | None) -> str | None:
    if actor is None:
        return None
    return actor.name or str(actor.id)


def workflow_failure(
    logger: logging.Logger,
    operation: str,
    error: BaseException,
    *,
    actor: Actor | None = None,
    content_id: UUID | None = None,
    level: int = logging.WARNING,
) -> None:
    """Report a workflow operation that ended in ``error``.

    The logfire event is tagged with the operation, the error kind (the
    workflow error's ``kind``, or the exception class name), the actor and
    the content id, so failures can be grouped by any of them.
    """
    kind = getattr(error, "kind", type(error).__name__)
    attrs: dict[str, Any] = {"operation": operation, "kind": kind, "error": str(error)}
    if actor is not None:
        attrs["actor"] = actor_label(actor)
    if content_id is not None:
        attrs["content_id"] = str(content_id)
        logger.log(level, "%s of content %s failed (%s): %s", operation, content_id, kind, error)
    else:
        logger.log(level, "%s failed (%s): %s", operation, kind, error)
    _emit(level, "Workflow {operation} failed: {kind}", attrs)


def record_exception(logger: logging.Logger, event: str, msg: str, *args: Any, **attrs: Any) -> None:
    """``record`` for use inside an ``except`` block; both sides keep the traceback."""
    logger.exception(msg, *args)
    exception(event, **attrs)


def exception(msg: str, **kwargs: Any) -> bool:
    """Log an exception with traceback via logfire. Returns True if logged, False if unavailable."""
    if is_available():
        _logfire.exception(msg, **kwargs)
        return True
    return False
