"""Structured logging setup with market/operation context support.

Two output formats are supported, controlled by the ``LOG_FORMAT`` environment
variable (mapped to ``settings.log_format``):

- ``text`` (default): human-readable console output.
  Format: ``2024-01-01 12:00:00 | INFO     | capweight.marketcap.ingestion
           [op=insert_many] [mkt=BTC-EUR] | message``

- ``json``: one JSON object per line with fields ``timestamp``, ``level``,
  ``logger``, ``message``, ``operation``, ``quote_symbol``, ``base_symbol``,
  ``service`` and (on exceptions) ``exc_type``/``exc_value``/``exc_trace``.

Context propagation:
  The ContextVars below are asyncio-native and are copied into every task
  spawned from the current one, so setting the market once at the start of a
  per-market coroutine tags every log line emitted inside it.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

operation_var: ContextVar[str | None] = ContextVar("operation", default=None)
quote_symbol_var: ContextVar[str | None] = ContextVar("quote_symbol", default=None)
base_symbol_var: ContextVar[str | None] = ContextVar("base_symbol", default=None)

_SERVICE_NAME = "capweight"


class MarketContextFilter(logging.Filter):
    """Inject operation and market context into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation = operation_var.get() or ""
        record.quote_symbol = quote_symbol_var.get() or ""
        record.base_symbol = base_symbol_var.get() or ""
        return True


class JSONFormatter(logging.Formatter):
    """Emit one JSON object per log line.

    Context fields are empty strings (not null) when absent so aggregators can
    filter them with ``base_symbol != ""``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "operation": getattr(record, "operation", ""),
            "quote_symbol": getattr(record, "quote_symbol", ""),
            "base_symbol": getattr(record, "base_symbol", ""),
            "service": _SERVICE_NAME,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else None
            payload["exc_value"] = str(exc_value)
            payload["exc_trace"] = traceback.format_exception(exc_type, exc_value, exc_tb)

        return json.dumps(payload, default=str)


class _MarketTextFormatter(logging.Formatter):
    """Human-readable formatter that appends context tokens only when set."""

    _BASE_FMT = "%(asctime)s | %(levelname)-8s | %(name)s"
    _DATE_FMT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self._BASE_FMT, datefmt=self._DATE_FMT)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        tokens: list[str] = []
        op = getattr(record, "operation", "")
        quote = getattr(record, "quote_symbol", "")
        base_sym = getattr(record, "base_symbol", "")
        if op:
            tokens.append(f"[op={op}]")
        if quote and base_sym:
            tokens.append(f"[mkt={base_sym}-{quote}]")
        elif quote:
            tokens.append(f"[quote={quote}]")

        context_part = (" " + " ".join(tokens)) if tokens else ""
        line = f"{base}{context_part} | {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging() -> None:
    """Configure application logging based on ``settings.log_format``.

    Safe to call more than once: a handler is only added to the root logger
    when it has none yet.
    """
    from capweight.config import settings as _settings

    log_level_str = _settings.log_level.upper()
    log_format = _settings.log_format.lower()
    log_level = getattr(logging, log_level_str, logging.INFO)

    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(log_level)
        return

    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(MarketContextFilter())

    if log_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(_MarketTextFormatter())

    root_logger.addHandler(console_handler)

    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialised (level=%s, format=%s)", log_level_str, log_format
    )


def set_market_context(
    quote_symbol: str | None = None,
    base_symbol: str | None = None,
    operation: str | None = None,
) -> None:
    """Bind market context into the current async context.

    Only the explicitly passed arguments are updated; omitted keyword arguments
    leave the corresponding ContextVar unchanged.
    """
    if quote_symbol is not None:
        quote_symbol_var.set(quote_symbol)
    if base_symbol is not None:
        base_symbol_var.set(base_symbol)
    if operation is not None:
        operation_var.set(operation)


def clear_market_context() -> None:
    """Clear all market ContextVars in the current async context."""
    quote_symbol_var.set(None)
    base_symbol_var.set(None)
    operation_var.set(None)


def get_logger(name: str) -> logging.Logger:
    """Return a standard ``logging.Logger`` for the given module name.

    Usage::

        from capweight.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Component started")
    """
    return logging.getLogger(name)
