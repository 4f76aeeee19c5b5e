"""Shared validation helpers for environment-provided settings."""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _ctx(context: str) -> str:
    return f" ({context})" if context else ""


def parse_seconds(
    value: object,
    *,
    default: float,
    min: float = 0.0,
    max: float = 60.0,
    log: logging.Logger = logger,
    context: str = "",
) -> float:
    """Parse a permissive seconds value with bounds checking."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default

    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        log.warning("Invalid seconds value%s: %r (using default=%s)", _ctx(context), value, default)
        return default

    if parsed < min or parsed > max:
        log.warning(
            "Out-of-range seconds value%s: %r (expected %s..%s, using default=%s)",
            _ctx(context),
            parsed,
            min,
            max,
            default,
        )
        return default

    return parsed


def parse_port(
    value: object,
    *,
    default: int,
    log: logging.Logger = logger,
    context: str = "",
) -> int:
    """Parse a TCP port; 0 is allowed and means "disabled"."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default

    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        log.warning("Invalid port%s: %r (using default=%s)", _ctx(context), value, default)
        return default

    if parsed < 0 or parsed > 65535:
        log.warning("Out-of-range port%s: %r (using default=%s)", _ctx(context), parsed, default)
        return default

    return parsed


def parse_log_level(
    value: Optional[str],
    *,
    debug: bool = False,
    default: str = "INFO",
) -> int:
    """Map LOG_LEVEL (name or number) to a logging level; DEBUG=1 wins."""
    if debug:
        return logging.DEBUG
    raw = (value or "").strip().upper()
    if not raw:
        return getattr(logging, default)
    if raw.isdigit():
        return int(raw)
    if raw in LOG_LEVELS:
        return getattr(logging, raw)
    if raw == "WARN":
        return logging.WARNING
    return getattr(logging, default)


def parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}
