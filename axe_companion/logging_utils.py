from __future__ import annotations

import logging

TRACE_LEVEL = 5


def ensure_trace_level() -> None:
    """Register ``TRACE`` so payload dumps logged at TRACE_LEVEL render by name."""
    if logging.getLevelName(TRACE_LEVEL) != "TRACE":
        logging.addLevelName(TRACE_LEVEL, "TRACE")


def redact(payload: dict[str, object], keys: tuple[str, ...] = ("stratumPassword",)) -> dict[str, object]:
    return {key: ("***" if key in keys else value) for key, value in payload.items()}
