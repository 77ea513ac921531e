"""Structured logging setup and secret masking.

Call ``setup_logging()`` once at application startup to configure the Python
logging subsystem with a consistent format and level.  Parameter payloads
must pass through ``mask_params()`` before they reach a log record.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, Mapping
from typing import Any

from idconnect.settings import settings

MASK = "********"


def setup_logging(
    level: int | str | None = None,
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> None:
    """Configure the root logger with the given level and format.

    Parameters
    ----------
    level:
        Logging level.  Defaults to ``settings.LOG_LEVEL``.  Accepts both
        integer constants (``logging.DEBUG``) and string names (``"DEBUG"``).
    fmt:
        Format string for log messages.
    datefmt:
        Date/time format string.
    """
    logging.basicConfig(
        level=level if level is not None else settings.LOG_LEVEL,
        format=fmt,
        datefmt=datefmt,
        stream=sys.stdout,
        force=True,
    )

    # Quieten noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def masked_names(extra: Iterable[str] = ()) -> frozenset[str]:
    """Return the configured masked attribute names plus ``extra``."""
    return frozenset(settings.MASKED_ATTRIBUTES) | frozenset(extra)


def mask_params(params: Any, names: Iterable[str] | None = None) -> Any:
    """Return a copy of ``params`` with secret values replaced by ``MASK``.

    Nested objects and lists are walked recursively.  The input is left
    untouched; execution logic always receives the original values.
    """
    hidden = masked_names() if names is None else frozenset(names)
    if isinstance(params, Mapping):
        return {
            key: MASK if key in hidden and value is not None else mask_params(value, hidden)
            for key, value in params.items()
        }
    if isinstance(params, list):
        return [mask_params(value, hidden) for value in params]
    return params
