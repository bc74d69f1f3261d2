"""
Utility helpers for the knowledge-graph core.

Provides:
- Structured logging configuration with timestamps.
- Wall-clock timing of pipeline stages.
- Subject → id slug conversion.
- Half-up rounding and JSON output helpers.
"""

import contextlib
import json
import logging
import math
import os
import re
import time
from typing import Any, Generator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(
    level: int = logging.INFO,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%Y-%m-%dT%H:%M:%S%z",
) -> None:
    """Configure the root logger with timestamped structured output."""
    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, force=True)


@contextlib.contextmanager
def timed(label: str) -> Generator[None, None, None]:
    """Context manager that logs elapsed wall-clock time for *label*."""
    t0 = time.monotonic()
    yield
    elapsed = time.monotonic() - t0
    logger.info("%s completed in %.3fs.", label, elapsed)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")


def slugify(subject: str) -> str:
    """``"Linear Algebra"`` → ``"linear_algebra"``."""
    return _WHITESPACE.sub("_", subject.strip().lower())


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for non-negative values (2.5 → 3)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# ---------------------------------------------------------------------------
# JSON output
# ---------------------------------------------------------------------------


def save_json(data: Any, path: str) -> None:
    """Write *data* as indented JSON, creating parent directories."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str)
    logger.info("Saved → %s", path)
