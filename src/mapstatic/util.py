"""Utility helpers for logging, bounded worker pools, and small formatting."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Sequence, TypeVar


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_T = TypeVar("_T")
_R = TypeVar("_R")


def setup_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure root logging to console and optionally a file."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def bounded_map(fn: Callable[[_T], _R], items: Iterable[_T], limit: int = 0) -> list[_R]:
    """Apply ``fn`` to every item with at most ``limit`` calls in flight.

    Results keep the input order. ``limit <= 0`` runs every item at once.
    Exceptions raised by ``fn`` propagate to the caller; callers that need
    per-item failure isolation must catch inside ``fn``.
    """
    work = list(items)
    if not work:
        return []
    workers = len(work) if limit <= 0 else min(limit, len(work))
    if workers == 1:
        return [fn(item) for item in work]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mapstatic") as executor:
        return list(executor.map(fn, work))


def chunked(items: Sequence[_T], size: int) -> list[Sequence[_T]]:
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


def format_code_list(values: list[str], limit: int = 12) -> str:
    if len(values) <= limit:
        return ", ".join(values)
    shown = ", ".join(values[:limit])
    return f"{shown}, ... (+{len(values) - limit} more)"
