from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
import logging
import os
import sys
from typing import Iterator

LOG_LEVEL_ENV = "KNATIVE_DEPLOYER_LOG_LEVEL"
_DEFAULT_LOG_LEVEL = "INFO"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(component)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    "DEBUG": "\x1b[36m",
    "INFO": "\x1b[32m",
    "WARNING": "\x1b[33m",
    "ERROR": "\x1b[31m",
    "CRITICAL": "\x1b[1;31m",
}
# Libraries that log every SQL statement or HTTP request at INFO.
_NOISY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")

_current_component: ContextVar[str | None] = ContextVar("knative_deployer_component", default=None)


@contextmanager
def component_context(name: str) -> Iterator[None]:
    """Tag every record logged inside the block with the component ``name``."""
    token = _current_component.set(name)
    try:
        yield
    finally:
        _current_component.reset(token)


def current_component() -> str | None:
    return _current_component.get()


class _LevelColorFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool) -> None:
        super().__init__(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "component"):
            record.component = current_component() or "-"
        levelname = record.levelname
        color = _LEVEL_COLORS.get(levelname) if self._use_color else None
        if color:
            record.levelname = f"{color}{levelname}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _stderr_supports_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return sys.stderr.isatty()


def resolve_level(level: str | int | None = None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv(LOG_LEVEL_ENV) or _DEFAULT_LOG_LEVEL).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(*, level: str | int | None = None, force: bool = False) -> None:
    """Install one stderr handler on the root logger.

    Calling again without ``force`` only adjusts levels of the handlers already
    installed, so the CLI and the API entrypoint can both call it safely.
    """
    root = logging.getLogger()
    resolved_level = resolve_level(level)
    root.setLevel(resolved_level)

    if root.handlers and not force:
        for handler in root.handlers:
            handler.setLevel(resolved_level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved_level)
    handler.setFormatter(_LevelColorFormatter(use_color=_stderr_supports_color()))
    root.handlers.clear()
    root.addHandler(handler)

    if resolved_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
