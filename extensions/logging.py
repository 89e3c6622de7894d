from __future__ import annotations
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from contextvars import ContextVar

# Per-task context: which URL is this visit processing right now?
_CURRENT_VISIT_URL: ContextVar[Optional[str]] = ContextVar("_CURRENT_VISIT_URL", default=None)

_FILE_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(visit)s%(message)s"
_CONSOLE_FORMAT = "%(levelname)s: %(visit)s%(message)s"


class _VisitFilter(logging.Filter):
    """
    Stamp every record with the visit URL of the task that emitted it, so
    interleaved logs from concurrent visits stay attributable.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        url = _CURRENT_VISIT_URL.get()
        record.visit = f"<{url}> " if url else ""
        return True


def set_visit_context(url: str):
    """Returns a token you must pass to reset_visit_context when done."""
    return _CURRENT_VISIT_URL.set(url)


def reset_visit_context(token) -> None:
    try:
        _CURRENT_VISIT_URL.reset(token)
    except ValueError:
        # token was created in a different context
        pass


@contextmanager
def visit_context(url: str) -> Iterator[None]:
    token = set_visit_context(url)
    try:
        yield
    finally:
        reset_visit_context(token)


class LoggingExtension:
    """
    Root logging for a crawl run.

    Records always go to `log_file`. A stderr console handler is optional and
    off by default, because stderr carries the run's JSON audit document.
    """

    def __init__(
        self,
        log_file: Optional[Path] = None,
        *,
        level: int = logging.INFO,
        console: bool = False,
        console_level: Optional[int] = None,
    ) -> None:
        self.log_file = log_file
        self.level = level
        self._handlers: list[logging.Handler] = []
        self._filter = _VisitFilter()

        root = logging.getLogger()
        # Remove any default handlers (e.g., from basicConfig)
        for h in list(root.handlers):
            root.removeHandler(h)
        # Make root permissive; rely on handler levels to filter.
        root.setLevel(logging.DEBUG)

        if log_file is not None:
            self._install_file(log_file, level)
        if console:
            self._install_console(console_level if console_level is not None else level)

    # ---------------- Handlers ----------------

    def _attach(self, handler: logging.Handler, level: int, fmt: str) -> None:
        handler.setLevel(level)
        handler.addFilter(self._filter)
        handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
        logging.getLogger().addHandler(handler)
        self._handlers.append(handler)

    def _install_file(self, log_file: Path, level: int) -> None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        self._attach(logging.FileHandler(log_file, mode="a", encoding="utf-8"), level, _FILE_FORMAT)

    def _install_console(self, level: int) -> None:
        self._attach(logging.StreamHandler(sys.stderr), level, _CONSOLE_FORMAT)

    # ---------------- Cleanup ----------------

    def close(self) -> None:
        root = logging.getLogger()
        for h in self._handlers:
            root.removeHandler(h)
            h.flush()
            h.close()
        self._handlers.clear()
