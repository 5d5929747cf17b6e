"""
TTG Logging
===========

Every module logs through ``get_logger(__name__)``. The first call sets up
the root logger once for the whole process:

  - a ``rich`` console handler with a highlighter for addresses, proposal
    and round ids, and terminal proposal / round states
  - an optional size-rotated file under ``logs/ttg.log``
  - a sanitizing formatter, since proposal descriptions and list names
    are user supplied
  - a ``[tx]`` field naming the ledger call a line was written from

Level, format and the console / file switches come from ``.env`` (see
``ttg.constants``).

Usage:
    >>> from ttg.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Registrar deployed")
"""

import contextvars
import logging
import logging.handlers
import re
import sys
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "ttg.log"

NO_TRANSACTION = "-"

_current_tx: contextvars.ContextVar[str] = contextvars.ContextVar("ttg_tx", default=NO_TRANSACTION)


# ── Ledger call context ───────────────────────────────────────────────

@contextmanager
def transaction_scope(label: str) -> Iterator[None]:
    """Tag every record logged inside the block with *label*."""
    token = _current_tx.set(label or NO_TRANSACTION)
    try:
        yield
    finally:
        _current_tx.reset(token)


def current_transaction() -> str:
    return _current_tx.get()


class TransactionFilter(logging.Filter):
    """Adds ``record.tx`` so formats may reference ``%(tx)s``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tx = _current_tx.get()
        return True


# ── Formatting ────────────────────────────────────────────────────────

class SanitizingFormatter(logging.Formatter):
    """
    Drops ANSI escapes, carriage returns and other control characters
    (tab and newline excepted) from the rendered line.
    """

    _unsafe = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"      # CSI sequences
        r"|\x1b[@-Z\\-_]"               # two-byte escapes
        r"|[\x00-\x08\x0B-\x1F\x7F]"    # C0 controls incl. CR, and DEL
    )

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._unsafe.sub("", text) if text else text

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class ProtocolHighlighter(RegexHighlighter):
    """Rich highlighter for governance, registry and auction log lines."""

    base_style = "ttg."
    highlights = [
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<arrow>→)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_error>\b(ERROR|CRITICAL)\b)",
        r"(?P<proposal>(Proposal|Round) #\d+)",
        r"(?P<state_failed>\b(DEFEATED|EXPIRED)\b)",
        r"(?P<state_passed>\b(EXECUTED|SETTLED)\b)",
        r"(?P<tx>\[[A-Za-z_][\w.]*\])",
        r"(?P<timestamp>^\S+ UTC)",
    ]


THEME = Theme({
    "ttg.address":       "cyan",
    "ttg.arrow":         "bold yellow",
    "ttg.level_debug":   "dim",
    "ttg.level_info":    "bold green",
    "ttg.level_warning": "bold yellow",
    "ttg.level_error":   "bold red",
    "ttg.proposal":      "bold white",
    "ttg.state_failed":  "bold red",
    "ttg.state_passed":  "bold green",
    "ttg.tx":            "magenta",
    "ttg.timestamp":     "bold cyan",
})


def checked_format(log_format: Optional[str]) -> str:
    """
    Return *log_format* if it renders a sample record, else the default.

    ``%(tx)s`` is always available since TransactionFilter sits on every
    handler.
    """
    fallback = str(LOG_FORMAT.default())
    if not log_format:
        return fallback
    sample = logging.LogRecord("ttg.sample", logging.INFO, "", 0, "sample", (), None)
    sample.tx = NO_TRANSACTION
    try:
        rendered = logging.Formatter(fmt=str(log_format)).format(sample)
    except (ValueError, KeyError, TypeError) as e:
        _complain(f"unusable LOG_FORMAT ({e}), using default")
        return fallback
    if "%(" in rendered:
        _complain("LOG_FORMAT left placeholders unrendered, using default")
        return fallback
    return str(log_format)


def checked_date_format(date_format: Optional[str]) -> str:
    fallback = str(LOG_DATE_FORMAT.default())
    if not date_format or "%" not in str(date_format):
        return fallback
    try:
        time.strftime(str(date_format), time.gmtime(0))
    except ValueError as e:
        _complain(f"unusable LOG_DATE_FORMAT ({e}), using default")
        return fallback
    return str(date_format)


def _complain(message: str) -> None:
    # The logging system is not up yet
    print(f"ttg.logger: {message}", file=sys.stderr)


# ── Setup ─────────────────────────────────────────────────────────────

class LogManager:
    """
    Process-wide logging setup (singleton).

    ``configure`` is idempotent; pass ``force=True`` to rebuild the
    handlers, e.g. after changing the level in a test session.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._configured = False
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
        force: bool = False,
    ) -> None:
        with self._lock:
            if self._configured and not force:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            formatter = SanitizingFormatter(
                fmt=checked_format(LOG_FORMAT),
                datefmt=checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()

            handlers = []
            if console_output:
                handlers.append(self._console_handler())
            if bool(LOG_FILE_OUTPUT) if file_output is None else file_output:
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH))

            tx_filter = TransactionFilter()
            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                handler.addFilter(tx_filter)
                root.addHandler(handler)

            self._configured = True

    @staticmethod
    def _console_handler() -> logging.Handler:
        if not LOG_CONSOLE_HIGHLIGHTING:
            return logging.StreamHandler(sys.stdout)
        return RichHandler(
            console=Console(theme=THEME, highlight=False),
            highlighter=ProtocolHighlighter(),
            keywords=[],
            rich_tracebacks=True,
            show_path=False,
            show_time=False,
            show_level=False,
            markup=False,
        )

    @staticmethod
    def _file_handler(path: Path) -> logging.Handler:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures the logging system on first use."""
    return _manager.get_logger(name)
