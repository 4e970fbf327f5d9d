"""Side channel for non-fatal conversion diagnostics.

Codecs never print.  Everything that is skipped, clamped or substituted is
passed to a :class:`Notifier`, which forwards it to ``logging`` and keeps a
copy so the caller can summarise a conversion afterwards.
"""

from __future__ import annotations

import logging
import logging.handlers
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional


LOGGER_NAME = "msconv"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class Diagnostic:
    level: int
    message: str

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


class Notifier:
    """Collects diagnostics and forwards them to a logger and an optional callback."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        callback: Optional[Callable[[Diagnostic], None]] = None,
    ) -> None:
        self.logger = logger if logger is not None else logging.getLogger(LOGGER_NAME)
        self.callback = callback
        self.diagnostics: List[Diagnostic] = []

    def log(self, level: int, message: str, *args: object) -> None:
        text = message % args if args else message
        diagnostic = Diagnostic(level=level, message=text)
        self.diagnostics.append(diagnostic)
        self.logger.log(level, text)
        if self.callback is not None:
            self.callback(diagnostic)

    def info(self, message: str, *args: object) -> None:
        self.log(logging.INFO, message, *args)

    def warning(self, message: str, *args: object) -> None:
        self.log(logging.WARNING, message, *args)

    def error(self, message: str, *args: object) -> None:
        self.log(logging.ERROR, message, *args)

    @property
    def warnings(self) -> List[str]:
        return [d.message for d in self.diagnostics if d.level == logging.WARNING]

    @property
    def errors(self) -> List[str]:
        return [d.message for d in self.diagnostics if d.level >= logging.ERROR]


def configure_logging(level: int = logging.INFO, log_file: Path | None = None) -> None:
    """Root logging setup used by the command line tools."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)
    if log_file is not None:
        handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
