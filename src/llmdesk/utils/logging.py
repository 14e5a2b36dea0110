"""Logging setup for the assistant panel and the headless ``--ask`` mode.

Everything goes to a rotating file under ``~/.llmdesk/logs`` (or
``LLMDESK_LOG_DIR``). The optional console handler always writes to stderr
with a short format, because headless runs reserve stdout for the reply.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

__all__ = ["setup_logging", "LOG_DIR_ENV", "LOG_FILENAME"]

LOG_DIR_ENV = "LLMDESK_LOG_DIR"
LOG_FILENAME = "llmdesk.log"
_DEFAULT_LOG_DIR = Path.home() / ".llmdesk" / "logs"
_MAX_BYTES = 1_000_000
_BACKUP_COUNT = 3
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "llmdesk: %(levelname)s: %(message)s"
# Held at WARNING or above whatever the root level is.
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "qasync")
_CONFIGURED = False
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path | None:
    """Install the file handler and, when ``console`` is set, a stderr handler.

    Returns the log file path, or ``None`` when the log directory could not
    be created; logging then continues on stderr only so a read-only home
    never stops a headless run. Repeated calls are no-ops unless ``force``.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force:
        return _LOG_PATH

    handlers: list[logging.Handler] = []
    log_path = _open_file_handler(_resolve_log_dir(log_dir), level, handlers)

    if console or log_path is None:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level if console else logging.WARNING)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(console_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _tune_external_loggers(level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def _open_file_handler(target_dir: Path, level: int, handlers: list[logging.Handler]) -> Path | None:
    log_path = target_dir / LOG_FILENAME
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
        )
    except OSError as exc:
        print(f"llmdesk: cannot write log file {log_path}: {exc}", file=sys.stderr)
        return None
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers.append(file_handler)
    return log_path


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get(LOG_DIR_ENV)
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _tune_external_loggers(root_level: int) -> None:
    quiet_level = max(logging.WARNING, root_level)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
