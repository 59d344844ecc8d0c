"""Console + per-run log file setup for the remote deploy driver.

Every run writes `deploy_YYYYmmdd_HHMMSS.log` next to the tool. File lines look
like `2024-01-31 12:00:00 [SUCCESS] message`; the console gets the same
messages with a coloured level tag.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

LOGGER_NAME = "remote_deploy"

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_COLORS = {
    logging.DEBUG: "\033[0;34m",
    logging.INFO: "\033[0;34m",
    SUCCESS: "\033[0;32m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[0;31m",
    logging.CRITICAL: "\033[0;31m",
}
_RESET = "\033[0m"

logger = logging.getLogger(LOGGER_NAME)


class ConsoleFormatter(logging.Formatter):
    def __init__(self, *, color: bool = True):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag = f"[{record.levelname}]"
        if self.color:
            tag = f"{_COLORS.get(record.levelno, '')}{tag}{_RESET}"
        return f"{tag} {message}"


def log_success(message: str, *args: object) -> None:
    logger.log(SUCCESS, message, *args)


def build_log_path(log_dir: Path, *, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_dir / f"deploy_{stamp}.log"


def configure_logging(log_dir: Path, *, now: datetime | None = None, color: bool | None = None) -> Path:
    """Attach a fresh file + console handler pair and return the log file path."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = build_log_path(log_dir, now=now)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))

    if color is None:
        color = sys.stdout.isatty()
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter(color=color))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return log_path


def mask_secrets(text: str, secrets: tuple[str, ...] | list[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text
