"""
Distribution Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Shared logging and filesystem helpers for the distribution updater.
"""

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Union

LOGGER_NAME = "distupdates"

PathLike = Union[str, "os.PathLike[str]"]

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def setup_update_logging(debug: bool = False) -> logging.Logger:
    """
    Log to stdout only; the shell wrapper owns file truncation/redirection.

    Safe to call more than once: previously installed handlers are replaced.
    """
    logger = get_logger()
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    unified_format = logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s',
                                       datefmt='%Y-%m-%d %H:%M:%S')
    console_handler.setFormatter(unified_format)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.addHandler(console_handler)
    logger.propagate = False
    return logger


def log_message(message: str, level: str = "INFO") -> None:
    """
    Log a message through the updater logger.

    Args:
        message (str): The message to log.
        level (str): Log level name (e.g., 'INFO', 'ERROR'). Unknown names log at INFO.
    """
    get_logger().log(_LEVELS.get(level.upper(), logging.INFO), message)


def remove_path(path: PathLike) -> None:
    """Remove a file, symlink or directory tree. Missing paths are ignored."""
    target = Path(path)
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)


def discard_file(path: PathLike) -> None:
    """Best-effort removal of a scratch file; failures are logged, not raised."""
    try:
        remove_path(path)
    except OSError as e:
        log_message(f"Failed to remove scratch file {path}: {e}", "WARNING")
