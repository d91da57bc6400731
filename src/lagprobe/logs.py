"""Logging setup for the command line tools."""
from __future__ import annotations

import json
import logging
import logging.config
import sys
from pathlib import Path

from lagprobe.common import StartupError

LOG_FORMAT = "%(levelname)-8s [%(asctime)-15s; %(name)s]: %(message)s"


def init_default_logging(level: int = logging.INFO, stream=sys.stderr) -> None:
    logging.basicConfig(format=LOG_FORMAT, level=level, stream=stream)


def init_logging(path: str | Path) -> None:
    """Configure logging from a file.

    ``.json`` files hold a ``logging.config.dictConfig`` dictionary, anything
    else is read as an INI file by ``logging.config.fileConfig``.
    """
    path = Path(path)
    try:
        if path.suffix == ".json":
            logging.config.dictConfig(json.loads(path.read_text(encoding="utf-8")))
        else:
            if not path.is_file():
                raise FileNotFoundError(f"No such file: {str(path)!r}")
            logging.config.fileConfig(path, disable_existing_loggers=False)
    except Exception as e:
        raise StartupError(
            f'Unable to initialize logger with the given config file at "{path}"'
        ) from e
