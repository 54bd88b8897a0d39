"""Process-wide logging.

One run writes three files under ``logs/``:

- ``server_<ts>.log``: everything at DEBUG (rotating, 5 MB x 3)
- ``capture_<ts>.log``: only the capture pipeline (session, chunk chain,
  backends), which is the noisiest part of a recording
- ``crash.log``: faulthandler dumps of every thread on fatal signals
"""

import faulthandler
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional, TextIO

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"
CAPTURE_LOGGER_PREFIXES = ("meetmate.capture", "meetmate.chunk_recorder")

_crash_file: Optional[TextIO] = None


class _PrefixFilter(logging.Filter):
    def __init__(self, prefixes: tuple[str, ...]) -> None:
        super().__init__()
        self._prefixes = prefixes

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(self._prefixes)


def _handler(handler: logging.Handler, level: int, name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT, "%H:%M:%S"))
    handler.setLevel(level)
    handler.name = name
    return handler


def _enable_crash_log(logs_dir: str) -> str:
    global _crash_file
    crash_path = os.path.join(logs_dir, "crash.log")
    if _crash_file is None:
        _crash_file = open(crash_path, "a", encoding="utf-8")
        faulthandler.enable(file=_crash_file, all_threads=True)
    return crash_path


def configure_logging(logs_dir: Optional[str] = None, console_level: str = "INFO") -> dict:
    """Install the handlers on the root and uvicorn loggers.

    Returns the paths written, keyed by ``server``, ``capture`` and ``crash``.
    Calling it again replaces the handlers instead of stacking them.
    """
    logs_dir = logs_dir or os.path.join(os.getcwd(), "logs")
    os.makedirs(logs_dir, exist_ok=True)
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    paths = {
        "server": os.path.join(logs_dir, f"server_{stamp}.log"),
        "capture": os.path.join(logs_dir, f"capture_{stamp}.log"),
    }

    server_file = _handler(
        RotatingFileHandler(paths["server"], maxBytes=5_000_000, backupCount=3),
        logging.DEBUG,
        "meetmate_file",
    )
    capture_file = _handler(
        RotatingFileHandler(paths["capture"], maxBytes=5_000_000, backupCount=3),
        logging.DEBUG,
        "meetmate_capture",
    )
    capture_file.addFilter(_PrefixFilter(CAPTURE_LOGGER_PREFIXES))
    console = _handler(
        logging.StreamHandler(),
        logging.getLevelName(console_level.upper()),
        "meetmate_stream",
    )

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers = [server_file, capture_file, console]

    for name in ("urllib3", "httpx", "asyncio"):
        logging.getLogger(name).setLevel(logging.INFO)

    # uvicorn installs its own handlers; route it through ours instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.setLevel(logging.INFO)
        uv_logger.handlers = [server_file, console]
        uv_logger.propagate = False

    paths["crash"] = _enable_crash_log(logs_dir)
    root.info("Logging initialized: %s", paths)
    return paths
