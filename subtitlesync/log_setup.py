"""Root logger setup shared by every SubtitleSync command."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable

from tqdm import tqdm

from .utils import ensure_dir_exists

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
# Provider SDKs and their HTTP stacks log each request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google_genai")


class TqdmConsoleHandler(logging.StreamHandler):
    """Writes records through tqdm so console lines do not break the progress bars."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except Exception:
            self.handleError(record)


def _file_handler(log_dir: str, log_file: str, formatter: logging.Formatter) -> RotatingFileHandler:
    ensure_dir_exists(log_dir)
    handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setFormatter(formatter)
    # The file keeps the provider call trail even when the console is at INFO.
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(
    log_level: int = logging.INFO,
    log_dir: str = "logs",
    log_file: str = "subtitlesync.log",
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Routes the root logger to the console at `log_level` and to a rotating
    file under `log_dir` at DEBUG.

    The CLI calls this twice, once with defaults and again after the config
    names its own log location, so any handlers already on the root logger
    are closed and replaced. A file that cannot be opened is reported on the
    console and the run carries on without it.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = TqdmConsoleHandler()
    console.setFormatter(formatter)
    console.setLevel(log_level)
    root.addHandler(console)
    root.setLevel(logging.DEBUG)

    try:
        file_handler = _file_handler(log_dir, log_file, formatter)
    except Exception as e:
        root.error(f"File logging disabled, could not open {os.path.join(log_dir, log_file)}: {e}")
    else:
        root.addHandler(file_handler)
        root.debug(f"Logging to {file_handler.baseFilename}")

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
