import logging
import sys
import uuid
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

# Id of the CLI command run a log line belongs to
current_run_id: ContextVar[Optional[str]] = ContextVar("current_run_id", default=None)

# Top-level packages whose loggers setup_logging() configures by default
SHOP_NAMESPACES = ("shop_core", "shop_dal", "shop_demodata", "shop_cli", "shop_blog")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(run_tag)s%(name)s: %(message)s"


class RunFormatter(logging.Formatter):
    """
    Formatter with UTC ISO-8601 timestamps that prefixes every line with the
    current run id, if one is set.
    """

    def formatTime(self, record, datefmt=None):  # noqa: N802
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return created.strftime(datefmt)
        return f"{created:%Y-%m-%dT%H:%M:%S}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        run_id = current_run_id.get()
        # Not "run_id": records may carry that through extra={}
        record.run_tag = f"[{run_id}] " if run_id else ""
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """
    Returns a standard logger instance.

    >>> logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def _file_handler(
    log_file: Union[str, Path], max_bytes: int, backup_count: int
) -> Optional[logging.Handler]:
    path = Path(log_file).resolve()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    except OSError as e:
        sys.stderr.write(f"Failed to setup log file {path}: {e}\n")
        return None


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 10,
    capture_roots: bool = False,
    namespaces: Iterable[str] = SHOP_NAMESPACES,
) -> list[logging.Logger]:
    """
    Configure logging for the CLI and return the configured loggers.

    Records go to stderr, and to a rotating ``log_file`` when given; stdout
    belongs to the rich console output of commands. Calling this again
    replaces the handlers instead of adding more.

    Args:
        level: Logging level name or number.
        log_file: Path of an additional rotating log file.
        capture_roots: Configure the root logger instead of ``namespaces``.
        namespaces: Logger names to configure; they stop propagating to root.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    formatter = RunFormatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        file_handler = _file_handler(log_file, max_bytes, backup_count)
        if file_handler is not None:
            handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(formatter)

    loggers = [logging.getLogger()] if capture_roots else [
        logging.getLogger(name) for name in namespaces
    ]
    for logger in loggers:
        logger.handlers.clear()
        logger.setLevel(level)
        for handler in handlers:
            logger.addHandler(handler)
        if not capture_roots:
            logger.propagate = False
    return loggers


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def set_run_id(value: str) -> Token:
    """
    Sets the run id and returns a token for cleanup.

    >>> token = set_run_id("run-555")
    >>> reset_run_id(token)
    """
    return current_run_id.set(value)


def reset_run_id(token: Token) -> None:
    current_run_id.reset(token)


@contextmanager
def scoped_run_id(value: Optional[str] = None) -> Generator[str, None, None]:
    """
    Set a run id (a new one by default) for the duration of the block.

    >>> with scoped_run_id() as run_id:
    ...     logger.info("tagged with %s", run_id)
    """
    run_id = value or new_run_id()
    token = set_run_id(run_id)
    try:
        yield run_id
    finally:
        reset_run_id(token)
