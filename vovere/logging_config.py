"""
Logging configuration for vovere.

Quiet by default; VOVERE_VERBOSE=1 switches on debug output to stderr.
Every open repository also writes an operations log under its .meta
directory so index changes can be audited after the fact.
"""

import logging
import sys
import warnings
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Optional

OPS_LOG_FILENAME = "vovere-ops.log"

# .meta path of the repository whose operation is running in this context
_active_store: ContextVar[Optional[str]] = ContextVar("vovere_active_store", default=None)


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose output.

    Args:
        quiet: If True, only warnings and errors from vovere reach the
            console. If False, leave logging configuration untouched.
    """
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        logging.getLogger("vovere").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("vovere").setLevel(logging.DEBUG)


class _RepositoryFilter(logging.Filter):
    """Pass only records logged inside one repository's operations."""

    def __init__(self, meta_path):
        super().__init__()
        self._store = str(meta_path)

    def filter(self, record: logging.LogRecord) -> bool:
        return _active_store.get() == self._store


@contextmanager
def repository_context(meta_path) -> Iterator[None]:
    """Attribute log records emitted inside the block to one repository.

    The ``vovere`` logger is shared by every open repository; each
    operations log only records its own repository's operations.
    """
    token = _active_store.set(str(meta_path))
    try:
        yield
    finally:
        _active_store.reset(token)


def configure_ops_log(meta_path):
    """Configure a persistent operations log for a repository.

    Writes to {meta_path}/vovere-ops.log using a rotating file handler
    (1MB max, 3 backups). Active regardless of verbosity. Only records
    logged inside repository_context(meta_path) are written.
    Returns the handler so it can be removed on close().
    """
    log_path = Path(meta_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    handler.addFilter(_RepositoryFilter(meta_path))

    vovere_logger = logging.getLogger("vovere")
    vovere_logger.addHandler(handler)
    # Ensure vovere logger allows INFO through even in quiet mode
    if vovere_logger.level == logging.NOTSET or vovere_logger.level > logging.INFO:
        vovere_logger.setLevel(logging.INFO)

    return handler


def remove_ops_log(handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    if handler is None:
        return
    logging.getLogger("vovere").removeHandler(handler)
    handler.close()
