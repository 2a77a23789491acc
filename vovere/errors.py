"""
Exceptions and error logging for vovere.

The tagging core never retries: every failure is raised to the caller,
which decides what the user sees. ``log_exception`` keeps the full stack
trace on disk so callers can show a clean one-line message instead.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class VovereError(Exception):
    """Base class for all vovere errors."""


class InvalidTagError(VovereError, ValueError):
    """A tag name is not a canonical tag (empty, whitespace, bad characters)."""


class TagIndexError(VovereError):
    """The tag index could not be read or written."""

    def __init__(self, message: str, tag: Optional[str] = None):
        super().__init__(f"{message} (tag {tag!r})" if tag is not None else message)
        self.tag = tag


class TagIndexReadError(TagIndexError):
    """A tag file exists but could not be read or parsed.

    Callers must not overwrite a tag file they failed to read: doing so
    would silently discard the members it holds.
    """


class TagIndexWriteError(TagIndexError):
    """A tag file could not be written or deleted.

    The previously committed record for the tag is left unchanged.
    """


class ReconcileError(VovereError):
    """One or more per-tag updates failed during reconciliation.

    Attributes:
        ref: The item identifier being reconciled
        failures: ``(operation, tag, exception)`` for every failed update
        result: What was applied before and after the failures
    """

    def __init__(self, ref, failures: list, result):
        self.ref = ref
        self.failures = failures
        self.result = result
        op, tag, first = failures[0]
        super().__init__(
            f"Tag reconciliation for {ref} failed on {len(failures)} tag(s); "
            f"first failure: {op} {tag!r}: {first}"
        )


class ItemStoreError(VovereError):
    """An item's metadata or content could not be read or written."""


class ItemNotFoundError(ItemStoreError):
    """No metadata record exists for the requested item."""


ERROR_LOG_FILENAME = "vovere-errors.log"


def log_exception(exc: Exception, log_dir: Path, context: str = "") -> Path:
    """
    Append an exception's full traceback to the repository error log.

    Args:
        exc: The exception that occurred
        log_dir: Directory of the log file (a repository's .meta directory)
        context: Optional context string (e.g., operation name)

    Returns:
        Path to the error log file
    """
    log_path = Path(log_dir) / ERROR_LOG_FILENAME
    timestamp = datetime.now(timezone.utc).isoformat()
    entry = [f"\n{'=' * 60}\n", f"[{timestamp}]"]
    if context:
        entry.append(f" {context}")
    entry.append("\n")
    entry.extend(traceback.format_exception(exc))
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write("".join(entry))
    except OSError:
        pass  # The original exception is still raised to the caller
    return log_path
