"""Atomic file writes."""

import os
import tempfile
from pathlib import Path

TEMP_PREFIX = ".tmp-"


def atomic_write_text(path: Path, text: str) -> None:
    """Write *text* to *path* so readers see the old file or the new one.

    Writes a temp file in the same directory, fsyncs it and renames it
    over *path*. Raises OSError; on failure *path* is left untouched and
    the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=TEMP_PREFIX,
            suffix=path.suffix,
            delete=False,
            encoding="utf-8",
        ) as f:
            temp_path = f.name
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError:
        if temp_path is not None:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
        raise
