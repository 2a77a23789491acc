"""
Tag index persistence and caching.

The index lives in ``<root>/.meta/tags/``: one ``<tag>.json`` file per
tag holding a JSON array of ``"<id>:<type>"`` strings in insertion
order. A tag with no members has no file.

Files are replaced atomically (write temp file, fsync, rename), so a
reader sees either the old list or the new one and a failed write leaves
the old record in place. There is no cross-file transaction.

TagIndexCache sits in front of the store. Any successful write clears
the whole cache; entries are reloaded lazily per tag.
"""

import json
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import InvalidTagError, TagIndexReadError, TagIndexWriteError
from .fileio import atomic_write_text
from .protocol import TagIndexStoreProtocol
from .tags import is_valid_tag

TAGS_DIRNAME = "tags"
TAG_FILE_SUFFIX = ".json"


class TagIndexStore:
    """
    File-per-tag store for tag membership lists.

    Only canonical tag names are accepted, so a tag can never address a
    file outside the tags directory.
    """

    def __init__(self, tags_dir: Path, *, indent: int = 2):
        """
        Args:
            tags_dir: Directory holding the ``<tag>.json`` files
            indent: JSON indentation for written files
        """
        self._tags_dir = Path(tags_dir)
        self._indent = indent

    @property
    def tags_dir(self) -> Path:
        return self._tags_dir

    def _path(self, tag: str) -> Path:
        if not is_valid_tag(tag):
            raise InvalidTagError(f"Not a valid tag name: {tag!r}")
        return self._tags_dir / f"{tag}{TAG_FILE_SUFFIX}"

    def read(self, tag: str) -> list[str]:
        """Members of *tag*, or [] if the tag has no record."""
        path = self._path(tag)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise TagIndexReadError(f"Failed to read tag file {path}: {e}", tag) from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise TagIndexReadError(f"Failed to parse tag file {path}: {e}", tag) from e

        if not isinstance(data, list) or not all(isinstance(r, str) for r in data):
            raise TagIndexReadError(
                f"Tag file {path} is not a JSON array of strings", tag
            )
        return data

    def write(self, tag: str, refs: list[str]) -> None:
        """Replace the members of *tag*. An empty list deletes the record."""
        path = self._path(tag)
        if not refs:
            self.delete(tag)
            return

        text = json.dumps(list(refs), indent=self._indent, ensure_ascii=False)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            raise TagIndexWriteError(f"Failed to write tag file {path}: {e}", tag) from e

    def delete(self, tag: str) -> None:
        """Remove the record for *tag*. Missing records are not an error."""
        path = self._path(tag)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise TagIndexWriteError(f"Failed to delete tag file {path}: {e}", tag) from e

    def list_tags(self) -> set[str]:
        """Every tag that currently has a record."""
        try:
            entries = list(self._tags_dir.iterdir())
        except FileNotFoundError:
            return set()
        except OSError as e:
            raise TagIndexReadError(f"Failed to list tags directory {self._tags_dir}: {e}") from e

        tags = set()
        for entry in entries:
            name = entry.name
            if name.startswith(".") or not name.endswith(TAG_FILE_SUFFIX):
                continue
            tag = name[:-len(TAG_FILE_SUFFIX)]
            if is_valid_tag(tag) and entry.is_file():
                tags.add(tag)
        return tags


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it. Not reentrant.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class TagIndexCache:
    """
    Read-through cache over a tag index store.

    Invalidation is coarse: every successful write or delete clears all
    entries, not just the affected tag. A failed write leaves the cache
    as it was, which still matches the unchanged record on disk.
    """

    def __init__(self, store: TagIndexStoreProtocol):
        self._store = store
        self._entries: dict[str, list[str]] = {}
        self._generation = 0
        self._lock = ReadWriteLock()

    @property
    def store(self) -> TagIndexStoreProtocol:
        return self._store

    def get(self, tag: str) -> list[str]:
        """Members of *tag* (a copy), loading from the store on a miss."""
        with self._lock.read():
            cached = self._entries.get(tag)
            generation = self._generation
        if cached is not None:
            return list(cached)

        refs = self._store.read(tag)

        with self._lock.write():
            # Don't cache a list that a concurrent write has made stale
            if self._generation == generation:
                self._entries[tag] = list(refs)
        return list(refs)

    def write(self, tag: str, refs: list[str]) -> None:
        """Write through to the store, then invalidate everything."""
        self._store.write(tag, list(refs))
        self.invalidate()

    def delete(self, tag: str) -> None:
        self._store.delete(tag)
        self.invalidate()

    def list_tags(self) -> set[str]:
        return self._store.list_tags()

    def invalidate(self) -> None:
        """Drop every cached entry."""
        with self._lock.write():
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, tag: str) -> bool:
        with self._lock.read():
            return tag in self._entries
