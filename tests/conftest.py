"""
Shared pytest fixtures for vovere tests.

Everything runs against real files under tmp_path; failure injection
uses thin wrappers around the real tag index store.
"""

from pathlib import Path

import pytest

from vovere.api import Vovere
from vovere.errors import TagIndexWriteError
from vovere.reconcile import TagReconciler
from vovere.tag_index import TagIndexCache, TagIndexStore
from vovere.types import ItemRef, ItemType


class RecordingTagStore:
    """Wraps a TagIndexStore, counting reads and logging writes/deletes."""

    def __init__(self, real_store: TagIndexStore):
        self._real = real_store
        self.reads: list[str] = []
        self.ops: list[tuple[str, str]] = []

    def __getattr__(self, name):
        return getattr(self._real, name)

    def read(self, tag: str) -> list[str]:
        self.reads.append(tag)
        return self._real.read(tag)

    def write(self, tag: str, refs: list[str]) -> None:
        self.ops.append(("write", tag))
        return self._real.write(tag, refs)

    def delete(self, tag: str) -> None:
        self.ops.append(("delete", tag))
        return self._real.delete(tag)

    def list_tags(self) -> set[str]:
        return self._real.list_tags()


class FailingTagStore(RecordingTagStore):
    """Tag store that raises on writes/deletes for selected tags."""

    def __init__(self, real_store: TagIndexStore):
        super().__init__(real_store)
        self.fail_tags: set[str] = set()

    def write(self, tag: str, refs: list[str]) -> None:
        if tag in self.fail_tags:
            self.ops.append(("write-failed", tag))
            raise TagIndexWriteError("simulated write failure", tag)
        return super().write(tag, refs)

    def delete(self, tag: str) -> None:
        if tag in self.fail_tags:
            self.ops.append(("delete-failed", tag))
            raise TagIndexWriteError("simulated delete failure", tag)
        return super().delete(tag)


def note(id: str) -> ItemRef:
    return ItemRef(id=id, type=ItemType.NOTE)


@pytest.fixture
def tags_dir(tmp_path) -> Path:
    return tmp_path / ".meta" / "tags"


@pytest.fixture
def tag_store(tags_dir):
    return TagIndexStore(tags_dir)


@pytest.fixture
def recording_store(tag_store):
    return RecordingTagStore(tag_store)


@pytest.fixture
def failing_store(tag_store):
    return FailingTagStore(tag_store)


@pytest.fixture
def cache(recording_store):
    return TagIndexCache(recording_store)


@pytest.fixture
def reconciler(cache):
    return TagReconciler(cache)


@pytest.fixture
def vv(tmp_path):
    """A Vovere repository rooted at tmp_path."""
    with Vovere(store_path=tmp_path) as repo:
        yield repo


@pytest.fixture
def seeded(vv):
    """Three notes: item1 [tag1, tag2], item2 [tag2, tag3], item3 [tag1, tag3, tag4]."""
    fixtures = {
        "item1": ["tag1", "tag2"],
        "item2": ["tag2", "tag3"],
        "item3": ["tag1", "tag3", "tag4"],
    }
    for id, tags in fixtures.items():
        content = " ".join(f"#{t}" for t in tags) + f" Item content {id}"
        vv.put(ItemType.NOTE, content, id=id, title=f"Item {id[-1]}")
    return vv
