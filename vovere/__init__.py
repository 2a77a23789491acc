"""
vovere - personal knowledge repository with a hashtag index.

Items (notes, bookmarks, tasks, workstreams, files) are stored as
metadata/content file pairs; hashtags in their content are indexed in
one JSON file per tag.

Quick start:
    from vovere import Vovere

    vv = Vovere("~/notes")
    vv.put("note", "Call the printer #errands #priority:high", title="Printer")
    vv.items_by_all_tags(["errands", "priority:high"])
"""

from .api import Vovere
from .errors import (
    InvalidTagError,
    ItemNotFoundError,
    ItemStoreError,
    ReconcileError,
    TagIndexError,
    TagIndexReadError,
    TagIndexWriteError,
    VovereError,
)
from .reconcile import ReconcileResult, TagReconciler
from .repository import Repository
from .tag_index import ReadWriteLock, TagIndexCache, TagIndexStore
from .tag_service import TagCount, TagService
from .tags import extract_tags, is_valid_tag, sorted_tags
from .types import Item, ItemRef, ItemType, TaskStatus

__version__ = "0.3.0"

__all__ = [
    "InvalidTagError",
    "Item",
    "ItemNotFoundError",
    "ItemRef",
    "ItemStoreError",
    "ItemType",
    "ReadWriteLock",
    "ReconcileError",
    "ReconcileResult",
    "Repository",
    "TagCount",
    "TagIndexCache",
    "TagIndexError",
    "TagIndexReadError",
    "TagIndexStore",
    "TagIndexWriteError",
    "TagReconciler",
    "TagService",
    "TaskStatus",
    "Vovere",
    "VovereError",
    "extract_tags",
    "is_valid_tag",
    "sorted_tags",
]
