"""
Core API for a vovere repository.

Vovere wires the item store to the tag index:
- put() / update_content() / set_tags() / delete(): item writes, each
  followed by tag reconciliation
- items_by_tag() / items_by_all_tags(): tag lookups
- list_tags() / tag_statistics() / search_tags(): tag overviews
- reindex_tags(): rebuild the tag index from item metadata
"""

import dataclasses
import logging
import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from .config import RepositoryConfig, get_default_store_path, load_or_create_config
from .errors import ItemNotFoundError, ReconcileError, TagIndexReadError, log_exception
from .logging_config import (
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
    remove_ops_log,
    repository_context,
)
from .reconcile import ReconcileResult, TagReconciler
from .repository import Repository
from .tag_index import TAGS_DIRNAME, TagIndexCache, TagIndexStore
from .tag_service import TagCount, TagService
from .tags import extract_tags, is_valid_tag
from .types import Item, ItemRef, ItemType, parse_item_type

logger = logging.getLogger(__name__)

# Set VOVERE_VERBOSE=1 to enable debug output via environment
if os.environ.get("VOVERE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Vovere:
    """
    A personal knowledge repository: items plus a hashtag index.

    Example:
        with Vovere("~/notes") as vv:
            vv.put("note", "Ship it #project:launch", title="Launch")
            vv.items_by_tag("project:launch")
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[RepositoryConfig] = None,
    ) -> None:
        """
        Open (or create) a repository.

        Args:
            store_path: Repository root. Uses VOVERE_STORE_PATH or
                ~/.vovere if not specified.
            config: Pre-loaded RepositoryConfig (skips config discovery)
        """
        if config is not None:
            self._config = config
        else:
            if store_path is not None:
                root = Path(store_path).expanduser().resolve()
            else:
                root = get_default_store_path()
            self._config = load_or_create_config(root)

        self._ops_log_handler = None
        if self._config.ops_log:
            self._ops_log_handler = configure_ops_log(self._config.meta_path)

        self._tag_store = TagIndexStore(
            self._config.meta_path / TAGS_DIRNAME,
            indent=self._config.tag_indent,
        )
        self._tag_cache = TagIndexCache(self._tag_store)
        self._reconciler = TagReconciler(self._tag_cache)
        self._repository = Repository(self._config.path, self._reconciler)
        self._tags = TagService(self._tag_cache, items=self._repository)

    @property
    def store_path(self) -> Path:
        return self._config.path

    @property
    def config(self) -> RepositoryConfig:
        return self._config

    @property
    def repository(self) -> Repository:
        return self._repository

    @property
    def tag_service(self) -> TagService:
        return self._tags

    @property
    def tag_cache(self) -> TagIndexCache:
        return self._tag_cache

    @contextmanager
    def _operation(self, context: str) -> Iterator[None]:
        """Run a write against this repository.

        Log records go to this repository's operations log. A partial
        reconciliation failure has its traceback appended to
        .meta/vovere-errors.log before it is re-raised.
        """
        with repository_context(self._config.meta_path):
            try:
                yield
            except ReconcileError as e:
                log_exception(e, self._config.meta_path, context)
                raise

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def put(
        self,
        item_type: ItemType | str,
        content: str = "",
        *,
        id: Optional[str] = None,
        title: Optional[str] = None,
        **fields: Any,
    ) -> Item:
        """
        Create an item, or replace the content of an existing one.

        Tags are taken from the hashtags in *content*.

        Args:
            item_type: Kind of item
            content: Body text
            id: Item ID. A random one is generated if not specified.
            title: Display title
            **fields: Type-specific fields (url, status, items, ...)

        Returns:
            The saved item
        """
        item_type = parse_item_type(item_type)
        if id is not None and self._repository.exists(id, item_type):
            item, _ = self._repository.load_item(id, item_type)
            item = dataclasses.replace(item, **fields)
        else:
            item = Item.new(item_type, id or _new_id(), **fields)
        if title is not None:
            item.title = title
        with self._operation(f"put {item.ref}"):
            return self._repository.save_item(item, content)

    def get(self, item_type: ItemType | str, id: str) -> Optional[Item]:
        """Retrieve an item's metadata, or None if it doesn't exist."""
        try:
            item, _ = self._repository.load_item(id, item_type)
        except ItemNotFoundError:
            return None
        return item

    def get_content(self, item_type: ItemType | str, id: str) -> Optional[str]:
        """Retrieve an item's body text, or None if the item doesn't exist."""
        try:
            _, content = self._repository.load_item(id, item_type)
        except ItemNotFoundError:
            return None
        return content

    def update_content(self, item_type: ItemType | str, id: str, content: str) -> Item:
        """Replace an item's body; its tags follow the new hashtags."""
        item, _ = self._repository.load_item(id, item_type)
        with self._operation(f"update_content {item.ref}"):
            return self._repository.update_content(item, content)

    def set_tags(self, item_type: ItemType | str, id: str, tags: Iterable[str]) -> Item:
        """Set an item's tags explicitly, without touching its body."""
        item, _ = self._repository.load_item(id, item_type)
        with self._operation(f"set_tags {item.ref}"):
            return self._repository.set_tags(item, tags)

    def delete(self, item_type: ItemType | str, id: str) -> bool:
        """Delete an item and drop it from the tag index.

        Returns:
            True if the item existed
        """
        with self._operation(f"delete {id}:{item_type}"):
            return self._repository.delete_item(id, item_type)

    def list_items(self, item_type: ItemType | str) -> list[Item]:
        """Items of one type, most recently modified first."""
        return self._repository.list_items(item_type)

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_tags(text: str) -> set[str]:
        return extract_tags(text)

    def reconcile(
        self,
        ref: ItemRef,
        previous_tags: Iterable[str],
        current_tags: Iterable[str],
    ) -> ReconcileResult:
        """Apply a tag-set change for *ref* to the index directly."""
        with self._operation(f"reconcile {ref}"):
            return self._reconciler.reconcile(ref, previous_tags, current_tags)

    def items_by_tag(self, tag: str) -> list[Item]:
        return self._tags.get_items_by_tag(tag)

    def items_by_all_tags(self, tags: Iterable[str]) -> list[Item]:
        return self._tags.get_items_by_all_tags(tags)

    def list_tags(self) -> list[str]:
        """All tags in use, sorted."""
        return sorted(self._tags.get_all_tags())

    def tag_statistics(self) -> dict[str, int]:
        return self._tags.get_tag_statistics()

    def search_tags(self, prefix: str = "") -> list[str]:
        return self._tags.search_tags(prefix)

    def tag_listing(self) -> list[TagCount]:
        return self._tags.tag_listing()

    def reindex_tags(self) -> dict[str, int]:
        """
        Rebuild the tag index from item metadata.

        Item records are the source of truth. Members that still belong
        keep their order; missing members are appended; stale members
        and tags no item carries are removed. Unreadable tag files are
        overwritten with the rebuilt list.

        Returns:
            Counts: items scanned, tags kept, tags written, tags deleted
        """
        with self._operation("reindex_tags"):
            return self._rebuild_tag_index()

    def _rebuild_tag_index(self) -> dict[str, int]:
        desired: dict[str, list[str]] = {}
        items = 0
        for item in self._repository.iter_all_items():
            items += 1
            member = item.ref.format()
            for tag in item.tags:
                if not is_valid_tag(tag):
                    logger.warning("Ignoring invalid tag %r on %s", tag, member)
                    continue
                desired.setdefault(tag, []).append(member)

        written = deleted = 0
        for tag in self._tag_store.list_tags() - set(desired):
            self._tag_store.delete(tag)
            deleted += 1

        for tag, members in desired.items():
            try:
                existing = self._tag_store.read(tag)
            except TagIndexReadError as e:
                logger.warning("Rebuilding unreadable tag file for #%s: %s", tag, e)
                existing = []
            wanted = set(members)
            rebuilt = [m for m in dict.fromkeys(existing) if m in wanted]
            kept = set(rebuilt)
            rebuilt += [m for m in members if m not in kept]
            if rebuilt != existing:
                self._tag_store.write(tag, rebuilt)
                written += 1

        self._tag_cache.invalidate()
        stats = {
            "items": items,
            "tags": len(desired),
            "written": written,
            "deleted": deleted,
        }
        logger.info("Reindexed tags: %s", stats)
        return stats

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Release the operations log handler."""
        remove_ops_log(self._ops_log_handler)
        self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
