"""
Item store using paired metadata/content files.

Layout under the repository root:

    .meta/<type>s/<id>.json   metadata record (Item.to_dict())
    <type>s/<id>.md           body text (optional)

The metadata record is the source of truth for an item's tags. Every
save and delete reconciles the tag index from the tags previously on
disk to the tags being written.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import META_DIRNAME
from .errors import InvalidTagError, ItemNotFoundError, ItemStoreError
from .fileio import atomic_write_text
from .reconcile import TagReconciler
from .tags import extract_tags, is_valid_tag, sorted_tags
from .types import Item, ItemRef, ItemType, parse_item_type, utc_now, validate_id

logger = logging.getLogger(__name__)

CONTENT_SUFFIX = ".md"
METADATA_SUFFIX = ".json"


class Repository:
    """
    Filesystem-backed store for items.

    Keeps the tag index in step through the given TagReconciler. Item
    files are written atomically; the tag index is updated after the
    item itself, so a reconciliation failure leaves a saved item whose
    index entries may lag (repairable with Vovere.reindex_tags()).
    """

    def __init__(self, root: Path, reconciler: TagReconciler):
        """
        Args:
            root: Repository root directory
            reconciler: Applies tag-set changes to the tag index
        """
        self._root = Path(root)
        self._reconciler = reconciler

    @property
    def root(self) -> Path:
        return self._root

    def _metadata_path(self, item_type: ItemType, id: str) -> Path:
        return self._root / META_DIRNAME / item_type.directory / f"{id}{METADATA_SUFFIX}"

    def _content_path(self, item_type: ItemType, id: str) -> Path:
        return self._root / item_type.directory / f"{id}{CONTENT_SUFFIX}"

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def _load_metadata(self, item_type: ItemType, id: str) -> Item:
        path = self._metadata_path(item_type, id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ItemNotFoundError(f"No such item: {id}:{item_type}") from None
        except (OSError, UnicodeDecodeError) as e:
            raise ItemStoreError(f"Failed to read metadata {path}: {e}") from e

        try:
            item = Item.from_dict(json.loads(text))
        except (json.JSONDecodeError, ValueError) as e:
            raise ItemStoreError(f"Failed to decode metadata {path}: {e}") from e

        if item.id != id or item.type != item_type:
            raise ItemStoreError(
                f"Metadata {path} describes {item.ref}, expected {id}:{item_type}"
            )
        return item

    def load_item(self, id: str, item_type: ItemType | str) -> tuple[Item, str]:
        """
        Load an item's metadata and content.

        Returns:
            (item, content); content is "" when the item has no body

        Raises:
            ItemNotFoundError: No metadata record exists
            ItemStoreError: The record or content could not be read
        """
        item_type = parse_item_type(item_type)
        try:
            validate_id(id)
        except ValueError as e:
            raise ItemNotFoundError(str(e)) from e

        item = self._load_metadata(item_type, id)

        content_path = self._content_path(item_type, id)
        try:
            content = content_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            content = ""
        except (OSError, UnicodeDecodeError) as e:
            raise ItemStoreError(f"Failed to read content {content_path}: {e}") from e
        return item, content

    def exists(self, id: str, item_type: ItemType | str) -> bool:
        return self._metadata_path(parse_item_type(item_type), id).is_file()

    def _stored_tags(self, item_type: ItemType, id: str) -> list[str]:
        """Tags on the record currently on disk ([] for a new item)."""
        try:
            return self._load_metadata(item_type, id).tags
        except ItemNotFoundError:
            return []
        except ItemStoreError as e:
            # Unknown previous tags: reconcile as if new; stale index
            # entries are cleaned up by reindex_tags()
            logger.warning("Previous tags unavailable for %s:%s: %s", id, item_type, e)
            return []

    def list_items(self, item_type: ItemType | str) -> list[Item]:
        """All items of one type, most recently modified first."""
        item_type = parse_item_type(item_type)
        meta_dir = self._root / META_DIRNAME / item_type.directory
        try:
            entries = sorted(meta_dir.iterdir())
        except FileNotFoundError:
            return []
        except OSError as e:
            raise ItemStoreError(f"Failed to read metadata directory {meta_dir}: {e}") from e

        items = []
        for entry in entries:
            if entry.name.startswith(".") or entry.suffix != METADATA_SUFFIX:
                continue
            id = entry.name[:-len(METADATA_SUFFIX)]
            try:
                validate_id(id)
                items.append(self._load_metadata(item_type, id))
            except (ValueError, ItemStoreError) as e:
                logger.debug("Skipping unreadable item %s: %s", entry, e)

        items.sort(key=lambda item: item.modified, reverse=True)
        return items

    def iter_all_items(self) -> Iterator[Item]:
        """Every item of every type."""
        for item_type in ItemType:
            yield from self.list_items(item_type)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def save_item(
        self,
        item: Item,
        content: Optional[str] = None,
        *,
        extract: bool = True,
    ) -> Item:
        """
        Save an item and bring the tag index in line with its tags.

        Args:
            item: The item; ``tags`` and ``modified`` are updated in place
            content: New body text. None leaves the stored body alone.
            extract: When content is given, replace the item's tags with
                the hashtags found in it

        Returns:
            The saved item

        Raises:
            InvalidTagError: An explicitly set tag is not a valid tag
            ItemStoreError: The item files could not be written
            ReconcileError: The item was saved but the index update
                partially failed
        """
        validate_id(item.id)
        item.type = parse_item_type(item.type)

        if content is not None and extract:
            found = extract_tags(content)
            unusable = sorted(t for t in found if not is_valid_tag(t))
            if unusable:
                logger.warning(
                    "Dropping tags too long to index on %s: %s",
                    item.ref, ", ".join(f"#{t[:40]}..." for t in unusable),
                )
            item.tags = sorted_tags(t for t in found if is_valid_tag(t))
        else:
            bad = [t for t in item.tags if not is_valid_tag(t)]
            if bad:
                raise InvalidTagError(f"Not valid tag names: {bad!r}")
            item.tags = sorted_tags(item.tags)

        previous_tags = self._stored_tags(item.type, item.id)
        item.modified = utc_now()
        if not item.created:
            item.created = item.modified

        if content is not None:
            content_path = self._content_path(item.type, item.id)
            try:
                atomic_write_text(content_path, content)
            except OSError as e:
                raise ItemStoreError(f"Failed to write content {content_path}: {e}") from e

        metadata_path = self._metadata_path(item.type, item.id)
        try:
            atomic_write_text(
                metadata_path,
                json.dumps(item.to_dict(), indent=2, ensure_ascii=False),
            )
        except OSError as e:
            raise ItemStoreError(f"Failed to write metadata {metadata_path}: {e}") from e

        logger.info("Saved %s", item.ref)
        self._reconciler.reconcile(item.ref, previous_tags, item.tags)
        return item

    def update_content(self, item: Item, content: str) -> Item:
        """Replace an item's body and re-derive its tags from it."""
        return self.save_item(item, content, extract=True)

    def set_tags(self, item: Item, tags: Iterable[str]) -> Item:
        """Assign tags explicitly, leaving the body untouched."""
        item.tags = list(tags)
        return self.save_item(item, None, extract=False)

    def delete_item(self, id: str, item_type: ItemType | str) -> bool:
        """
        Delete an item's files and remove it from every tag it carried.

        Returns:
            True if the item existed
        """
        item_type = parse_item_type(item_type)
        ref = ItemRef(id=id, type=item_type)
        metadata_path = self._metadata_path(item_type, id)
        content_path = self._content_path(item_type, id)

        if not metadata_path.exists() and not content_path.exists():
            return False

        previous_tags = self._stored_tags(item_type, id)
        for path in (metadata_path, content_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise ItemStoreError(f"Failed to delete {path}: {e}") from e

        logger.info("Deleted %s", ref)
        self._reconciler.reconcile(ref, previous_tags, ())
        return True
