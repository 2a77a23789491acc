"""
Tag queries: items by tag, tag intersections, listings and statistics.

All reads go through the shared TagIndexCache. Identifiers that no
longer resolve to an item (deleted without reconciliation, malformed)
are skipped: stale index entries are expected and repaired by later
reconciliations or Vovere.reindex_tags().
"""

import logging
from typing import Iterable, NamedTuple, Optional

from .errors import ItemStoreError
from .protocol import ItemStoreProtocol
from .tag_index import TagIndexCache
from .types import Item, ItemRef

logger = logging.getLogger(__name__)


class TagCount(NamedTuple):
    """A tag and how many items carry it."""
    name: str
    count: int


class TagService:
    """
    Read side of the tag index.

    Example:
        service = TagService(cache, items=repository)
        service.get_items_by_all_tags(["project", "priority:high"])
    """

    def __init__(self, cache: TagIndexCache, items: Optional[ItemStoreProtocol] = None):
        """
        Args:
            cache: Shared cache over the tag index store
            items: Item store used to resolve identifiers to items.
                Only the ``get_items_*`` methods need it.
        """
        self._cache = cache
        self._items = items

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def get_item_refs_by_tag(self, tag: str) -> list[ItemRef]:
        """Item references recorded under *tag*, in insertion order."""
        refs = []
        for member in self._cache.get(tag):
            try:
                refs.append(ItemRef.parse(member))
            except ValueError:
                logger.debug("Skipping malformed member %r of #%s", member, tag)
        return refs

    def get_items_by_tag(self, tag: str) -> list[Item]:
        """Items tagged *tag*. Unresolvable references are skipped."""
        return self._resolve(self.get_item_refs_by_tag(tag))

    def get_item_refs_by_all_tags(self, tags: Iterable[str]) -> list[ItemRef]:
        """
        Item references carrying every tag in *tags*.

        Starts from the first tag's members and filters by each following
        tag, stopping as soon as nothing is left. No tags means no items.
        """
        tags = list(tags)
        if not tags:
            return []

        result = self.get_item_refs_by_tag(tags[0])
        for tag in tags[1:]:
            if not result:
                break
            members = set(self._cache.get(tag))
            result = [ref for ref in result if ref.format() in members]
        return result

    def get_items_by_all_tags(self, tags: Iterable[str]) -> list[Item]:
        return self._resolve(self.get_item_refs_by_all_tags(tags))

    def _resolve(self, refs: list[ItemRef]) -> list[Item]:
        if self._items is None:
            raise RuntimeError("TagService has no item store to resolve references")
        items = []
        for ref in refs:
            try:
                item, _ = self._items.load_item(ref.id, ref.type)
            except ItemStoreError as e:
                logger.debug("Skipping unresolvable %s: %s", ref, e)
                continue
            items.append(item)
        return items

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def get_all_tags(self) -> set[str]:
        """Every tag with at least one member."""
        return self._cache.list_tags()

    def get_tag_statistics(self) -> dict[str, int]:
        """Map each tag to its member count."""
        stats = {}
        for tag in self.get_all_tags():
            count = len(self._cache.get(tag))
            # A tag emptied between listing and reading is gone
            if count:
                stats[tag] = count
        return stats

    def search_tags(self, prefix: str = "") -> list[str]:
        """Tags starting with *prefix* (case-sensitive), sorted."""
        return sorted(tag for tag in self.get_all_tags() if tag.startswith(prefix))

    def tag_listing(self) -> list[TagCount]:
        """Tag statistics sorted by name, ignoring case."""
        stats = self.get_tag_statistics()
        return [
            TagCount(name, stats[name])
            for name in sorted(stats, key=lambda t: (t.casefold(), t))
        ]
