"""
Tag index reconciliation.

Brings the tag index in line with one item's tag set, given the set it
had before: the item is removed from tags it lost and added to tags it
gained. Tags in both sets are not touched.

Each tag is a separate file, so this is not a transaction. Every update
is attempted even after one fails; the caller then gets a
ReconcileError listing what failed and what landed. Nothing is retried
or rolled back.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .errors import ReconcileError, VovereError
from .tag_index import TagIndexCache
from .types import ItemRef

logger = logging.getLogger(__name__)

# Tags sharing a stripe are serialized together; never held two at a time
LOCK_STRIPES = 64


@dataclass
class ReconcileResult:
    """What a reconciliation changed in the index.

    Attributes:
        ref: The reconciled item
        removed: Tags the item was removed from
        added: Tags the item was added to
        unchanged: Tags in the diff that needed no write (already in the
            desired state on disk)
    """
    ref: ItemRef
    removed: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.added)


class TagReconciler:
    """
    Applies tag-set changes to the index through a TagIndexCache.

    Updates to the same tag from different threads are serialized by a
    lock chosen by the tag's hash from a fixed set, so concurrent
    reconciliations within one process never lose each other's members.
    Other processes sharing the directory are not coordinated with.
    """

    def __init__(self, cache: TagIndexCache, *, lock_stripes: int = LOCK_STRIPES):
        self._cache = cache
        self._tag_locks = [threading.Lock() for _ in range(lock_stripes)]

    def _lock_for(self, tag: str) -> threading.Lock:
        return self._tag_locks[hash(tag) % len(self._tag_locks)]

    def reconcile(
        self,
        ref: ItemRef,
        previous_tags: Optional[Iterable[str]],
        current_tags: Optional[Iterable[str]],
    ) -> ReconcileResult:
        """
        Update the index for *ref* moving from *previous_tags* to *current_tags*.

        All removals are applied before any additions.

        Returns:
            ReconcileResult describing the writes made

        Raises:
            ReconcileError: If any per-tag update failed. The first
                failure is chained as ``__cause__``.
        """
        previous = set(previous_tags or ())
        current = set(current_tags or ())
        member = ref.format()
        result = ReconcileResult(ref=ref)
        failures: list[tuple[str, str, Exception]] = []

        for tag in sorted(previous - current):
            try:
                if self._remove_member(tag, member):
                    result.removed.append(tag)
                    logger.debug("Removed %s from #%s", member, tag)
                else:
                    result.unchanged.append(tag)
            except VovereError as e:
                logger.warning("Failed to remove %s from #%s: %s", member, tag, e)
                failures.append(("remove", tag, e))

        for tag in sorted(current - previous):
            try:
                if self._add_member(tag, member):
                    result.added.append(tag)
                    logger.debug("Added %s to #%s", member, tag)
                else:
                    result.unchanged.append(tag)
            except VovereError as e:
                logger.warning("Failed to add %s to #%s: %s", member, tag, e)
                failures.append(("add", tag, e))

        if failures:
            raise ReconcileError(ref, failures, result) from failures[0][2]

        if result.changed:
            logger.info(
                "Reconciled tags for %s: +%d -%d", member, len(result.added), len(result.removed)
            )
        return result

    def _add_member(self, tag: str, member: str) -> bool:
        """Append *member* to *tag*. Returns False if it was already there."""
        with self._lock_for(tag):
            members = self._cache.get(tag)
            if member in members:
                return False
            members.append(member)
            self._cache.write(tag, members)
            return True

    def _remove_member(self, tag: str, member: str) -> bool:
        """Drop *member* from *tag*, deleting the tag when it empties.

        Returns False if it wasn't a member.
        """
        with self._lock_for(tag):
            members = self._cache.get(tag)
            if member not in members:
                return False
            remaining = [m for m in members if m != member]
            if remaining:
                self._cache.write(tag, remaining)
            else:
                self._cache.delete(tag)
            return True
