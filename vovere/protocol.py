"""
Protocol definitions for the tagging core's collaborators.

Defines interface contracts at two levels:
- ItemStoreProtocol: the item metadata/content store the core resolves
  identifiers through (Repository locally)
- TagIndexStoreProtocol: persistence for tag membership lists
  (TagIndexStore locally; tests wrap it to inject failures)
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Item, ItemType


@runtime_checkable
class ItemStoreProtocol(Protocol):
    """
    Loads and saves items.

    ``load_item`` raises ItemNotFoundError when no record exists and
    ItemStoreError when a record cannot be read.
    """

    def load_item(self, id: str, item_type: ItemType) -> tuple[Item, str]: ...

    def save_item(
        self,
        item: Item,
        content: Optional[str] = None,
    ) -> Item: ...


@runtime_checkable
class TagIndexStoreProtocol(Protocol):
    """
    Durable mapping tag -> ordered list of "<id>:<type>" strings.

    ``read`` returns [] for unknown tags and raises TagIndexReadError for
    unreadable records. ``write`` with an empty list deletes the record.
    A failed ``write`` leaves the previous record unchanged.
    """

    def read(self, tag: str) -> list[str]: ...

    def write(self, tag: str, refs: list[str]) -> None: ...

    def delete(self, tag: str) -> None: ...

    def list_tags(self) -> set[str]: ...
