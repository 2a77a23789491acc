"""
Data types for vovere items.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> str:
    """Current UTC timestamp in canonical format.

    All timestamps in vovere are UTC ISO 8601 with microseconds, so
    lexical order matches chronological order.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ItemType(str, Enum):
    """Kinds of item a repository holds. IDs are unique only within a type."""
    NOTE = "note"
    BOOKMARK = "bookmark"
    TASK = "task"
    WORKSTREAM = "workstream"
    FILE = "file"

    @property
    def directory(self) -> str:
        """Directory name for this type ("notes", "bookmarks", ...)."""
        return f"{self.value}s"

    def __str__(self) -> str:
        return self.value


class TaskStatus(str, Enum):
    TODO = "todo"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


MAX_ID_LENGTH = 200

# IDs become file names and half of an "<id>:<type>" identifier.
# Blocked: control chars, DEL, path separators, the ":" delimiter,
#   and shell/markup-hostile characters.
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f\\/:`<>|;"\'*?]')


def validate_id(id: str) -> None:
    """Validate an item ID: bounded length, no path components or unsafe characters."""
    if not isinstance(id, str) or not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be 1-{MAX_ID_LENGTH} characters")
    if id in (".", "..") or id.startswith("."):
        raise ValueError(f"ID must not start with '.': {id!r}")
    if id != id.strip():
        raise ValueError(f"ID must not have leading or trailing whitespace: {id!r}")
    if _ID_BLOCKED_RE.search(id):
        raise ValueError(f"ID contains invalid characters: {id!r}")


def parse_item_type(value: str) -> ItemType:
    """Convert a type name to ItemType, with a readable error."""
    try:
        return ItemType(value)
    except ValueError:
        valid = ", ".join(t.value for t in ItemType)
        raise ValueError(f"Unknown item type {value!r} (expected one of: {valid})") from None


# ---------------------------------------------------------------------------
# ItemRef: the "<id>:<type>" identifier stored in tag files
# ---------------------------------------------------------------------------

REF_DELIMITER = ":"


@dataclass(frozen=True)
class ItemRef:
    """
    Reference to one item: its ID plus its type.

    IDs are only unique within a type, so tag index entries store both,
    formatted as ``"<id>:<type>"``. Neither part may contain the
    delimiter.
    """
    id: str
    type: ItemType

    def __post_init__(self):
        validate_id(self.id)
        if not isinstance(self.type, ItemType):
            object.__setattr__(self, "type", parse_item_type(self.type))

    @classmethod
    def parse(cls, value: str) -> "ItemRef":
        """Parse ``"<id>:<type>"``. Raises ValueError on anything else."""
        parts = value.split(REF_DELIMITER)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Item reference must look like '<id>:<type>': {value!r}")
        return cls(id=parts[0], type=parse_item_type(parts[1]))

    @classmethod
    def of(cls, item: "Item") -> "ItemRef":
        return cls(id=item.id, type=item.type)

    def format(self) -> str:
        return f"{self.id}{REF_DELIMITER}{self.type.value}"

    def __str__(self) -> str:
        return self.format()


# ---------------------------------------------------------------------------
# Item: metadata record
# ---------------------------------------------------------------------------

# Type-specific fields, omitted from the JSON record when empty
_OPTIONAL_FIELDS = ("url", "status", "items", "filename", "description")


@dataclass
class Item:
    """
    An item's metadata record.

    The body text lives in a separate content file; ``tags`` is the
    item's current tag set as last saved (sorted for stable output).

    Attributes:
        id: Identifier, unique within ``type``
        type: Item kind
        title: Display title
        tags: Current tags
        created: UTC ISO timestamp when first saved
        modified: UTC ISO timestamp of the last save
        url: Bookmark target
        status: Task status
        items: Workstream members as "<id>:<type>" strings
        filename: Original name of a stored file
        description: Free-form description
    """
    id: str
    type: ItemType
    title: str = ""
    tags: list[str] = field(default_factory=list)
    created: str = field(default_factory=utc_now)
    modified: str = field(default_factory=utc_now)

    url: Optional[str] = None
    status: Optional[TaskStatus] = None
    items: list[str] = field(default_factory=list)
    filename: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def new(cls, item_type: ItemType | str, id: str, **fields: Any) -> "Item":
        """Create a fresh item with matching created/modified timestamps."""
        validate_id(id)
        now = utc_now()
        return cls(id=id, type=parse_item_type(item_type),
                   created=now, modified=now, **fields)

    @property
    def ref(self) -> ItemRef:
        return ItemRef.of(self)

    def to_dict(self) -> dict:
        """Serialize to the JSON metadata record."""
        d: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "tags": list(self.tags),
            "created": self.created,
            "modified": self.modified,
        }
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value:
                d[name] = value.value if isinstance(value, Enum) else value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Item":
        """Deserialize a JSON metadata record. Raises ValueError if malformed."""
        if not isinstance(d, dict):
            raise ValueError("Item metadata must be a JSON object")
        try:
            id = d["id"]
            item_type = parse_item_type(d["type"])
        except KeyError as e:
            raise ValueError(f"Item metadata is missing {e.args[0]!r}") from None
        validate_id(id)
        tags = d.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValueError(f"Item {id!r} has malformed tags: {tags!r}")
        items = d.get("items") or []
        if not isinstance(items, list) or not all(isinstance(m, str) for m in items):
            raise ValueError(f"Item {id!r} has malformed items: {items!r}")

        # Timestamps order list_items(); anything but a string is corrupt
        for name in ("created", "modified"):
            if not isinstance(d.get(name, ""), str):
                raise ValueError(f"Item {id!r} has a non-string {name}: {d[name]!r}")
        for name in ("title", "url", "filename", "description"):
            value = d.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"Item {id!r} has a non-string {name}: {value!r}")

        status = d.get("status")
        return cls(
            id=id,
            type=item_type,
            title=d.get("title") or "",
            tags=tags,
            created=d.get("created", ""),
            modified=d.get("modified", ""),
            url=d.get("url"),
            status=TaskStatus(status) if status else None,
            items=list(items),
            filename=d.get("filename"),
            description=d.get("description"),
        )

    def __str__(self) -> str:
        title = f": {self.title}" if self.title else ""
        return f"{self.ref}{title}"
