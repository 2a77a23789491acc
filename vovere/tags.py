"""
Hashtag extraction.

A tag starts at a ``#`` that begins the text or follows whitespace, and
runs over letters, digits and ``. : - _ +``. Dots and colons may appear
inside a tag but never begin or end one: trailing ones are sentence
punctuation and are stripped. So::

    "Plan #project:subtask, see #work.important."
        -> {"project:subtask", "work.important"}

``word#nottag`` and ``# spaced`` are not tags. Case is preserved.
"""

import re
from typing import Iterable

# (?<!\S) matches at start of text or after any whitespace character.
_TAG_RE = re.compile(r"(?<!\S)#([\w+-][\w.:+-]*)")

# A complete canonical tag: body characters, no leading/trailing . or :
_CANONICAL_TAG_RE = re.compile(r"[\w+-](?:[\w.:+-]*[\w+-])?")

_TRAILING_PUNCTUATION = ".:"

# Each tag is stored as "<tag>.json"; file names are limited to 255 bytes.
MAX_TAG_BYTES = 255 - len(".json")


def extract_tags(text: str) -> set[str]:
    """Return the set of hashtags in *text* (without the ``#``).

    Never raises; empty or tagless text gives an empty set.
    """
    if not text:
        return set()
    tags = set()
    for match in _TAG_RE.finditer(text):
        tag = match.group(1).rstrip(_TRAILING_PUNCTUATION)
        if tag:
            tags.add(tag)
    return tags


def is_valid_tag(tag: str) -> bool:
    """Check that *tag* is a canonical tag short enough to name its index file."""
    return (
        isinstance(tag, str)
        and _CANONICAL_TAG_RE.fullmatch(tag) is not None
        and len(tag.encode("utf-8")) <= MAX_TAG_BYTES
    )


def sorted_tags(tags: Iterable[str]) -> list[str]:
    """Tags in a stable order for storage and display."""
    return sorted(set(tags))
