"""Tests for ItemRef, Item serialization and ID validation."""

import pytest

from vovere.types import Item, ItemRef, ItemType, TaskStatus, validate_id


class TestItemRef:
    def test_format(self):
        assert ItemRef("abc", ItemType.NOTE).format() == "abc:note"
        assert str(ItemRef("abc", ItemType.BOOKMARK)) == "abc:bookmark"

    def test_parse(self):
        ref = ItemRef.parse("item3:task")
        assert ref.id == "item3"
        assert ref.type is ItemType.TASK

    def test_type_coerced_from_string(self):
        assert ItemRef("x", "workstream").type is ItemType.WORKSTREAM

    def test_parse_format_inverse(self):
        assert ItemRef.parse(ItemRef("a-b_c", ItemType.FILE).format()) == ItemRef("a-b_c", ItemType.FILE)

    def test_equal_and_hashable(self):
        assert {ItemRef("a", ItemType.NOTE), ItemRef.parse("a:note")} == {ItemRef("a", ItemType.NOTE)}

    def test_same_id_different_type_differs(self):
        assert ItemRef("a", ItemType.NOTE) != ItemRef("a", ItemType.TASK)

    @pytest.mark.parametrize("value", [
        "noseparator",
        "a:b:note",
        ":note",
        "a:",
        "a:unknown",
        "",
    ])
    def test_parse_rejects(self, value):
        with pytest.raises(ValueError):
            ItemRef.parse(value)

    def test_id_with_delimiter_rejected(self):
        with pytest.raises(ValueError):
            ItemRef("a:b", ItemType.NOTE)


class TestValidateId:
    @pytest.mark.parametrize("id", ["item1", "2026-01-01-journal", "a b", "ünï"])
    def test_valid(self, id):
        validate_id(id)

    @pytest.mark.parametrize("id", ["", ".", "..", ".hidden", "a/b", "a\\b", "a:b", " pad", "x" * 201, None])
    def test_invalid(self, id):
        with pytest.raises(ValueError):
            validate_id(id)


class TestItem:
    def test_new_sets_matching_timestamps(self):
        item = Item.new("note", "n1")
        assert item.type is ItemType.NOTE
        assert item.created == item.modified
        assert item.tags == []

    def test_to_dict_omits_empty_optional_fields(self):
        d = Item.new(ItemType.NOTE, "n1", title="Hello").to_dict()
        assert d["id"] == "n1"
        assert d["type"] == "note"
        assert d["title"] == "Hello"
        for name in ("url", "status", "items", "filename", "description"):
            assert name not in d

    def test_type_specific_fields_roundtrip(self):
        task = Item.new(ItemType.TASK, "t1", status=TaskStatus.DONE, tags=["x"])
        d = task.to_dict()
        assert d["status"] == "done"
        back = Item.from_dict(d)
        assert back.status is TaskStatus.DONE
        assert back.tags == ["x"]

        bm = Item.from_dict(Item.new(ItemType.BOOKMARK, "b1", url="https://example.com").to_dict())
        assert bm.url == "https://example.com"

    def test_from_dict_rejects_missing_type(self):
        with pytest.raises(ValueError, match="type"):
            Item.from_dict({"id": "x"})

    def test_from_dict_rejects_bad_tags(self):
        with pytest.raises(ValueError, match="tags"):
            Item.from_dict({"id": "x", "type": "note", "tags": "notalist"})

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(ValueError):
            Item.from_dict(["x"])

    def test_ref(self):
        assert Item.new("bookmark", "b1").ref == ItemRef("b1", ItemType.BOOKMARK)

    def test_type_directory(self):
        assert ItemType.WORKSTREAM.directory == "workstreams"

    @pytest.mark.parametrize("field, value", [
        ("items", 5),
        ("items", ["ok", 3]),
        ("created", None),
        ("modified", 1700000000),
        ("title", ["x"]),
        ("description", 3.5),
    ])
    def test_from_dict_rejects_wrongly_typed_fields(self, field, value):
        d = Item.new(ItemType.NOTE, "n1").to_dict()
        d[field] = value
        with pytest.raises(ValueError, match=field):
            Item.from_dict(d)

    def test_from_dict_null_title_is_empty(self):
        d = Item.new(ItemType.NOTE, "n1").to_dict()
        d["title"] = None
        assert Item.from_dict(d).title == ""
