"""
Tests for TagReconciler.

Covers the diff itself, ordering, idempotence, partial failure and
concurrent reconciliations on shared tags.
"""

import threading

import pytest

from vovere.errors import ReconcileError, TagIndexReadError, TagIndexWriteError
from vovere.reconcile import TagReconciler
from vovere.tag_index import TagIndexCache

from conftest import note


class TestReconcileDiff:

    def test_new_item_added_to_all_tags(self, reconciler, tag_store):
        result = reconciler.reconcile(note("a"), set(), {"t1", "t2"})
        assert result.added == ["t1", "t2"]
        assert result.removed == []
        assert tag_store.read("t1") == ["a:note"]
        assert tag_store.read("t2") == ["a:note"]

    def test_addition_is_idempotent(self, reconciler, tag_store):
        reconciler.reconcile(note("a"), set(), {"T"})
        result = reconciler.reconcile(note("a"), set(), {"T"})
        assert tag_store.read("T") == ["a:note"]
        assert result.added == []
        assert result.unchanged == ["T"]
        assert not result.changed

    def test_appends_in_insertion_order(self, reconciler, tag_store):
        for id in ("c", "a", "b"):
            reconciler.reconcile(note(id), set(), {"shared"})
        assert tag_store.read("shared") == ["c:note", "a:note", "b:note"]

    def test_removal_keeps_other_members(self, reconciler, tag_store):
        reconciler.reconcile(note("a"), set(), {"t"})
        reconciler.reconcile(note("b"), set(), {"t"})
        reconciler.reconcile(note("a"), {"t"}, set())
        assert tag_store.read("t") == ["b:note"]

    def test_last_member_removal_deletes_tag(self, reconciler, tag_store, tags_dir):
        reconciler.reconcile(note("a"), set(), {"solo"})
        result = reconciler.reconcile(note("a"), {"solo"}, set())
        assert result.removed == ["solo"]
        assert "solo" not in tag_store.list_tags()
        assert not (tags_dir / "solo.json").exists()

    def test_removing_non_member_is_noop(self, reconciler, recording_store):
        result = reconciler.reconcile(note("ghost"), {"never"}, set())
        assert result.unchanged == ["never"]
        assert recording_store.ops == []

    def test_common_tags_untouched(self, reconciler, recording_store):
        reconciler.reconcile(note("a"), set(), {"keep", "old"})
        recording_store.ops.clear()
        recording_store.reads.clear()

        reconciler.reconcile(note("a"), {"keep", "old"}, {"keep", "new"})

        touched = {tag for _, tag in recording_store.ops} | set(recording_store.reads)
        assert "keep" not in touched

    def test_replaces_not_merges(self, reconciler, tag_store):
        """{tag1, tag3, tag4} -> {tag3, tag5}."""
        reconciler.reconcile(note("other"), set(), {"tag1"})
        reconciler.reconcile(note("item3"), set(), {"tag1", "tag3", "tag4"})

        reconciler.reconcile(note("item3"), {"tag1", "tag3", "tag4"}, {"tag3", "tag5"})

        assert tag_store.read("tag1") == ["other:note"]
        assert tag_store.read("tag3") == ["item3:note"]
        assert tag_store.read("tag5") == ["item3:note"]
        assert "tag4" not in tag_store.list_tags()

    def test_removals_happen_before_additions(self, reconciler, recording_store):
        reconciler.reconcile(note("a"), set(), {"a1", "z1"})
        recording_store.ops.clear()

        reconciler.reconcile(note("a"), {"a1", "z1"}, {"b2", "y2"})

        assert recording_store.ops == [
            ("delete", "a1"),
            ("delete", "z1"),
            ("write", "b2"),
            ("write", "y2"),
        ]

    def test_none_means_empty(self, reconciler, tag_store):
        reconciler.reconcile(note("a"), None, ["t"])
        reconciler.reconcile(note("a"), ["t"], None)
        assert tag_store.list_tags() == set()

    def test_same_id_different_types_are_separate_members(self, reconciler, tag_store):
        from vovere.types import ItemRef, ItemType
        reconciler.reconcile(ItemRef("x", ItemType.NOTE), set(), {"t"})
        reconciler.reconcile(ItemRef("x", ItemType.TASK), set(), {"t"})
        assert tag_store.read("t") == ["x:note", "x:task"]

    def test_roundtrip_membership(self, reconciler, tag_store):
        reconciler.reconcile(note("elsewhere"), set(), {"preexisting"})
        tags = {"alpha", "beta.gamma", "p:q"}
        reconciler.reconcile(note("id1"), set(), tags)
        for tag in tags:
            assert "id1:note" in tag_store.read(tag)
        assert "id1:note" not in tag_store.read("preexisting")


class TestPartialFailure:
    """Every update is attempted; failures are reported together."""

    @pytest.fixture
    def reconciler(self, failing_store):
        return TagReconciler(TagIndexCache(failing_store))

    def test_all_operations_attempted(self, reconciler, failing_store, tag_store):
        ref = note("item")
        reconciler.reconcile(ref, set(), {"keep", "drop1", "drop2"})
        failing_store.fail_tags = {"drop1", "add1"}

        with pytest.raises(ReconcileError) as exc_info:
            reconciler.reconcile(ref, {"keep", "drop1", "drop2"}, {"keep", "add1", "add2"})

        err = exc_info.value
        assert [(op, tag) for op, tag, _ in err.failures] == [("remove", "drop1"), ("add", "add1")]
        assert err.result.removed == ["drop2"]
        assert err.result.added == ["add2"]
        assert isinstance(err.__cause__, TagIndexWriteError)
        assert err.__cause__.tag == "drop1"
        assert err.ref == ref

        # What landed stays landed; what failed is unchanged
        assert tag_store.read("drop1") == ["item:note"]
        assert "drop2" not in tag_store.list_tags()
        assert tag_store.read("add2") == ["item:note"]
        assert "add1" not in tag_store.list_tags()
        assert tag_store.read("keep") == ["item:note"]

    def test_no_automatic_retry(self, reconciler, failing_store):
        failing_store.fail_tags = {"t"}
        with pytest.raises(ReconcileError):
            reconciler.reconcile(note("a"), set(), {"t"})
        assert failing_store.ops.count(("write-failed", "t")) == 1

    def test_malformed_tag_file_is_never_overwritten(self, reconciler, tags_dir):
        tags_dir.mkdir(parents=True)
        bad = tags_dir / "broken.json"
        bad.write_text("[\"x:note\", ")

        with pytest.raises(ReconcileError) as exc_info:
            reconciler.reconcile(note("a"), set(), {"broken", "fine"})

        assert isinstance(exc_info.value.__cause__, TagIndexReadError)
        assert bad.read_text() == "[\"x:note\", "
        assert exc_info.value.result.added == ["fine"]

    def test_invalid_tag_reported_as_failure(self, reconciler, tag_store):
        with pytest.raises(ReconcileError) as exc_info:
            reconciler.reconcile(note("a"), set(), {"ok", "bad/name"})
        assert [tag for _, tag, _ in exc_info.value.failures] == ["bad/name"]
        assert tag_store.read("ok") == ["a:note"]


class TestConcurrentReconcile:

    def test_parallel_additions_to_shared_tag_lose_nothing(self, tag_store):
        reconciler = TagReconciler(TagIndexCache(tag_store))
        num_workers = 8
        per_worker = 10
        errors = []

        def worker(w: int):
            try:
                for i in range(per_worker):
                    reconciler.reconcile(note(f"w{w}-{i}"), set(), {"shared", f"own{w}"})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(w,)) for w in range(num_workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        shared = tag_store.read("shared")
        assert len(shared) == num_workers * per_worker
        assert len(set(shared)) == len(shared)
        for w in range(num_workers):
            assert len(tag_store.read(f"own{w}")) == per_worker

    def test_readers_never_see_malformed_lists(self, tag_store):
        cache = TagIndexCache(tag_store)
        reconciler = TagReconciler(cache)
        stop = threading.Event()
        errors = []

        def reader():
            while not stop.is_set():
                try:
                    for member in cache.get("busy"):
                        assert member.endswith(":note")
                except Exception as e:
                    errors.append(e)
                    return

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        try:
            for i in range(50):
                reconciler.reconcile(note(f"n{i}"), set(), {"busy"})
                if i % 3 == 0:
                    reconciler.reconcile(note(f"n{i}"), {"busy"}, set())
        finally:
            stop.set()
            for t in readers:
                t.join(timeout=10)

        assert errors == []

    def test_lock_set_does_not_grow_with_tags(self, tag_store):
        reconciler = TagReconciler(TagIndexCache(tag_store), lock_stripes=4)
        for i in range(20):
            reconciler.reconcile(note(f"n{i}"), set(), {f"tag{i}"})
            reconciler.reconcile(note(f"n{i}"), {f"tag{i}"}, set())
        assert len(reconciler._tag_locks) == 4
        assert reconciler._lock_for("tag7") is reconciler._lock_for("tag7")
        assert tag_store.list_tags() == set()
