"""Tests for the pure diff planner."""

from __future__ import annotations

from adbmirror.models import (
    Delete,
    EntryKind,
    FileEntry,
    MakeDirectory,
    SkippedEntry,
    Skip,
    SkipReason,
    TreeInventory,
    Upload,
)
from adbmirror.planner import needs_upload, plan


def _file(path: str, size: int, mtime: int = 1_700_000_000) -> FileEntry:
    return FileEntry(tuple(path.split("/")), EntryKind.FILE, size, mtime)


def _dir(path: str) -> FileEntry:
    return FileEntry(tuple(path.split("/")), EntryKind.DIRECTORY, 0, 1_700_000_000)


def _inventory(*entries: FileEntry, root_exists: bool = True, **kwargs) -> TreeInventory:
    return TreeInventory(
        root="/root",
        entries={entry.relative_path: entry for entry in entries},
        root_exists=root_exists,
        **kwargs,
    )


# ── Scenarios ────────────────────────────────────────────────────────


def test_fresh_remote_gets_directories_then_uploads():
    """a.txt and sub/b.txt onto an empty remote root."""
    local = _inventory(_file("a.txt", 10), _dir("sub"), _file("sub/b.txt", 20))
    remote = _inventory()

    result = plan(local, remote)

    assert list(result) == [
        MakeDirectory(("sub",)),
        Upload(("a.txt",), 10),
        Upload(("sub", "b.txt"), 20),
    ]
    assert result.upload_bytes == 30


def test_remote_only_file_is_deleted():
    local = _inventory(_file("a.txt", 10))
    remote = _inventory(_file("a.txt", 10), _file("old.log", 3))

    result = plan(local, remote)

    assert Delete(("old.log",)) in list(result)
    assert result.of_type(Delete) == [Delete(("old.log",))]


def test_missing_remote_root_is_created_first():
    local = _inventory(_file("a.txt", 1))
    remote = TreeInventory.empty("/sdcard/Music")

    result = plan(local, remote)

    assert result[0] == MakeDirectory(())
    assert result[1] == Upload(("a.txt",), 1)


def test_empty_local_and_missing_remote_still_creates_root():
    result = plan(_inventory(), TreeInventory.empty("/sdcard/Music"))
    assert list(result) == [MakeDirectory(())]


# ── Change detection ─────────────────────────────────────────────────


def test_unchanged_file_is_skipped():
    local = _inventory(_file("a.txt", 10, mtime=100))
    remote = _inventory(_file("a.txt", 10, mtime=100))

    assert list(plan(local, remote)) == [Skip(("a.txt",), SkipReason.UNCHANGED)]


def test_newer_remote_copy_is_not_uploaded():
    local = _inventory(_file("a.txt", 10, mtime=100))
    remote = _inventory(_file("a.txt", 10, mtime=200))

    assert list(plan(local, remote)) == [Skip(("a.txt",), SkipReason.UNCHANGED)]


def test_older_remote_copy_is_uploaded():
    local = _inventory(_file("a.txt", 10, mtime=200))
    remote = _inventory(_file("a.txt", 10, mtime=199))

    assert list(plan(local, remote)) == [Upload(("a.txt",), 10)]


def test_size_change_is_uploaded_even_when_remote_is_newer():
    local = _inventory(_file("a.txt", 11, mtime=100))
    remote = _inventory(_file("a.txt", 10, mtime=500))

    assert list(plan(local, remote)) == [Upload(("a.txt",), 11)]


def test_needs_upload_when_remote_missing():
    assert needs_upload(_file("a", 1), None) is True


# ── Ordering ─────────────────────────────────────────────────────────


def test_directories_parents_first_and_lexicographic():
    local = _inventory(
        _dir("b"),
        _dir("a"),
        _dir("a/z"),
        _dir("a/c"),
        _file("a/c/x.txt", 1),
    )

    result = plan(local, _inventory())

    assert result.of_type(MakeDirectory) == [
        MakeDirectory(("a",)),
        MakeDirectory(("a", "c")),
        MakeDirectory(("a", "z")),
        MakeDirectory(("b",)),
    ]


def test_phase_order_is_mkdir_transfer_delete():
    local = _inventory(_file("m.txt", 1), _dir("new"), _file("new/f.txt", 2))
    remote = _inventory(_file("m.txt", 1, mtime=1_700_000_000), _file("gone.txt", 5))

    kinds = [type(action).__name__ for action in plan(local, remote)]

    assert kinds == ["MakeDirectory", "Skip", "Upload", "Delete"]


def test_deletes_are_lexicographic_and_include_directory_contents():
    local = _inventory()
    remote = _inventory(_dir("old"), _file("old/a.txt", 1), _file("z.txt", 1), _file("b.txt", 1))

    assert plan(local, remote).of_type(Delete) == [
        Delete(("b.txt",)),
        Delete(("old",)),
        Delete(("old", "a.txt")),
        Delete(("z.txt",)),
    ]


def test_existing_remote_directory_is_not_recreated():
    local = _inventory(_dir("sub"), _file("sub/b.txt", 2))
    remote = _inventory(_dir("sub"))

    assert plan(local, remote).of_type(MakeDirectory) == []


def test_file_ancestors_imply_directories():
    local = _inventory(_file("deep/er/f.txt", 1))

    assert plan(local, _inventory()).of_type(MakeDirectory) == [
        MakeDirectory(("deep",)),
        MakeDirectory(("deep", "er")),
    ]


# ── Kind conflicts ───────────────────────────────────────────────────


def test_remote_directory_replaced_by_local_file():
    local = _inventory(_file("thing", 4))
    remote = _inventory(_dir("thing"), _file("thing/inner.txt", 1))

    assert list(plan(local, remote)) == [Delete(("thing",)), Upload(("thing",), 4)]


def test_remote_file_replaced_by_local_directory():
    local = _inventory(_dir("thing"), _file("thing/inner.txt", 1))
    remote = _inventory(_file("thing", 4))

    assert list(plan(local, remote)) == [
        Delete(("thing",)),
        MakeDirectory(("thing",)),
        Upload(("thing", "inner.txt"), 1),
    ]


# ── Skipped and hidden local entries ─────────────────────────────────


def test_unreadable_local_subtree_is_protected_from_deletion():
    local = _inventory(
        _file("a.txt", 1),
        skipped=(SkippedEntry(("private",), "unreadable directory"),),
    )
    remote = _inventory(_file("a.txt", 1), _dir("private"), _file("private/k.txt", 9))

    result = plan(local, remote)

    assert result.of_type(Delete) == []
    assert Skip(("private",), SkipReason.UNREADABLE) in list(result)


def test_hidden_entries_are_silent_by_default():
    local = _inventory(_file("a.txt", 1), hidden=((".DS_Store",),))
    remote = _inventory()

    result = plan(local, remote)

    assert list(result) == [Upload(("a.txt",), 1)]


def test_hidden_entries_reported_when_requested():
    local = _inventory(_file("a.txt", 1), hidden=((".DS_Store",),))

    result = plan(local, _inventory(), report_hidden=True)

    assert list(result) == [
        Skip((".DS_Store",), SkipReason.HIDDEN),
        Upload(("a.txt",), 1),
    ]
    assert result.upload_bytes == 1


def test_plan_does_not_mutate_inventories():
    local = _inventory(_file("a.txt", 1))
    remote = _inventory(_file("b.txt", 1))
    before = (dict(local.entries), dict(remote.entries))

    plan(local, remote)

    assert (dict(local.entries), dict(remote.entries)) == before


def test_has_changes():
    unchanged = plan(_inventory(_file("a.txt", 1)), _inventory(_file("a.txt", 1)))
    changed = plan(_inventory(_file("a.txt", 2)), _inventory(_file("a.txt", 1)))

    assert unchanged.has_changes is False
    assert changed.has_changes is True
