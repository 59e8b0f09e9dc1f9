from __future__ import annotations

from adbmirror.models import (
    Delete,
    FileEntry,
    MakeDirectory,
    RelPath,
    Skip,
    SkipReason,
    SyncAction,
    SyncPlan,
    TreeInventory,
    Upload,
)


def _is_within(path: RelPath, prefixes: set[RelPath] | list[RelPath]) -> bool:
    return any(path[: len(prefix)] == prefix for prefix in prefixes)


def _ancestors(path: RelPath) -> list[RelPath]:
    return [path[:depth] for depth in range(1, len(path))]


def needs_upload(local: FileEntry, remote: FileEntry | None) -> bool:
    if remote is None or remote.is_dir:
        return True
    if remote.size != local.size:
        return True
    return remote.modified_time < local.modified_time


def plan(
    local: TreeInventory,
    remote: TreeInventory,
    *,
    report_hidden: bool = False,
) -> SyncPlan:
    """Compute the ordered actions that make ``remote`` mirror ``local``.

    Order: deletes of remote entries whose kind clashes with the local entry,
    directory creation (parents first), uploads and skips by path, then
    deletes of remote-only entries by path.
    """
    # Remote entries replaced by a local entry of the other kind go first so
    # the path is free before it is recreated.
    replaced = sorted(
        path
        for path, entry in local.entries.items()
        if (other := remote.get(path)) is not None and other.kind != entry.kind
    )

    def remote_entry(path: RelPath) -> FileEntry | None:
        if _is_within(path, replaced):
            return None
        return remote.get(path)

    # Subtrees the local scan could not read are left untouched on the device.
    protected = [skipped.relative_path for skipped in local.skipped]

    wanted_dirs: set[RelPath] = {entry.relative_path for entry in local.directories()}
    for path in local.entries:
        wanted_dirs.update(_ancestors(path))

    directories: list[SyncAction] = []
    if not remote.root_exists:
        directories.append(MakeDirectory(()))
    for path in sorted(wanted_dirs):
        existing = remote_entry(path)
        if existing is None or not existing.is_dir:
            directories.append(MakeDirectory(path))

    transfers: list[SyncAction] = []
    for entry in local.files():
        if needs_upload(entry, remote_entry(entry.relative_path)):
            transfers.append(Upload(entry.relative_path, entry.size))
        else:
            transfers.append(Skip(entry.relative_path, SkipReason.UNCHANGED))
    for skipped in local.skipped:
        transfers.append(Skip(skipped.relative_path, SkipReason.UNREADABLE))
    if report_hidden:
        for hidden_path in local.hidden:
            transfers.append(Skip(hidden_path, SkipReason.HIDDEN))
    transfers.sort(key=lambda action: action.path)

    deletions: list[SyncAction] = [
        Delete(path)
        for path in sorted(remote.entries)
        if path not in local.entries
        and not _is_within(path, replaced)
        and not _is_within(path, protected)
    ]

    return SyncPlan(
        actions=(
            *(Delete(path) for path in replaced),
            *directories,
            *transfers,
            *deletions,
        )
    )
