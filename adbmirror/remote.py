from __future__ import annotations

import logging

from adbmirror.device import DeviceSession
from adbmirror.errors import RemoteIOError
from adbmirror.models import EntryKind, FileEntry, RelPath, TreeInventory, is_hidden_name
from adbmirror.paths import join_remote


log = logging.getLogger(__name__)


def scan_remote_tree(session: DeviceSession, remote_root: str) -> TreeInventory:
    """Build the inventory of ``remote_root`` on the device.

    A missing root is an empty inventory with ``root_exists=False``. Any other
    listing failure propagates, so a partially listed tree never reaches the
    planner.
    """
    root_stat = session.stat(remote_root)
    if root_stat is None:
        log.info("Remote root %s does not exist yet", remote_root)
        return TreeInventory.empty(remote_root, root_exists=False)
    if root_stat.kind is not EntryKind.DIRECTORY:
        raise RemoteIOError(
            f"Remote path '{remote_root}' exists and is not a directory", path=remote_root
        )

    entries: dict[RelPath, FileEntry] = {}
    hidden: list[RelPath] = []
    pending: list[RelPath] = [()]
    while pending:
        relative_dir = pending.pop()
        for item in session.list(join_remote(remote_root, relative_dir)):
            relative_path = relative_dir + (item.name,)
            if is_hidden_name(item.name):
                hidden.append(relative_path)
                continue
            entries[relative_path] = FileEntry(
                relative_path=relative_path,
                kind=item.kind,
                size=item.size if item.kind is EntryKind.FILE else 0,
                modified_time=item.mtime,
            )
            if item.kind is EntryKind.DIRECTORY:
                pending.append(relative_path)

    log.info("Listed %s: %d entries, %d hidden", remote_root, len(entries), len(hidden))
    return TreeInventory(
        root=remote_root,
        entries=entries,
        root_exists=True,
        hidden=tuple(sorted(hidden)),
    )
