from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from adbmirror.device import DeviceSession
from adbmirror.errors import SyncCancelled
from adbmirror.models import (
    Delete,
    MakeDirectory,
    ProgressEvent,
    RelPath,
    Skip,
    SyncPlan,
    SyncStats,
    Upload,
)
from adbmirror.paths import join_remote
from adbmirror.progress import ProgressListener, notify


log = logging.getLogger(__name__)


def _local_file_path(local_root: Path, relative_path: RelPath) -> Path:
    return local_root.joinpath(*relative_path)


def _still_readable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.R_OK)


def execute_plan(
    plan: SyncPlan,
    session: DeviceSession,
    *,
    local_root: Path,
    remote_root: str,
    dry_run: bool,
    on_progress: ProgressListener | None = None,
    cancel_event: threading.Event | None = None,
) -> SyncStats:
    """Apply ``plan`` in order, or only count it when ``dry_run`` is set.

    One progress event is emitted before the first action and one after each
    action. Cancellation is checked between actions. Device errors propagate
    unchanged and no stats are returned for a partial run.
    """
    stats = SyncStats()
    total = len(plan)
    deleted: list[RelPath] = []
    notify(on_progress, ProgressEvent(0, total, None, dry_run))

    for index, action in enumerate(plan, start=1):
        if cancel_event is not None and cancel_event.is_set():
            log.warning("Cancelled before action %d/%d", index, total)
            raise SyncCancelled(processed=index - 1, total=total)

        remote_path = join_remote(remote_root, action.path)

        if isinstance(action, MakeDirectory):
            if not dry_run:
                session.mkdir(remote_path)
            stats.directories_created += 1
            log.debug("mkdir %s", remote_path)

        elif isinstance(action, Upload):
            local_file = _local_file_path(local_root, action.path)
            if not _still_readable(local_file):
                log.warning("Local file disappeared or became unreadable: %s", local_file)
                stats.skipped_entries += 1
            else:
                if not dry_run:
                    written = session.push(local_file, remote_path)
                    if written != action.local_size:
                        log.debug(
                            "adb reported %d bytes for %s (scanned %d)",
                            written,
                            remote_path,
                            action.local_size,
                        )
                stats.files_synced += 1
                stats.bytes_uploaded += action.local_size
                log.info("%s %s", "would push" if dry_run else "pushed", remote_path)

        elif isinstance(action, Delete):
            # rm -rf on a deleted ancestor already removed this path.
            already_gone = any(action.path[: len(prefix)] == prefix for prefix in deleted)
            if not dry_run and not already_gone:
                session.delete(remote_path)
            deleted.append(action.path)
            stats.files_deleted += 1
            log.info("%s %s", "would delete" if dry_run else "deleted", remote_path)

        elif isinstance(action, Skip):
            stats.skipped_entries += 1
            log.debug("skip %s (%s)", remote_path, action.reason.value)

        stats.processed.append(action)
        notify(on_progress, ProgressEvent(index, total, remote_path, dry_run))

    return stats
