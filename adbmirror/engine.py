from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, ContextManager

from adbmirror.device import (
    DEFAULT_ADB_PATH,
    DEFAULT_COMMAND_TIMEOUT,
    DeviceSession,
    open_session,
)
from adbmirror.executor import execute_plan
from adbmirror.models import Delete, MakeDirectory, SyncSummary, TreeInventory, Upload
from adbmirror.paths import normalize_remote_path
from adbmirror.planner import plan
from adbmirror.progress import ProgressListener
from adbmirror.remote import scan_remote_tree
from adbmirror.scanner import resolve_local_root, scan_local_tree
from adbmirror.summary import build_summary


log = logging.getLogger(__name__)

SessionFactory = Callable[..., ContextManager[DeviceSession]]


def _build_inventories(
    session: DeviceSession,
    local_root: Path,
    remote_root: str,
) -> tuple[TreeInventory, TreeInventory]:
    # Local disk and the device are disjoint resources; the session is only
    # touched by the remote worker.
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="adbmirror-scan") as executor:
        local_future = executor.submit(scan_local_tree, local_root)
        remote_future = executor.submit(scan_remote_tree, session, remote_root)
        remote_inventory = remote_future.result()
        local_inventory = local_future.result()
    return local_inventory, remote_inventory


def sync_folders(
    local_path: str | Path,
    device_path: str,
    dry_run: bool = False,
    *,
    serial: str | None = None,
    adb_path: str = DEFAULT_ADB_PATH,
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    on_progress: ProgressListener | None = None,
    cancel_event: threading.Event | None = None,
    report_hidden: bool = False,
    session_factory: SessionFactory = open_session,
) -> SyncSummary:
    """Mirror ``local_path`` onto ``device_path`` on the attached Android device.

    Raises :class:`~adbmirror.errors.ScanError`,
    :class:`~adbmirror.errors.InvalidRemotePathError`,
    :class:`~adbmirror.errors.DeviceError` or
    :class:`~adbmirror.errors.SyncCancelled`; a summary is only returned for a
    run that processed every planned action.
    """
    local_root = resolve_local_root(local_path)
    remote_root = normalize_remote_path(device_path)
    log.info(
        "%s %s -> %s",
        "Planning" if dry_run else "Mirroring",
        local_root,
        remote_root,
    )

    with session_factory(serial, adb_path=adb_path, timeout=command_timeout) as session:
        device = session.identity()
        local_inventory, remote_inventory = _build_inventories(session, local_root, remote_root)

        sync_plan = plan(local_inventory, remote_inventory, report_hidden=report_hidden)
        log.info(
            "Plan: %d action(s): %d mkdir, %d upload (%d bytes), %d delete",
            len(sync_plan),
            len(sync_plan.of_type(MakeDirectory)),
            len(sync_plan.of_type(Upload)),
            sync_plan.upload_bytes,
            len(sync_plan.of_type(Delete)),
        )
        if not sync_plan.has_changes:
            log.info("%s already mirrors %s", remote_root, local_root)

        stats = execute_plan(
            sync_plan,
            session,
            local_root=local_root,
            remote_root=remote_root,
            dry_run=dry_run,
            on_progress=on_progress,
            cancel_event=cancel_event,
        )

    return build_summary(
        device,
        stats,
        local_root=local_root,
        remote_root=remote_root,
        dry_run=dry_run,
    )
