from __future__ import annotations

from pathlib import Path

from adbmirror.models import DeviceIdentity, SyncStats, SyncSummary


def build_summary(
    device: DeviceIdentity,
    stats: SyncStats,
    *,
    local_root: Path | str,
    remote_root: str,
    dry_run: bool,
) -> SyncSummary:
    return SyncSummary(
        device=device,
        files_synced=stats.files_synced,
        files_deleted=stats.files_deleted,
        directories_created=stats.directories_created,
        skipped_entries=stats.skipped_entries,
        bytes_uploaded=stats.bytes_uploaded,
        remote_path=remote_root,
        local_root=str(local_root),
        dry_run=dry_run,
    )
