from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from adbmirror.errors import RootNotFoundError, ScanError
from adbmirror.models import (
    EntryKind,
    FileEntry,
    RelPath,
    SkippedEntry,
    TreeInventory,
    as_posix,
    is_hidden_name,
)


log = logging.getLogger(__name__)


def resolve_local_root(local_path: str | Path) -> Path:
    raw = str(local_path).strip()
    if not raw:
        raise RootNotFoundError("Local path cannot be empty", path=raw)

    candidate = Path(raw).expanduser()
    if not candidate.exists():
        raise RootNotFoundError(f"Local path '{candidate}' does not exist", path=str(candidate))
    if not candidate.is_dir():
        raise RootNotFoundError(f"Local path '{candidate}' must be a directory", path=str(candidate))
    return candidate.resolve()


def _dir_key(st: os.stat_result) -> tuple[int, int]:
    return st.st_dev, st.st_ino


class _TreeWalk:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.entries: dict[RelPath, FileEntry] = {}
        self.skipped: list[SkippedEntry] = []
        self.hidden: list[RelPath] = []

    def skip(self, relative_path: RelPath, reason: str) -> None:
        log.warning("Skipping %s: %s", as_posix(relative_path), reason)
        self.skipped.append(SkippedEntry(relative_path=relative_path, reason=reason))

    def walk(
        self,
        directory: Path,
        relative_dir: RelPath,
        ancestors: frozenset[tuple[int, int]],
    ) -> bool:
        try:
            with os.scandir(directory) as iterator:
                children = sorted(iterator, key=lambda item: item.name)
        except OSError as exc:
            if not relative_dir:
                raise ScanError(f"Cannot read local root '{directory}': {exc}", path=str(directory)) from exc
            self.skip(relative_dir, f"unreadable directory ({exc.strerror or exc})")
            return False

        for child in children:
            relative_path = relative_dir + (child.name,)
            if is_hidden_name(child.name):
                self.hidden.append(relative_path)
                continue
            self._visit(child, relative_path, ancestors)
        return True

    def _visit(
        self,
        child: os.DirEntry,
        relative_path: RelPath,
        ancestors: frozenset[tuple[int, int]],
    ) -> None:
        try:
            is_link = child.is_symlink()
            st = child.stat(follow_symlinks=True)
        except FileNotFoundError:
            self.skip(relative_path, "broken symlink")
            return
        except OSError as exc:
            self.skip(relative_path, f"unreadable ({exc.strerror or exc})")
            return

        if stat.S_ISDIR(st.st_mode):
            key = _dir_key(st)
            if key in ancestors:
                self.skip(relative_path, "symlink cycle")
                return
            if is_link:
                log.debug("Following directory symlink %s", child.path)
            self.entries[relative_path] = FileEntry(
                relative_path=relative_path,
                kind=EntryKind.DIRECTORY,
                size=0,
                modified_time=int(st.st_mtime),
            )
            if not self.walk(Path(child.path), relative_path, ancestors | {key}):
                del self.entries[relative_path]
            return

        if stat.S_ISREG(st.st_mode):
            if not os.access(child.path, os.R_OK):
                self.skip(relative_path, "unreadable file")
                return
            self.entries[relative_path] = FileEntry(
                relative_path=relative_path,
                kind=EntryKind.FILE,
                size=st.st_size,
                modified_time=int(st.st_mtime),
            )
            return

        self.skip(relative_path, "not a regular file or directory")


def scan_local_tree(local_path: str | Path) -> TreeInventory:
    root = resolve_local_root(local_path)
    walker = _TreeWalk(root)
    walker.walk(root, (), frozenset({_dir_key(root.stat())}))

    log.info(
        "Scanned %s: %d entries, %d skipped, %d hidden",
        root,
        len(walker.entries),
        len(walker.skipped),
        len(walker.hidden),
    )
    return TreeInventory(
        root=str(root),
        entries=walker.entries,
        root_exists=True,
        skipped=tuple(walker.skipped),
        hidden=tuple(walker.hidden),
    )
