from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union


RelPath = tuple[str, ...]


def as_posix(path: RelPath) -> str:
    return "/".join(path)


def is_hidden_name(name: str) -> bool:
    return name.startswith(".")


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class FileEntry:
    relative_path: RelPath
    kind: EntryKind
    size: int
    modified_time: int
    is_hidden: bool = False

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True, slots=True)
class SkippedEntry:
    relative_path: RelPath
    reason: str


@dataclass(frozen=True, slots=True)
class TreeInventory:
    root: str
    entries: Mapping[RelPath, FileEntry]
    root_exists: bool = True
    skipped: tuple[SkippedEntry, ...] = ()
    hidden: tuple[RelPath, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, path: object) -> bool:
        return path in self.entries

    def get(self, path: RelPath) -> FileEntry | None:
        return self.entries.get(path)

    def files(self) -> list[FileEntry]:
        return sorted(
            (entry for entry in self.entries.values() if not entry.is_dir),
            key=lambda entry: entry.relative_path,
        )

    def directories(self) -> list[FileEntry]:
        return sorted(
            (entry for entry in self.entries.values() if entry.is_dir),
            key=lambda entry: entry.relative_path,
        )

    @classmethod
    def empty(cls, root: str, *, root_exists: bool = False) -> "TreeInventory":
        return cls(root=root, entries={}, root_exists=root_exists)


class SkipReason(str, Enum):
    UNCHANGED = "unchanged"
    HIDDEN = "hidden"
    UNREADABLE = "unreadable"


@dataclass(frozen=True, slots=True)
class MakeDirectory:
    path: RelPath


@dataclass(frozen=True, slots=True)
class Upload:
    path: RelPath
    local_size: int


@dataclass(frozen=True, slots=True)
class Delete:
    path: RelPath


@dataclass(frozen=True, slots=True)
class Skip:
    path: RelPath
    reason: SkipReason


SyncAction = Union[MakeDirectory, Upload, Delete, Skip]


@dataclass(frozen=True, slots=True)
class SyncPlan:
    actions: tuple[SyncAction, ...] = ()

    def __len__(self) -> int:
        return len(self.actions)

    def __iter__(self):
        return iter(self.actions)

    def __getitem__(self, index: int) -> SyncAction:
        return self.actions[index]

    def of_type(self, action_type: type) -> list[SyncAction]:
        return [action for action in self.actions if isinstance(action, action_type)]

    @property
    def upload_bytes(self) -> int:
        return sum(action.local_size for action in self.actions if isinstance(action, Upload))

    @property
    def has_changes(self) -> bool:
        return any(not isinstance(action, Skip) for action in self.actions)


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    vendor_id: int = 0
    product_id: int = 0
    manufacturer: str | None = None
    product: str | None = None
    serial: str | None = None

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.manufacturer, self.product) if part)
        label = name or self.serial or "Android device"
        return f"{label} [{self.vendor_id:04x}:{self.product_id:04x}]"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    processed_files: int
    total_files: int
    current_file: str | None
    dry_run: bool


@dataclass(frozen=True, slots=True)
class SyncSummary:
    device: DeviceIdentity
    files_synced: int
    files_deleted: int
    directories_created: int
    skipped_entries: int
    bytes_uploaded: int
    remote_path: str
    local_root: str
    dry_run: bool

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class SyncStats:
    files_synced: int = 0
    files_deleted: int = 0
    directories_created: int = 0
    skipped_entries: int = 0
    bytes_uploaded: int = 0
    processed: list[SyncAction] = field(default_factory=list)
