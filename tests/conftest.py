"""Shared fixtures: an in-memory Android device and local tree builders."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path

import pytest

from adbmirror.device import RemoteStat
from adbmirror.errors import RemoteIOError, RemotePathNotFoundError
from adbmirror.logging_setup import LOGGER_NAME
from adbmirror.models import DeviceIdentity, EntryKind


FAKE_IDENTITY = DeviceIdentity(
    vendor_id=0x18D1,
    product_id=0x4EE7,
    manufacturer="Google",
    product="Pixel 7",
    serial="FAKE123",
)


def _parent(path: str) -> str:
    head, _, _ = path.rpartition("/")
    return head or "/"


class FakeSession:
    """Device session backed by dicts instead of adb.

    ``files`` maps absolute device paths to ``(size, mtime)``; ``dirs`` holds
    every directory including ``/``. ``fail_on`` maps ``(operation, path)`` to
    an exception raised when that call happens.
    """

    def __init__(self, identity: DeviceIdentity = FAKE_IDENTITY) -> None:
        self._identity = identity
        self.files: dict[str, tuple[int, int]] = {}
        self.dirs: set[str] = {"/"}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[tuple[str, str], Exception] = {}
        self.closed = False

    # helpers for tests
    def add_dir(self, path: str) -> None:
        current = ""
        for segment in path.strip("/").split("/"):
            current = f"{current}/{segment}"
            self.dirs.add(current)

    def add_file(self, path: str, size: int, mtime: int = 1_600_000_000) -> None:
        if _parent(path) != "/":
            self.add_dir(_parent(path))
        self.files[path] = (size, mtime)

    def snapshot(self) -> tuple[dict[str, tuple[int, int]], frozenset[str]]:
        return dict(self.files), frozenset(self.dirs)

    def mutating_calls(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in {"mkdir", "push", "delete"}]

    def _record(self, operation: str, path: str) -> None:
        if self.closed:
            raise AssertionError("session used after close")
        self.calls.append((operation, path))
        failure = self.fail_on.get((operation, path))
        if failure is not None:
            raise failure

    # DeviceSession protocol
    def identity(self) -> DeviceIdentity:
        return self._identity

    def stat(self, path: str) -> RemoteStat | None:
        self._record("stat", path)
        name = path.rsplit("/", 1)[-1]
        if path in self.dirs:
            return RemoteStat(name=name, kind=EntryKind.DIRECTORY, size=0, mtime=1_600_000_000)
        if path in self.files:
            size, mtime = self.files[path]
            return RemoteStat(name=name, kind=EntryKind.FILE, size=size, mtime=mtime)
        return None

    def list(self, path: str) -> list[RemoteStat]:
        self._record("list", path)
        if path not in self.dirs:
            raise RemotePathNotFoundError(f"{path}: No such file or directory", path=path)
        children: list[RemoteStat] = []
        for directory in self.dirs:
            if directory != "/" and _parent(directory) == path:
                children.append(
                    RemoteStat(
                        name=directory.rsplit("/", 1)[-1],
                        kind=EntryKind.DIRECTORY,
                        size=0,
                        mtime=1_600_000_000,
                    )
                )
        for file_path, (size, mtime) in self.files.items():
            if _parent(file_path) == path:
                children.append(
                    RemoteStat(name=file_path.rsplit("/", 1)[-1], kind=EntryKind.FILE, size=size, mtime=mtime)
                )
        return sorted(children, key=lambda item: item.name)

    def mkdir(self, path: str) -> None:
        self._record("mkdir", path)
        if path in self.files:
            raise RemoteIOError(f"{path}: File exists", path=path)
        self.add_dir(path)

    def push(self, local_file: Path, remote_path: str) -> int:
        self._record("push", remote_path)
        if _parent(remote_path) not in self.dirs:
            raise RemotePathNotFoundError(f"{remote_path}: No such file or directory", path=remote_path)
        if remote_path in self.dirs:
            raise RemoteIOError(f"{remote_path}: Is a directory", path=remote_path)
        st = local_file.stat()
        self.files[remote_path] = (st.st_size, int(st.st_mtime))
        return st.st_size

    def delete(self, path: str) -> None:
        self._record("delete", path)
        prefix = path.rstrip("/") + "/"
        self.files = {
            key: value
            for key, value in self.files.items()
            if key != path and not key.startswith(prefix)
        }
        self.dirs = {
            directory
            for directory in self.dirs
            if directory != path and not directory.startswith(prefix)
        }


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def session_factory(fake_session: FakeSession):
    """Drop-in for ``open_session`` that yields ``fake_session``."""
    opened: list[dict] = []

    @contextmanager
    def factory(serial=None, **kwargs):
        opened.append({"serial": serial, **kwargs})
        fake_session.closed = False
        try:
            yield fake_session
        finally:
            fake_session.closed = True

    factory.opened = opened
    return factory


def write_tree(root: Path, files: dict[str, bytes | None]) -> Path:
    """Create ``files`` under ``root``; a ``None`` value makes a directory."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        target = root / relative
        if content is None:
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    return root


@pytest.fixture
def local_tree(tmp_path: Path):
    def build(files: dict[str, bytes | None], name: str = "local") -> Path:
        return write_tree(tmp_path / name, files)

    return build


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo ``setup_logging`` so caplog keeps seeing package records."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
