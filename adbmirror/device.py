from __future__ import annotations

import logging
import re
import shlex
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Protocol

from adbmirror.errors import (
    AdbNotAvailableError,
    AmbiguousDeviceError,
    DeviceError,
    DeviceNotFoundError,
    RemoteIOError,
    RemotePathNotFoundError,
    TransportLostError,
    UnauthorizedDeviceError,
)
from adbmirror.models import DeviceIdentity, EntryKind


log = logging.getLogger(__name__)

DEFAULT_ADB_PATH = "adb"
DEFAULT_COMMAND_TIMEOUT = 60.0
# Pushes get at least this much wall time per byte on top of the command timeout.
MIN_PUSH_BYTES_PER_SECOND = 1024 * 1024
SYSFS_USB_ROOT = Path("/sys/bus/usb/devices")
STAT_FORMAT = "%F|%s|%Y|%n"

_DEVICE_LINE = re.compile(
    r"^(?P<serial>\S+)\s+(?P<state>no permissions|device|unauthorized|offline|authorizing|"
    r"connecting|recovery|rescue|sideload|bootloader|host|unknown)\b(?P<rest>.*)$"
)
_ATTRIBUTE = re.compile(r"(?P<key>[A-Za-z_]+):(?P<value>\S+)")
_PUSHED_BYTES = re.compile(r"\((\d+) bytes in")

_TRANSPORT_MARKERS = (
    re.compile(r"device '.*' not found"),
    re.compile(r"no devices/emulators found"),
    re.compile(r"device (offline|unauthorized|still authorizing)"),
    re.compile(r"error: closed"),
    re.compile(r"protocol fault"),
    re.compile(r"connection reset"),
    re.compile(r"broken pipe"),
    re.compile(r"failed to get feature set"),
    re.compile(r"cannot connect to daemon"),
)
_MISSING_MARKERS = (
    "no such file",
    "does not exist",
    "failed to stat",
    "failed to lstat",
    "not found",
)
_UNAUTHORIZED_STATES = {"unauthorized", "no permissions", "authorizing"}


@dataclass(frozen=True, slots=True)
class AttachedDevice:
    serial: str
    state: str
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def usb(self) -> str | None:
        return self.attributes.get("usb")

    @property
    def model(self) -> str | None:
        value = self.attributes.get("model")
        return value.replace("_", " ") if value else None


@dataclass(frozen=True, slots=True)
class RemoteStat:
    name: str
    kind: EntryKind
    size: int
    mtime: int


def _invoke(
    command: list[str],
    *,
    timeout: float,
    path: str | None = None,
) -> subprocess.CompletedProcess:
    log.debug("adb: %s", shlex.join(command))
    try:
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise AdbNotAvailableError(
            f"adb executable not found: {command[0]}. Install Android platform-tools or set ADB."
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise TransportLostError(
            f"adb did not respond within {timeout:.0f}s: {shlex.join(command[1:])}",
            path=path,
        ) from exc


def _output_of(result: subprocess.CompletedProcess) -> str:
    parts = [(result.stderr or "").strip(), (result.stdout or "").strip()]
    return "\n".join(part for part in parts if part)


def classify_failure(result: subprocess.CompletedProcess, *, path: str | None = None) -> DeviceError:
    message = _output_of(result) or f"adb exited with status {result.returncode}"
    lowered = message.lower()
    if any(marker.search(lowered) for marker in _TRANSPORT_MARKERS):
        return TransportLostError(f"Connection to device lost: {message}", path=path)
    if any(marker in lowered for marker in _MISSING_MARKERS):
        return RemotePathNotFoundError(f"{path or 'remote path'}: {message}", path=path)
    return RemoteIOError(f"{path or 'remote operation'}: {message}", path=path)


def parse_devices(output: str) -> list[AttachedDevice]:
    devices: list[AttachedDevice] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("*") or line.lower().startswith("list of devices"):
            continue
        match = _DEVICE_LINE.match(line)
        if match is None:
            log.debug("Ignoring unrecognised adb devices line: %s", line)
            continue
        attributes = {
            attr.group("key"): attr.group("value")
            for attr in _ATTRIBUTE.finditer(match.group("rest"))
        }
        devices.append(
            AttachedDevice(
                serial=match.group("serial"),
                state=match.group("state"),
                attributes=attributes,
            )
        )
    return devices


def list_devices(
    adb_path: str = DEFAULT_ADB_PATH,
    *,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> list[AttachedDevice]:
    result = _invoke([adb_path, "devices", "-l"], timeout=timeout)
    if result.returncode != 0:
        raise TransportLostError(f"adb devices failed: {_output_of(result)}")
    return parse_devices(result.stdout)


def select_device(devices: list[AttachedDevice], serial: str | None = None) -> AttachedDevice:
    if serial:
        matches = [device for device in devices if device.serial == serial]
        if not matches:
            raise DeviceNotFoundError(serial=serial)
        device = matches[0]
    else:
        if not devices:
            raise DeviceNotFoundError()
        if len(devices) > 1:
            raise AmbiguousDeviceError([device.serial for device in devices])
        device = devices[0]

    if device.state in _UNAUTHORIZED_STATES:
        raise UnauthorizedDeviceError(device.serial)
    if device.state == "offline":
        raise TransportLostError(f"Device '{device.serial}' is offline. Reconnect the USB cable.")
    if device.state != "device":
        raise DeviceNotFoundError(
            f"Device '{device.serial}' is in '{device.state}' mode and cannot transfer files.",
            serial=device.serial,
        )
    return device


def read_usb_ids(usb_path: str | None, sysfs_root: Path = SYSFS_USB_ROOT) -> tuple[int, int]:
    if not usb_path:
        return 0, 0
    device_dir = sysfs_root / usb_path
    try:
        vendor_id = int((device_dir / "idVendor").read_text(encoding="ascii").strip(), 16)
        product_id = int((device_dir / "idProduct").read_text(encoding="ascii").strip(), 16)
    except (OSError, ValueError):
        return 0, 0
    return vendor_id, product_id


def _parse_kind(value: str) -> EntryKind:
    return EntryKind.DIRECTORY if value.strip() == "directory" else EntryKind.FILE


def parse_stat_line(line: str) -> RemoteStat | None:
    parts = line.split("|", 3)
    if len(parts) != 4:
        return None
    kind, size, mtime, name = parts
    try:
        return RemoteStat(
            name=name.rstrip("/").rsplit("/", 1)[-1],
            kind=_parse_kind(kind),
            size=int(size),
            mtime=int(mtime),
        )
    except ValueError:
        return None


class DeviceSession(Protocol):
    def identity(self) -> DeviceIdentity: ...

    def stat(self, path: str) -> RemoteStat | None: ...

    def list(self, path: str) -> list[RemoteStat]: ...

    def mkdir(self, path: str) -> None: ...

    def push(self, local_file: Path, remote_path: str) -> int: ...

    def delete(self, path: str) -> None: ...


class AdbSession:
    """One authorised adb connection to a single device.

    Every remote operation is a single adb invocation. The session is closed
    by :func:`open_session` on every exit path; calls after ``close`` fail with
    :class:`TransportLostError`.
    """

    def __init__(
        self,
        device: AttachedDevice,
        *,
        adb_path: str = DEFAULT_ADB_PATH,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
        sysfs_root: Path = SYSFS_USB_ROOT,
    ) -> None:
        self.device = device
        self.adb_path = adb_path
        self.timeout = timeout
        self._sysfs_root = sysfs_root
        self._identity: DeviceIdentity | None = None
        self._closed = False

    @property
    def serial(self) -> str:
        return self.device.serial

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            log.debug("Closing adb session for %s", self.serial)
        self._closed = True

    def _run(self, *args: str, path: str | None = None, timeout: float | None = None):
        if self._closed:
            raise TransportLostError("Device session is closed.", path=path)
        command = [self.adb_path, "-s", self.serial, *args]
        return _invoke(command, timeout=timeout or self.timeout, path=path)

    def shell(self, command: str, *, path: str | None = None) -> str:
        result = self._run("shell", command, path=path)
        if result.returncode != 0:
            raise classify_failure(result, path=path)
        return result.stdout

    def identity(self) -> DeviceIdentity:
        if self._identity is None:
            self._identity = self._read_identity()
        return self._identity

    def _read_identity(self) -> DeviceIdentity:
        vendor_id, product_id = read_usb_ids(self.device.usb, self._sysfs_root)
        output = self.shell("getprop ro.product.manufacturer; getprop ro.product.model")
        lines = [line.strip() for line in output.splitlines()]
        manufacturer = lines[0] if len(lines) > 0 and lines[0] else None
        product = lines[1] if len(lines) > 1 and lines[1] else self.device.model
        identity = DeviceIdentity(
            vendor_id=vendor_id,
            product_id=product_id,
            manufacturer=manufacturer,
            product=product,
            serial=self.serial,
        )
        log.info("Connected to %s", identity.display_name)
        return identity

    def stat(self, path: str) -> RemoteStat | None:
        # -L so a symlinked root such as /sdcard reports its target directory.
        command = f"stat -L -c {shlex.quote(STAT_FORMAT)} {shlex.quote(path)}"
        try:
            output = self.shell(command, path=path)
        except RemotePathNotFoundError:
            return None
        for line in output.splitlines():
            parsed = parse_stat_line(line)
            if parsed is not None:
                return parsed
        raise RemoteIOError(f"{path}: unexpected stat output {output.strip()!r}", path=path)

    def list(self, path: str) -> list[RemoteStat]:
        directory = path.rstrip("/") + "/"
        command = (
            f"find {shlex.quote(directory)} -mindepth 1 -maxdepth 1 "
            f"-exec stat -c {shlex.quote(STAT_FORMAT)} {{}} +"
        )
        output = self.shell(command, path=path)
        entries: list[RemoteStat] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            parsed = parse_stat_line(line)
            if parsed is None:
                raise RemoteIOError(f"{path}: unexpected listing line {line!r}", path=path)
            entries.append(parsed)
        entries.sort(key=lambda entry: entry.name)
        return entries

    def mkdir(self, path: str) -> None:
        self.shell(f"mkdir -p {shlex.quote(path)}", path=path)

    def push(self, local_file: Path, remote_path: str) -> int:
        local_size = local_file.stat().st_size
        timeout = self.timeout + local_size / MIN_PUSH_BYTES_PER_SECOND
        result = self._run("push", "-a", str(local_file), remote_path, path=remote_path, timeout=timeout)
        if result.returncode != 0:
            raise classify_failure(result, path=remote_path)
        match = _PUSHED_BYTES.search(_output_of(result))
        return int(match.group(1)) if match else local_size

    def delete(self, path: str) -> None:
        if not path or path.strip("/") == "":
            raise RemoteIOError(f"Refusing to delete {path!r}", path=path)
        self.shell(f"rm -rf {shlex.quote(path)}", path=path)


@contextmanager
def open_session(
    serial: str | None = None,
    *,
    adb_path: str = DEFAULT_ADB_PATH,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> Iterator[AdbSession]:
    device = select_device(list_devices(adb_path, timeout=timeout), serial)
    session = AdbSession(device, adb_path=adb_path, timeout=timeout)
    try:
        session.identity()
        yield session
    finally:
        session.close()
