from __future__ import annotations


class AdbMirrorError(Exception):
    """Base class for every failure surfaced by the mirror engine."""

    kind = "error"

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        return self.message


class ScanError(AdbMirrorError):
    kind = "scan_error"


class RootNotFoundError(ScanError):
    kind = "root_not_found"


class InvalidRemotePathError(AdbMirrorError):
    kind = "invalid_remote_path"


class DeviceError(AdbMirrorError):
    kind = "device_error"


class DeviceNotFoundError(DeviceError):
    kind = "device_not_found"

    def __init__(self, message: str | None = None, *, serial: str | None = None) -> None:
        if message is None:
            if serial:
                message = f"Android device '{serial}' is not attached."
            else:
                message = "No Android device detected. Ensure USB debugging is enabled."
        super().__init__(message)
        self.serial = serial


class AmbiguousDeviceError(DeviceError):
    kind = "ambiguous_device"

    def __init__(self, serials: list[str]) -> None:
        joined = ", ".join(serials)
        super().__init__(
            f"Multiple Android devices detected ({joined}). Connect only one device or pass --serial."
        )
        self.serials = list(serials)


class UnauthorizedDeviceError(DeviceError):
    kind = "unauthorized"

    def __init__(self, serial: str) -> None:
        super().__init__(
            f"Device '{serial}' has not authorized USB debugging. Accept the prompt on the device."
        )
        self.serial = serial


class TransportLostError(DeviceError):
    kind = "transport_lost"


class AdbNotAvailableError(DeviceError):
    kind = "adb_not_available"


class RemoteIOError(DeviceError):
    kind = "remote_io"


class RemotePathNotFoundError(RemoteIOError):
    kind = "remote_not_found"


class SyncCancelled(AdbMirrorError):
    kind = "cancelled"

    def __init__(self, processed: int = 0, total: int = 0) -> None:
        super().__init__(f"Sync cancelled after {processed}/{total} action(s).")
        self.processed = processed
        self.total = total
