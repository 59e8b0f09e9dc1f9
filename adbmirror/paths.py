from __future__ import annotations

from adbmirror.errors import InvalidRemotePathError
from adbmirror.models import RelPath


def normalize_remote_path(path: str) -> str:
    trimmed = (path or "").strip()
    if not trimmed:
        raise InvalidRemotePathError("Remote path cannot be empty", path=path)

    parts: list[str] = []
    for segment in trimmed.replace("\\", "/").split("/"):
        if segment in {"", "."}:
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)

    # Mirroring deletes whatever is not present locally, never point it at the device root.
    if not parts:
        raise InvalidRemotePathError(
            f"Refusing to mirror onto the device root: {path!r}", path=path
        )
    return "/" + "/".join(parts)


def join_remote(remote_root: str, relative: RelPath) -> str:
    if not relative:
        return remote_root
    base = remote_root.rstrip("/")
    return f"{base}/{'/'.join(relative)}"
