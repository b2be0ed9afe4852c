"""Filesystem-safe names for snapshot files and host folders."""

from __future__ import annotations

DEVICE_PREFIX = "/dev/"
SAFE_SEPARATOR = "_"
SNAPSHOT_SUFFIX = ".find.txt"

_UNSAFE = str.maketrans({"/": SAFE_SEPARATOR, "-": SAFE_SEPARATOR, ".": SAFE_SEPARATOR, " ": SAFE_SEPARATOR})


def sanitize(value: str) -> str:
    """Turn a device, mountpoint or hostname into a single path segment.

    A leading ``/dev/`` is dropped, then every ``/``, ``-``, ``.`` and space
    becomes ``_``. The result never contains ``/`` so applying it twice is a
    no-op.
    """
    s = value
    if s.startswith(DEVICE_PREFIX):
        s = s[len(DEVICE_PREFIX) :]
    return s.translate(_UNSAFE)


def snapshot_filename(device: str, mountpoint: str) -> str:
    # Both halves are kept: sanitize() is lossy on its own.
    return f"{sanitize(device)}__{sanitize(mountpoint)}{SNAPSHOT_SUFFIX}"


def host_folder_name(hostname: str, instance_id: str) -> str:
    return f"{sanitize(hostname)}-{instance_id}"


__all__ = ["sanitize", "snapshot_filename", "host_folder_name", "DEVICE_PREFIX"]
