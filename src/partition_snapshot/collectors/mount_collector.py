from __future__ import annotations

import logging
import re
import shutil
import subprocess
from typing import Callable, Iterable

import psutil

from partition_snapshot.errors import MountDiscoveryError
from partition_snapshot.models.mounts import MountEntry
from partition_snapshot.naming import DEVICE_PREFIX

LOGGER = logging.getLogger(__name__)

# Virtual, memory-backed, stacked and kernel filesystems never hold real partition data.
EXCLUDED_FSTYPES = frozenset(
    {
        "proc",
        "sysfs",
        "devtmpfs",
        "devpts",
        "tmpfs",
        "cgroup",
        "cgroup2",
        "pstore",
        "securityfs",
        "debugfs",
        "tracefs",
        "overlay",
        "squashfs",
        "rpc_pipefs",
        "nsfs",
        "fusectl",
    }
)

MountRow = tuple[str, str, str]
MountTable = Callable[[], Iterable[MountRow]]

FINDMNT_TIMEOUT_S = 30
_HEX_ESCAPE = re.compile(r"\\x([0-9a-fA-F]{2})")


def _unescape_findmnt(value: str) -> str:
    return _HEX_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


def psutil_mount_table() -> list[MountRow]:
    try:
        parts = psutil.disk_partitions(all=True)
    except Exception as e:
        raise MountDiscoveryError(f"Failed to list mounted partitions via psutil: {e}") from e
    return [(str(p.device), str(p.mountpoint), str(p.fstype)) for p in parts]


def findmnt_mount_table() -> list[MountRow]:
    exe = shutil.which("findmnt")
    if exe is None:
        raise MountDiscoveryError("Failed to list mounted partitions (need findmnt).")
    try:
        out = subprocess.run(
            [exe, "-rn", "-o", "SOURCE,TARGET,FSTYPE"],
            check=True,
            capture_output=True,
            text=True,
            timeout=FINDMNT_TIMEOUT_S,
        ).stdout
    except (OSError, subprocess.SubprocessError) as e:
        raise MountDiscoveryError(f"findmnt failed: {e}") from e

    rows: list[MountRow] = []
    for line in out.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        rows.append((_unescape_findmnt(parts[0]), _unescape_findmnt(parts[1]), parts[2]))
    return rows


MOUNT_TABLES: dict[str, MountTable] = {
    "psutil": psutil_mount_table,
    "findmnt": findmnt_mount_table,
}


def filter_mounts(rows: Iterable[MountRow]) -> list[MountEntry]:
    """Keep locally backed block devices, drop pseudo filesystems, dedupe and sort."""
    seen: set[MountEntry] = set()
    for device, mountpoint, fstype in rows:
        if not device.startswith(DEVICE_PREFIX) or not mountpoint:
            continue
        if fstype in EXCLUDED_FSTYPES:
            continue
        seen.add(MountEntry(device=device, mountpoint=mountpoint, fstype=fstype))
    return sorted(seen)


def select_mounts(entries: Iterable[MountEntry], paths: Iterable[str]) -> tuple[list[MountEntry], list[MountEntry]]:
    """Split entries into (selected, skipped) by exact mountpoint match.

    An empty ``paths`` selects everything.
    """
    wanted = set(paths)
    selected: list[MountEntry] = []
    skipped: list[MountEntry] = []
    for e in entries:
        if not wanted or e.mountpoint in wanted:
            selected.append(e)
        else:
            skipped.append(e)
    return selected, skipped


class MountCollector:
    def __init__(self, source: str = "psutil", table: MountTable | None = None) -> None:
        if table is None:
            try:
                table = MOUNT_TABLES[source]
            except KeyError:
                raise ValueError(f"unknown mount source: {source}") from None
        self.source = source
        self._table = table

    def discover(self) -> list[MountEntry]:
        try:
            rows = list(self._table())
        except MountDiscoveryError:
            raise
        except Exception as e:
            raise MountDiscoveryError(f"Failed to list mounted partitions ({self.source}): {e}") from e

        entries = filter_mounts(rows)
        LOGGER.debug("mount table rows: %d, eligible: %d", len(rows), len(entries))
        for e in entries:
            LOGGER.debug("mount: %s\t%s\t%s", e.device, e.mountpoint, e.fstype)
        return entries


__all__ = [
    "MountCollector",
    "filter_mounts",
    "select_mounts",
    "psutil_mount_table",
    "findmnt_mount_table",
    "EXCLUDED_FSTYPES",
]
