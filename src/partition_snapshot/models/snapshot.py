from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from partition_snapshot.models.mounts import MountEntry

SEPARATOR_LINE = "-" * 60
FIELD_SEPARATOR = "|"


@dataclass(frozen=True)
class SnapshotRecord:
    inode: int
    path: str
    size: int
    uid: int
    gid: int
    mode_octal: str
    mtime: str
    ctime: str
    type: str

    def to_line(self) -> str:
        # Embedded pipes in path are written as-is.
        return FIELD_SEPARATOR.join(
            (
                str(self.inode),
                self.path,
                str(self.size),
                str(self.uid),
                str(self.gid),
                self.mode_octal,
                self.mtime,
                self.ctime,
                self.type,
            )
        )


@dataclass(frozen=True)
class SnapshotHeader:
    host: str
    timestamp: str
    device: str
    mountpoint: str
    command: str

    def to_lines(self) -> list[str]:
        return [
            f"HOST: {self.host}",
            f"TIMESTAMP: {self.timestamp}",
            f"DEVICE: {self.device}",
            f"MOUNTPOINT: {self.mountpoint}",
            f"CMD: {self.command}",
            SEPARATOR_LINE,
        ]


@dataclass(frozen=True)
class WalkData:
    entry: MountEntry
    path: Path
    records_written: int
    errors: list[str]
    timed_out: bool = False
