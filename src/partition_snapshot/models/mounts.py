from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class MountEntry:
    device: str
    mountpoint: str
    fstype: str = ""
