from __future__ import annotations

import os
import socket
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

DEFAULT_LOG_PATH = Path("/var/log/partition_snapshot_git.log")
DEFAULT_REMOTE = "origin"
DEFAULT_BRANCH = "main"
MOUNT_SOURCES = ("psutil", "findmnt")


def default_state_path() -> Path:
    xdg = os.environ.get("XDG_STATE_HOME")
    if xdg:
        base = Path(xdg)
    else:
        base = Path.home() / ".local" / "state"
    return base / "partition_snapshot" / "state.json"


@dataclass(frozen=True)
class SnapshotConfig:
    repo: Path
    email: str
    paths: tuple[str, ...] = ()
    log_path: Path = DEFAULT_LOG_PATH
    debug: bool = False
    verbose: bool = False
    heartbeat_url: str = ""
    notification_url: str = ""
    state_file: Path = field(default_factory=default_state_path)
    mount_source: str = "psutil"
    workers: int = 1
    walk_timeout_s: float | None = None
    status_trailer: bool = False
    remote: str = DEFAULT_REMOTE
    branch: str = DEFAULT_BRANCH
    push: bool = True
    hostname: str = field(default_factory=socket.gethostname)
    lock_file: Path | None = None
    invoked_as: tuple[str, ...] = ()

    @property
    def short_hostname(self) -> str:
        return self.hostname.split(".", 1)[0] or self.hostname

    @property
    def lock_path(self) -> Path:
        if self.lock_file is not None:
            return self.lock_file
        return Path(tempfile.gettempdir()) / f"partition_snapshot-{os.getuid()}.lock"


_PATH_FIELDS = {"repo", "log_path", "state_file", "lock_file"}


def split_paths(values: list[str] | tuple[str, ...] | str | None) -> tuple[str, ...]:
    """Flatten repeatable, comma-separated ``--paths`` values."""
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    out: list[str] = []
    for raw in values:
        for p in str(raw).split(","):
            if p:
                out.append(p)
    return tuple(out)


def build_config(overrides: Mapping[str, Any], file_values: Mapping[str, Any] | None = None) -> SnapshotConfig:
    """Merge defaults, config-file values and CLI overrides into one SnapshotConfig.

    ``None`` in ``overrides`` means "not given on the command line". Unknown
    keys in the config file are ignored. Raises ValueError on invalid values.
    """
    known = {f.name for f in fields(SnapshotConfig)}
    merged: dict[str, Any] = {}
    for key, value in (file_values or {}).items():
        if key in known and value is not None:
            merged[key] = value
    for key, value in overrides.items():
        if key in known and value is not None:
            merged[key] = value

    if not merged.get("repo"):
        raise ValueError("--repo is required")
    if not merged.get("email"):
        raise ValueError("--email is required")

    for key in _PATH_FIELDS:
        if key in merged:
            merged[key] = Path(merged[key]).expanduser()
    merged["paths"] = split_paths(merged.get("paths"))
    if "invoked_as" in merged:
        merged["invoked_as"] = tuple(merged["invoked_as"])

    source = merged.get("mount_source", "psutil")
    if source not in MOUNT_SOURCES:
        raise ValueError(f"mount_source must be one of {', '.join(MOUNT_SOURCES)}: {source}")
    if "workers" in merged:
        merged["workers"] = int(merged["workers"])
        if merged["workers"] <= 0:
            raise ValueError("--workers must be positive")
    if merged.get("walk_timeout_s") is not None:
        merged["walk_timeout_s"] = float(merged["walk_timeout_s"])
        if merged["walk_timeout_s"] <= 0:
            raise ValueError("--walk-timeout must be positive when provided")

    return SnapshotConfig(**merged)


__all__ = [
    "SnapshotConfig",
    "build_config",
    "split_paths",
    "default_state_path",
    "DEFAULT_LOG_PATH",
    "MOUNT_SOURCES",
]
