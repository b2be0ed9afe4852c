from __future__ import annotations

import logging
import os
import stat
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from partition_snapshot.errors import WalkError
from partition_snapshot.models.common import (
    STATUS_FAILED,
    STATUS_OK,
    STATUS_PARTIAL,
    CollectorResult,
)
from partition_snapshot.models.mounts import MountEntry
from partition_snapshot.models.snapshot import SnapshotHeader, SnapshotRecord, WalkData
from partition_snapshot.naming import snapshot_filename

LOGGER = logging.getLogger(__name__)

FIND_PRINTF = "%i|%p|%s|%U|%G|%m|%T@|%C@|%y\\n"
NS_PER_S = 1_000_000_000


class _WalkTimeout(Exception):
    pass


def type_char(mode: int) -> str:
    if stat.S_ISREG(mode):
        return "f"
    if stat.S_ISDIR(mode):
        return "d"
    if stat.S_ISLNK(mode):
        return "l"
    if stat.S_ISBLK(mode):
        return "b"
    if stat.S_ISCHR(mode):
        return "c"
    if stat.S_ISFIFO(mode):
        return "p"
    if stat.S_ISSOCK(mode):
        return "s"
    return "U"


def epoch_string(ns: int) -> str:
    """Epoch seconds with a ten digit fraction, the way find prints ``%T@``."""
    secs, frac = divmod(int(ns), NS_PER_S)
    return f"{secs}.{frac:09d}0"


def record_from_stat(path: str, st: Any) -> SnapshotRecord:
    return SnapshotRecord(
        inode=int(st.st_ino),
        path=path,
        size=int(st.st_size),
        uid=int(st.st_uid),
        gid=int(st.st_gid),
        mode_octal=format(stat.S_IMODE(st.st_mode), "o"),
        mtime=epoch_string(st.st_mtime_ns),
        ctime=epoch_string(st.st_ctime_ns),
        type=type_char(st.st_mode),
    )


def find_command(mountpoint: str) -> str:
    return f"find \"{mountpoint}\" -xdev -printf '{FIND_PRINTF}'"


class InventoryCollector:
    """Writes one snapshot file per mount, never crossing into another filesystem.

    The walk is depth-first pre-order with children sorted by name, so an
    unchanged tree always produces the same file. A directory sitting on a
    different device than the mountpoint is recorded but not entered, the same
    way ``find -xdev`` treats it. Symlinks are never followed.
    """

    def __init__(
        self,
        hostname: str,
        timeout_s: float | None = None,
        status_trailer: bool = False,
        lstat: Callable[[str], Any] = os.lstat,
        listdir: Callable[[str], list[str]] = os.listdir,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.hostname = hostname
        self.timeout_s = timeout_s
        self.status_trailer = status_trailer
        self._lstat = lstat
        self._listdir = listdir
        self._clock = clock

    def walk(self, entry: MountEntry, outdir: Path) -> CollectorResult[WalkData]:
        ts = datetime.now()
        target = Path(outdir) / snapshot_filename(entry.device, entry.mountpoint)
        errors: list[str] = []
        count = 0
        timed_out = False

        LOGGER.info(
            "Generating filesystem snapshot for %s mounted at %s -> %s",
            entry.device,
            entry.mountpoint,
            target,
        )

        header = SnapshotHeader(
            host=self.hostname,
            timestamp=ts.strftime("%Y-%m-%d %H:%M:%S"),
            device=entry.device,
            mountpoint=entry.mountpoint,
            command=find_command(entry.mountpoint),
        )

        # Fixed temp name: the repo may live on the mount being walked, and a
        # random name would show up as a new entry on every run.
        tmp_path: Path | None = target.with_name(f".{target.name}.partial")
        try:
            with open(tmp_path, "w", encoding="utf-8", errors="surrogateescape", newline="\n") as f:
                try:
                    f.write("\n".join(header.to_lines()) + "\n")
                    f.flush()
                except OSError as e:
                    raise WalkError(entry.mountpoint, f"failed to write snapshot header to {target}: {e}") from e

                try:
                    for rec in self._records(entry.mountpoint, errors):
                        f.write(rec.to_line() + "\n")
                        count += 1
                except _WalkTimeout:
                    timed_out = True
                    errors.append(f"walk timed out after {self.timeout_s}s; output is incomplete")
                except OSError as e:
                    errors.append(f"write failed after {count} records: {e}")

                if self.status_trailer:
                    f.write(self._trailer(errors) + "\n")
                os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, target)
            tmp_path = None
        except WalkError as e:
            return self._failed(ts, entry, target, str(e))
        except OSError as e:
            return self._failed(ts, entry, target, f"failed to write snapshot {target}: {e}")
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        status = STATUS_OK if not errors else STATUS_PARTIAL
        if errors:
            LOGGER.error(
                "ERROR: walk of mountpoint %s (device %s) hit %d error(s). Output may be incomplete: %s",
                entry.mountpoint,
                entry.device,
                len(errors),
                target,
            )
            for err in errors:
                LOGGER.debug("walk error: %s", err)
        LOGGER.info("Wrote %d records for %s -> %s", count, entry.mountpoint, target)

        data = WalkData(entry=entry, path=target, records_written=count, errors=errors, timed_out=timed_out)
        return CollectorResult(ts=ts, status=status, warning_count=len(errors), warnings=list(errors), data=data)

    def walk_all(self, entries: list[MountEntry], outdir: Path, workers: int = 1) -> list[CollectorResult[WalkData]]:
        """Walk every entry; results come back in entry order."""
        if workers <= 1 or len(entries) <= 1:
            return [self.walk(e, outdir) for e in entries]

        results: list[CollectorResult[WalkData]] = []
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = [(e, ex.submit(self.walk, e, outdir)) for e in entries]
            for e, fut in futures:
                try:
                    results.append(fut.result())
                except Exception as exc:  # noqa: BLE001
                    target = Path(outdir) / snapshot_filename(e.device, e.mountpoint)
                    results.append(self._failed(datetime.now(), e, target, f"walk crashed: {exc}"))
        return results

    def _records(self, root: str, errors: list[str]) -> Iterator[SnapshotRecord]:
        deadline = None if self.timeout_s is None else self._clock() + self.timeout_s

        try:
            root_st = self._lstat(root)
        except OSError as e:
            errors.append(f"{root}: {e.strerror or e}")
            return
        yield record_from_stat(root, root_st)
        if not stat.S_ISDIR(root_st.st_mode):
            return

        root_dev = root_st.st_dev
        stack: list[Iterator[str]] = [iter(self._children(root, errors))]
        while stack:
            path = next(stack[-1], None)
            if path is None:
                stack.pop()
                continue
            if deadline is not None and self._clock() > deadline:
                raise _WalkTimeout()
            try:
                st = self._lstat(path)
            except OSError as e:
                errors.append(f"{path}: {e.strerror or e}")
                continue
            yield record_from_stat(path, st)
            if stat.S_ISDIR(st.st_mode):
                if st.st_dev != root_dev:
                    LOGGER.debug("not crossing into other filesystem: %s", path)
                    continue
                stack.append(iter(self._children(path, errors)))

    def _children(self, directory: str, errors: list[str]) -> list[str]:
        try:
            names = self._listdir(directory)
        except OSError as e:
            errors.append(f"{directory}: {e.strerror or e}")
            return []
        return [os.path.join(directory, n) for n in sorted(names)]

    def _trailer(self, errors: list[str]) -> str:
        if not errors:
            return "STATUS: complete"
        return f"STATUS: partial ({len(errors)} errors)"

    def _failed(self, ts: datetime, entry: MountEntry, target: Path, message: str) -> CollectorResult[WalkData]:
        LOGGER.error("ERROR: %s", message)
        data = WalkData(entry=entry, path=target, records_written=0, errors=[message])
        return CollectorResult(ts=ts, status=STATUS_FAILED, warning_count=1, warnings=[message], data=data)


__all__ = ["InventoryCollector", "record_from_stat", "epoch_string", "type_char", "find_command"]
