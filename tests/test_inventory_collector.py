import os
import stat
from types import SimpleNamespace

from partition_snapshot.collectors.inventory_collector import (
    InventoryCollector,
    epoch_string,
    record_from_stat,
    type_char,
)
from partition_snapshot.models.common import STATUS_FAILED, STATUS_OK, STATUS_PARTIAL
from partition_snapshot.models.mounts import MountEntry
from partition_snapshot.models.snapshot import SEPARATOR_LINE
from partition_snapshot.naming import snapshot_filename

HEADER_LINES = 6


def _fake_dev(st, dev):
    return SimpleNamespace(
        st_ino=st.st_ino,
        st_size=st.st_size,
        st_uid=st.st_uid,
        st_gid=st.st_gid,
        st_mode=st.st_mode,
        st_mtime_ns=st.st_mtime_ns,
        st_ctime_ns=st.st_ctime_ns,
        st_dev=dev,
    )


def _body(path):
    lines = path.read_text().splitlines()
    return lines[:HEADER_LINES], lines[HEADER_LINES:]


def _make_tree(root):
    (root / "b").mkdir(parents=True)
    (root / "b" / "inner.txt").write_text("inner")
    (root / "b" / "deeper").mkdir()
    (root / "b" / "deeper" / "x").write_text("x")
    (root / "a.txt").write_text("hello")
    (root / "c").mkdir()
    (root / "c" / "z.txt").write_text("zz")
    os.symlink("a.txt", root / "link")


def test_walk_writes_header_and_records(tmp_path):
    mnt = tmp_path / "mnt"
    _make_tree(mnt)
    out = tmp_path / "out"
    out.mkdir()
    entry = MountEntry("/dev/sdb1", str(mnt), "ext4")

    result = InventoryCollector(hostname="host1").walk(entry, out)

    assert result.status == STATUS_OK
    assert result.data.path == out / snapshot_filename("/dev/sdb1", str(mnt))
    header, body = _body(result.data.path)
    assert header[0] == "HOST: host1"
    assert header[1].startswith("TIMESTAMP: ")
    assert header[2] == "DEVICE: /dev/sdb1"
    assert header[3] == f"MOUNTPOINT: {mnt}"
    assert header[4].startswith(f'CMD: find "{mnt}" -xdev -printf ')
    assert header[5] == SEPARATOR_LINE

    paths = [line.split("|")[1] for line in body]
    assert paths == [
        str(mnt),
        str(mnt / "a.txt"),
        str(mnt / "b"),
        str(mnt / "b" / "deeper"),
        str(mnt / "b" / "deeper" / "x"),
        str(mnt / "b" / "inner.txt"),
        str(mnt / "c"),
        str(mnt / "c" / "z.txt"),
        str(mnt / "link"),
    ]
    assert result.data.records_written == len(body)
    types = {line.split("|")[1]: line.split("|")[8] for line in body}
    assert types[str(mnt)] == "d"
    assert types[str(mnt / "a.txt")] == "f"
    assert types[str(mnt / "link")] == "l"


def test_record_fields_match_lstat(tmp_path):
    f = tmp_path / "file.bin"
    f.write_bytes(b"12345")
    os.chmod(f, 0o640)
    st = os.lstat(f)
    fields = record_from_stat(str(f), st).to_line().split("|")
    assert fields[0] == str(st.st_ino)
    assert fields[1] == str(f)
    assert fields[2] == "5"
    assert fields[3] == str(st.st_uid)
    assert fields[4] == str(st.st_gid)
    assert fields[5] == "640"
    assert fields[6] == epoch_string(st.st_mtime_ns)
    assert fields[7] == epoch_string(st.st_ctime_ns)
    assert fields[8] == "f"


def test_epoch_string_matches_find_precision():
    assert epoch_string(1736522700_123456789) == "1736522700.1234567890"
    assert epoch_string(5) == "0.0000000050"


def test_type_char_covers_special_nodes():
    assert type_char(stat.S_IFIFO | 0o644) == "p"
    assert type_char(stat.S_IFSOCK | 0o644) == "s"
    assert type_char(stat.S_IFCHR | 0o644) == "c"
    assert type_char(stat.S_IFBLK | 0o644) == "b"


def test_walk_does_not_descend_into_nested_mount(tmp_path):
    mnt = tmp_path / "mnt" / "a"
    _make_tree(mnt)
    nested = mnt / "b"
    out = tmp_path / "out"
    out.mkdir()
    real_dev = os.lstat(mnt).st_dev

    def lstat(path):
        st = os.lstat(path)
        if path == str(nested) or path.startswith(str(nested) + os.sep):
            return _fake_dev(st, real_dev + 1)
        return st

    result = InventoryCollector(hostname="h", lstat=lstat).walk(MountEntry("/dev/sdc1", str(mnt)), out)
    _, body = _body(result.data.path)
    paths = [line.split("|")[1] for line in body]

    assert result.status == STATUS_OK
    assert str(nested) in paths
    assert not [p for p in paths if p.startswith(str(nested) + os.sep)]
    assert str(mnt / "c" / "z.txt") in paths


def test_walk_is_deterministic(tmp_path):
    mnt = tmp_path / "mnt"
    _make_tree(mnt)
    out = tmp_path / "out"
    out.mkdir()
    walker = InventoryCollector(hostname="h")
    entry = MountEntry("/dev/sdb1", str(mnt))
    first = _body(walker.walk(entry, out).data.path)[1]
    second = _body(walker.walk(entry, out).data.path)[1]
    assert first == second


def test_unreadable_subtree_gives_partial_result(tmp_path):
    mnt = tmp_path / "mnt"
    _make_tree(mnt)
    out = tmp_path / "out"
    out.mkdir()
    locked = str(mnt / "b")

    def listdir(path):
        if path == locked:
            raise PermissionError(13, "Permission denied", path)
        return os.listdir(path)

    result = InventoryCollector(hostname="h", listdir=listdir).walk(MountEntry("/dev/sdb1", str(mnt)), out)

    assert result.status == STATUS_PARTIAL
    assert result.warning_count == 1
    assert "Permission denied" in result.warnings[0]
    _, body = _body(result.data.path)
    paths = [line.split("|")[1] for line in body]
    assert locked in paths
    assert str(mnt / "b" / "inner.txt") not in paths
    assert str(mnt / "c" / "z.txt") in paths


def test_timeout_keeps_records_already_written(tmp_path):
    mnt = tmp_path / "mnt"
    _make_tree(mnt)
    out = tmp_path / "out"
    out.mkdir()
    ticks = iter([0.0, 0.0, 0.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0])

    walker = InventoryCollector(hostname="h", timeout_s=10, clock=lambda: next(ticks), status_trailer=True)
    result = walker.walk(MountEntry("/dev/sdb1", str(mnt)), out)

    assert result.status == STATUS_PARTIAL
    assert result.data.timed_out
    _, body = _body(result.data.path)
    assert body[-1] == "STATUS: partial (1 errors)"
    assert len(body) - 1 == result.data.records_written == 3


def test_status_trailer_on_complete_walk(tmp_path):
    mnt = tmp_path / "mnt"
    mnt.mkdir()
    out = tmp_path / "out"
    out.mkdir()
    result = InventoryCollector(hostname="h", status_trailer=True).walk(MountEntry("/dev/sdb1", str(mnt)), out)
    _, body = _body(result.data.path)
    assert body[-1] == "STATUS: complete"


def test_header_failure_fails_only_that_mount_and_keeps_previous_snapshot(tmp_path):
    mnt = tmp_path / "mnt"
    mnt.mkdir()
    out = tmp_path / "out"
    out.mkdir()
    walker = InventoryCollector(hostname="h")
    entry = MountEntry("/dev/sdb1", str(mnt))
    previous = walker.walk(entry, out).data.path
    before = previous.read_text()

    missing = tmp_path / "missing"
    result = walker.walk(entry, missing)
    assert result.status == STATUS_FAILED
    assert previous.read_text() == before


def test_walk_all_returns_results_in_entry_order(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    entries = []
    for name in ("one", "two", "three"):
        d = tmp_path / name
        d.mkdir()
        (d / "f").write_text(name)
        entries.append(MountEntry(f"/dev/sd{name}", str(d)))

    results = InventoryCollector(hostname="h").walk_all(entries, out, workers=3)
    assert [r.data.entry for r in results] == entries
    assert all(r.status == STATUS_OK for r in results)
    assert len(list(out.glob("*.find.txt"))) == 3
    assert not list(out.glob(".*.partial"))
