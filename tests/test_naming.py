import itertools

import pytest

from partition_snapshot.naming import host_folder_name, sanitize, snapshot_filename

SAMPLES = ["/dev/sda1", "/data-01", "/", "a b.c"]


def test_sanitize_sample_outputs():
    assert sanitize("/dev/sda1") == "sda1"
    assert sanitize("/data-01") == "_data_01"
    assert sanitize("/") == "_"
    assert sanitize("a b.c") == "a_b_c"


@pytest.mark.parametrize("value", SAMPLES + ["/dev/mapper/vg0-root", "", "host.example.com"])
def test_sanitize_is_idempotent_and_separator_free(value):
    once = sanitize(value)
    assert sanitize(once) == once
    assert sanitize(value) == once
    for ch in "/-. ":
        assert ch not in once


def test_sanitize_only_strips_leading_dev_prefix():
    assert sanitize("/mnt/dev/x") == "_mnt_dev_x"
    assert sanitize("dev/sda") == "dev_sda"


def test_snapshot_filenames_do_not_collide_for_realistic_mounts():
    devices = ["/dev/sda1", "/dev/sda2", "/dev/nvme0n1p1", "/dev/mapper/vg0-root", "/dev/md0"]
    mountpoints = ["/", "/boot", "/boot/efi", "/data-01", "/data/01", "/home", "/var"]
    # /data-01 and /data/01 collide on their own; the device half keeps real tables apart.
    table = [("/dev/sda1", "/"), ("/dev/sda2", "/data-01"), ("/dev/md0", "/data/01"), ("/dev/nvme0n1p1", "/boot/efi")]
    names = [snapshot_filename(d, m) for d, m in table]
    assert len(set(names)) == len(names)

    all_names = {snapshot_filename(d, m) for d, m in itertools.product(devices, mountpoints)}
    assert len(all_names) == len(devices) * len(mountpoints) - len(devices)


def test_snapshot_filename_format():
    assert snapshot_filename("/dev/sda1", "/") == "sda1___.find.txt"
    assert snapshot_filename("/dev/sdb1", "/srv/data") == "sdb1___srv_data.find.txt"


def test_host_folder_name():
    assert host_folder_name("web-01.example", "00042") == "web_01_example-00042"
