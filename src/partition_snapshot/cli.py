from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from partition_snapshot.config import MOUNT_SOURCES, SnapshotConfig, build_config
from partition_snapshot.runner import SnapshotRunner
from partition_snapshot.services.config_service import ConfigPaths, ConfigService
from partition_snapshot.services.log_service import setup_logging

EPILOG = """\
Output format per line (pipe-separated):
  inode|path|size|uid|gid|mode_octal|mtime_epoch|ctime_epoch|type

Scans never descend into other mounted filesystems, and mountpoints
(/, /data, /boot, ...) are scanned rather than raw block devices.

Example cron:
  10 3 * * * partition-snapshot --repo=/srv/tree-repo --email=you@domain.com
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="partition-snapshot",
        description="Partition inventory snapshot -> git commit -> push",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--repo", default=None, help="Existing git repo with a configured remote")
    parser.add_argument("--email", default=None, help="Recipient for failure and warning emails")
    parser.add_argument("--config", default=None, help="JSON config file (default: XDG config dir)")
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")
    parser.add_argument("--verbose", action="store_true", default=None, help="Also log to stderr")
    parser.add_argument("--log", dest="log_path", default=None, help="Log file path")
    parser.add_argument(
        "--paths",
        action="append",
        default=None,
        help="Comma-separated mountpoints to scan (repeatable); default scans all",
    )
    parser.add_argument("--heartbeat-url", dest="heartbeat_url", default=None, help="URL hit after every run")
    parser.add_argument("--notification-url", dest="notification_url", default=None, help="Webhook for alerts")
    parser.add_argument("--state-file", dest="state_file", default=None, help="Where the instance id is kept")
    parser.add_argument("--lock-file", dest="lock_file", default=None, help="Advisory lock for the whole run")
    parser.add_argument("--mount-source", dest="mount_source", choices=MOUNT_SOURCES, default=None, help="Mount table source")
    parser.add_argument("--workers", type=int, default=None, help="Mounts walked in parallel (default 1)")
    parser.add_argument("--walk-timeout", dest="walk_timeout_s", type=float, default=None, help="Seconds per mount walk")
    parser.add_argument(
        "--status-trailer",
        dest="status_trailer",
        action="store_true",
        default=None,
        help="End each snapshot with a STATUS: complete/partial line",
    )
    parser.add_argument("--remote", default=None, help="Git remote to push to (default origin)")
    parser.add_argument("--branch", default=None, help="Branch to push (default main)")
    parser.add_argument("--no-push", dest="push", action="store_false", default=None, help="Commit without pushing")
    parser.add_argument("--hostname", default=None, help="Override the host name used in output")
    return parser


def parse_config(argv: Sequence[str] | None = None) -> SnapshotConfig:
    parser = build_parser()
    args = parser.parse_args(argv)
    overrides = vars(args).copy()
    config_path = overrides.pop("config")

    try:
        if config_path:
            file_values = ConfigService(ConfigPaths(path=Path(config_path).expanduser())).load(required=True)
        else:
            file_values = ConfigService().load()
        overrides["invoked_as"] = [sys.argv[0], *(sys.argv[1:] if argv is None else argv)]
        return build_config(overrides, file_values)
    except ValueError as e:
        parser.error(str(e))


def main(argv: Sequence[str] | None = None) -> int:
    config = parse_config(argv)
    setup_logging(config.log_path, debug=config.debug, verbose=config.verbose)
    summary = SnapshotRunner(config).run()
    if summary.exit_code:
        for err in summary.errors:
            print(err, file=sys.stderr)
    return summary.exit_code


__all__ = ["build_parser", "parse_config", "main"]
