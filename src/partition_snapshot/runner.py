from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path

from partition_snapshot.collectors.inventory_collector import InventoryCollector
from partition_snapshot.collectors.mount_collector import MountCollector, select_mounts
from partition_snapshot.config import SnapshotConfig
from partition_snapshot.errors import (
    FatalSetupError,
    PublishError,
    PushError,
    SelectorEmptyResultWarning,
)
from partition_snapshot.models.run import EXIT_FATAL, EXIT_PUBLISH_FAILED, RunSummary
from partition_snapshot.naming import host_folder_name
from partition_snapshot.services.identity_service import IdentityService
from partition_snapshot.services.lock_service import RunLock
from partition_snapshot.services.mail_service import MailService
from partition_snapshot.services.notify_service import HeartbeatService, NotifyService
from partition_snapshot.services.publish_service import PublishService
from partition_snapshot.services.report_service import ReportService

LOGGER = logging.getLogger(__name__)


class SnapshotRunner:
    """One scheduled run: discover, walk each mount, publish, report.

    Collaborators default to the real implementations built from the config;
    tests pass their own.
    """

    def __init__(
        self,
        config: SnapshotConfig,
        *,
        mounts: MountCollector | None = None,
        walker: InventoryCollector | None = None,
        identity: IdentityService | None = None,
        publisher: PublishService | None = None,
        notifier: NotifyService | None = None,
        mailer: MailService | None = None,
        heartbeat: HeartbeatService | None = None,
        reports: ReportService | None = None,
    ) -> None:
        self.config = config
        self.mounts = mounts or MountCollector(source=config.mount_source)
        self.walker = walker or InventoryCollector(
            hostname=config.hostname,
            timeout_s=config.walk_timeout_s,
            status_trailer=config.status_trailer,
        )
        self.identity = identity or IdentityService(config.state_file)
        self.publisher = publisher or PublishService(
            repo=config.repo,
            hostname=config.hostname,
            remote=config.remote,
            branch=config.branch,
            push=config.push,
        )
        self.notifier = notifier or NotifyService(config.notification_url, config.hostname)
        self.mailer = mailer or MailService(config.email)
        self.heartbeat = heartbeat or HeartbeatService(config.heartbeat_url)
        self.reports = reports or ReportService()

    def run(self) -> RunSummary:
        summary = RunSummary()
        try:
            with RunLock(self.config.lock_path):
                self._run_body(summary)
        except FatalSetupError as e:
            msg = f"ERROR: {e}"
            LOGGER.error(msg)
            self.notifier.notify(msg)
            summary.errors.append(str(e))
            summary.exit_code = EXIT_FATAL
        finally:
            # Heartbeat means "the scheduler ran us", not "the scan succeeded".
            self.heartbeat.ping()
        return summary

    def _run_body(self, summary: RunSummary) -> None:
        cfg = self.config
        LOGGER.info("STARTING === Partition snapshot (find) -> git ===")
        if cfg.invoked_as:
            LOGGER.info("Invoked as: %s", self._invoked_as())
        LOGGER.debug(
            "Config: EMAIL=%s REPO=%s DEBUG=%s LOG=%s SCAN_PATHS=(%s)",
            cfg.email,
            cfg.repo,
            int(cfg.debug),
            cfg.log_path,
            " ".join(cfg.paths),
        )

        self.publisher.verify_repo()

        # Discovery happens before anything is written anywhere.
        entries = self.mounts.discover()
        if not entries:
            raise FatalSetupError("No mounted /dev/* partitions found.")

        ident = self.identity.ensure()
        summary.identity = ident
        if not ident.persisted:
            self._report_warning(ident.warning or "ERROR: Failed to persist INSTANCE_ID.", summary)

        summary.host_folder = host_folder_name(cfg.short_hostname, ident.value)
        outdir = Path(cfg.repo) / summary.host_folder
        try:
            outdir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FatalSetupError(f"cannot create output directory {outdir}: {e}") from e
        summary.outdir = outdir

        selected, skipped = select_mounts(entries, cfg.paths)
        summary.skipped.extend(e.mountpoint for e in skipped)

        runnable = []
        for e in selected:
            if not os.path.isdir(e.mountpoint):
                msg = f"ERROR: mountpoint not a directory: {e.mountpoint} (device {e.device})"
                LOGGER.error(msg)
                self.notifier.notify(msg)
                summary.errors.append(msg)
                summary.skipped.append(e.mountpoint)
                continue
            runnable.append(e)

        summary.walks = self.walker.walk_all(runnable, outdir, workers=cfg.workers)
        for w in summary.failed_walks:
            msg = (
                f"ERROR: walk {w.status.lower()} for mountpoint {w.data.entry.mountpoint} "
                f"(device {w.data.entry.device}). Output may be incomplete: {w.data.path}"
            )
            if w.warnings:
                msg += f"\nFirst error: {w.warnings[0]}"
            summary.errors.append(msg)
            self.notifier.notify(msg)
            self.mailer.send(f"{cfg.hostname}: partition snapshot find FAILED", self._with_log(msg))

        LOGGER.info("Scan complete: scanned=%d skipped=%d", summary.scanned, len(summary.skipped))
        LOGGER.info("Output directory: %s", outdir)

        try:
            summary.publish = self.publisher.publish()
        except PublishError as e:
            self._report_publish_failure(e, summary)
        else:
            if summary.scanned == 0:
                self._report_selector_empty(summary)

        LOGGER.debug("%s", self.reports.build_report(summary))
        LOGGER.info("DONE === Partition snapshot (find) -> git ===")

    def _report_warning(self, msg: str, summary: RunSummary) -> None:
        summary.warnings.append(msg)
        self.notifier.notify(msg)
        self.mailer.send(f"{self.config.hostname}: partition snapshot WARNING", msg)

    def _report_selector_empty(self, summary: RunSummary) -> None:
        warning = SelectorEmptyResultWarning("No mountpoints matched --paths filter; nothing scanned.")
        msg = f"WARNING: {warning}"
        LOGGER.warning(msg)
        summary.warnings.append(msg)
        self.notifier.notify(msg)
        body = msg
        if self.config.invoked_as:
            body += f"\nInvoked as: {self._invoked_as()}"
        self.mailer.send(f"{self.config.hostname}: partition snapshot WARNING", body)

    def _report_publish_failure(self, e: PublishError, summary: RunSummary) -> None:
        cfg = self.config
        if isinstance(e, PushError) and e.local_ahead:
            msg = (
                f"ERROR: {e}. Commit '{e.commit_message}' exists locally but was not pushed; "
                f"local history is ahead of {cfg.remote}/{cfg.branch}. Push manually instead of re-running."
            )
        else:
            msg = f"ERROR: git commit/push failed for repo {cfg.repo}: {e}"
        LOGGER.error(msg)
        summary.errors.append(msg)
        summary.exit_code = EXIT_PUBLISH_FAILED
        self.notifier.notify(msg)
        self.mailer.send(f"{cfg.hostname}: partition snapshot git push FAILED", self._with_log(msg))

    def _with_log(self, msg: str) -> str:
        return f"{msg}\nLog: {self.config.log_path}"

    def _invoked_as(self) -> str:
        return " ".join(shlex.quote(a) for a in self.config.invoked_as)


__all__ = ["SnapshotRunner"]
