from __future__ import annotations

from datetime import datetime

from partition_snapshot.models.run import RunSummary


class ReportService:
    """Plain-text run report, written to the debug log at the end of a run."""

    def build_report(self, summary: RunSummary, *, now: datetime | None = None) -> str:
        ts = (now or datetime.now()).strftime("%F %T")
        lines: list[str] = [f"Partition Snapshot Report @ {ts}", ""]
        lines.append(self._section_identity(summary))
        lines.append(self._section_walks(summary))
        lines.append(self._section_publish(summary))
        if summary.warnings or summary.errors:
            lines.append(self._section_problems(summary))
        return "\n".join(lines).strip() + "\n"

    def _section_identity(self, s: RunSummary) -> str:
        if s.identity is None:
            return "[Identity]\n- no data\n"
        return (
            "[Identity]\n"
            f"- host_folder: {s.host_folder}\n"
            f"- instance_id: {s.identity.value} ({s.identity.state.value})\n"
        )

    def _section_walks(self, s: RunSummary) -> str:
        if not s.walks and not s.skipped:
            return "[Mounts]\n- none scanned\n"
        rows = "\n".join(
            [
                f"  - {w.data.entry.mountpoint} ({w.data.entry.device}): {w.status}, "
                f"records={w.data.records_written}, errors={w.warning_count}"
                for w in s.walks
            ]
        )
        return (
            "[Mounts]\n"
            f"- scanned: {s.scanned}\n"
            f"- skipped: {len(s.skipped)}\n"
            f"- results:\n{rows or '  - (none)'}\n"
        )

    def _section_publish(self, s: RunSummary) -> str:
        p = s.publish
        if p is None:
            return "[Publish]\n- not completed\n"
        return (
            "[Publish]\n"
            f"- committed: {p.committed}\n"
            f"- pushed: {p.pushed}\n"
            f"- message: {p.message or '(no changes)'}\n"
        )

    def _section_problems(self, s: RunSummary) -> str:
        out = ["[Problems]"]
        out.extend(f"- warning: {w}" for w in s.warnings)
        out.extend(f"- error: {e}" for e in s.errors)
        return "\n".join(out) + "\n"
