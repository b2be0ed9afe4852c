from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from partition_snapshot.models.common import STATUS_OK, CollectorResult
from partition_snapshot.models.identity import InstanceIdentity
from partition_snapshot.models.snapshot import WalkData

EXIT_OK = 0
EXIT_PUBLISH_FAILED = 1
EXIT_FATAL = 2


@dataclass(frozen=True)
class PublishResult:
    committed: bool
    pushed: bool
    message: str | None = None


@dataclass
class RunSummary:
    host_folder: str = ""
    outdir: Path | None = None
    identity: InstanceIdentity | None = None
    walks: list[CollectorResult[WalkData]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    publish: PublishResult | None = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    exit_code: int = EXIT_OK

    @property
    def scanned(self) -> int:
        return len(self.walks)

    @property
    def failed_walks(self) -> list[CollectorResult[WalkData]]:
        return [w for w in self.walks if w.status != STATUS_OK]
