from __future__ import annotations

import logging
import shutil
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Callable

from partition_snapshot.errors import CommitError, FatalSetupError, PushError, StageError
from partition_snapshot.models.run import PublishResult

LOGGER = logging.getLogger(__name__)

COMMIT_PREFIX = "Partition snapshot"
COMMIT_DATE_FORMAT = "%d-%b-%Y %H:%M"
GIT_TIMEOUT_S = 600


def commit_message(hostname: str, when: datetime) -> str:
    return f"{COMMIT_PREFIX}: {hostname} {when.strftime(COMMIT_DATE_FORMAT)}"


def require_git() -> str:
    exe = shutil.which("git")
    if exe is None:
        raise FatalSetupError("git is required")
    return exe


class PublishService:
    """Stage everything, commit only when the index differs from HEAD, then push."""

    def __init__(
        self,
        repo: Path,
        hostname: str,
        remote: str = "origin",
        branch: str = "main",
        push: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.repo = Path(repo)
        self.hostname = hostname
        self.remote = remote
        self.branch = branch
        self.push = push
        self._clock = clock

    def _git(self, *args: str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            ["git", *args],
            cwd=self.repo,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_S,
        )

    def verify_repo(self) -> None:
        require_git()
        if not self.repo.is_dir():
            raise FatalSetupError(f"--repo does not exist or is not a directory: {self.repo}")
        try:
            res = self._git("rev-parse", "--is-inside-work-tree")
        except (OSError, subprocess.SubprocessError) as e:
            raise FatalSetupError(f"cannot run git in {self.repo}: {e}") from e
        if res.returncode != 0 or res.stdout.strip() != "true":
            raise FatalSetupError(f"--repo is not a git repo: {self.repo}")

    def has_staged_changes(self) -> bool:
        res = self._git("diff", "--cached", "--quiet")
        if res.returncode == 0:
            return False
        if res.returncode == 1:
            return True
        raise StageError(f"git diff --cached failed in repo {self.repo}: {res.stderr.strip()}")

    def local_ahead(self) -> bool:
        """True when HEAD has commits the remote-tracking branch does not know about."""
        try:
            res = self._git("rev-list", "--count", f"{self.remote}/{self.branch}..HEAD")
        except (OSError, subprocess.SubprocessError):
            return True
        if res.returncode != 0:
            # No tracking ref yet: nothing of ours has reached the remote.
            return True
        return int(res.stdout.strip() or 0) > 0

    def publish(self) -> PublishResult:
        self.verify_repo()

        try:
            res = self._git("add", "-A")
        except (OSError, subprocess.SubprocessError) as e:
            raise StageError(f"git add failed in repo {self.repo}: {e}") from e
        if res.returncode != 0:
            raise StageError(f"git add failed in repo {self.repo}: {res.stderr.strip()}")

        try:
            changed = self.has_staged_changes()
        except (OSError, subprocess.SubprocessError) as e:
            raise StageError(f"git diff --cached failed in repo {self.repo}: {e}") from e
        if not changed:
            LOGGER.info("No changes to commit.")
            return PublishResult(committed=False, pushed=False)

        msg = commit_message(self.hostname, self._clock())
        try:
            res = self._git("commit", "-m", msg)
        except (OSError, subprocess.SubprocessError) as e:
            raise CommitError(f"git commit failed: {msg}: {e}") from e
        if res.returncode != 0:
            raise CommitError(f"git commit failed: {msg}: {(res.stderr or res.stdout).strip()}")
        LOGGER.info("Committed changes: %s", msg)

        if not self.push:
            LOGGER.info("Push disabled; commit stays local.")
            return PublishResult(committed=True, pushed=False, message=msg)

        try:
            res = self._git("push", "-u", self.remote, self.branch)
        except (OSError, subprocess.SubprocessError) as e:
            raise PushError(
                f"git push failed ({self.remote} {self.branch}) in repo {self.repo}: {e}",
                commit_message=msg,
                local_ahead=self.local_ahead(),
            ) from e
        if res.returncode != 0:
            raise PushError(
                f"git push failed ({self.remote} {self.branch}) in repo {self.repo}: {res.stderr.strip()}",
                commit_message=msg,
                local_ahead=self.local_ahead(),
            )
        LOGGER.info("Pushed to %s %s with -u.", self.remote, self.branch)
        return PublishResult(committed=True, pushed=True, message=msg)


__all__ = ["PublishService", "commit_message", "require_git"]
