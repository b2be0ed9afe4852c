from __future__ import annotations


class SnapshotError(Exception):
    """Base class for every error raised by a snapshot run."""


class FatalSetupError(SnapshotError):
    """Aborts the run before any snapshot output is written."""


class MountDiscoveryError(FatalSetupError):
    """The mount table could not be read; scanning without it is unsafe."""


class WalkError(SnapshotError):
    def __init__(self, mountpoint: str, message: str) -> None:
        super().__init__(message)
        self.mountpoint = mountpoint


class IdentityPersistError(SnapshotError):
    pass


class IdentityReadError(SnapshotError):
    """The state file exists but could not be read; its stored id must not be replaced."""


class PublishError(SnapshotError):
    pass


class StageError(PublishError):
    pass


class CommitError(PublishError):
    pass


class PushError(PublishError):
    """The commit exists locally but never reached the remote.

    Re-running the whole snapshot would create a second commit instead of
    closing the gap, so callers must surface this state on its own.
    """

    def __init__(self, message: str, *, commit_message: str, local_ahead: bool) -> None:
        super().__init__(message)
        self.commit_message = commit_message
        self.local_ahead = local_ahead


class SelectorEmptyResultWarning(UserWarning):
    pass
