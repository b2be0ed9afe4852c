from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IdentityState(str, Enum):
    PERSISTED = "PERSISTED"
    TRANSIENT = "TRANSIENT"


@dataclass(frozen=True)
class InstanceIdentity:
    value: str
    state: IdentityState
    source: str
    warning: str | None = None

    @property
    def persisted(self) -> bool:
        return self.state is IdentityState.PERSISTED
