from __future__ import annotations

import json
import logging
import os
import random
import re
import secrets
import tempfile
from pathlib import Path
from typing import Any, Callable

from partition_snapshot.errors import IdentityPersistError, IdentityReadError
from partition_snapshot.models.identity import IdentityState, InstanceIdentity

LOGGER = logging.getLogger(__name__)

INSTANCE_KEY = "instance_id"
ID_SPACE = 100000
_ID_RE = re.compile(r"^\d{5}$")


def _from_secrets() -> int:
    return secrets.randbelow(ID_SPACE)


def _from_urandom() -> int:
    return int.from_bytes(os.urandom(4), "big") % ID_SPACE


def _from_random() -> int:
    return random.randrange(ID_SPACE)


DEFAULT_SOURCES: tuple[Callable[[], int], ...] = (_from_secrets, _from_urandom, _from_random)


def generate_instance_id(sources: tuple[Callable[[], int], ...] = DEFAULT_SOURCES) -> str:
    """Five zero-padded digits from the strongest randomness source that works."""
    for source in sources:
        try:
            value = int(source())
        except (OSError, NotImplementedError, ValueError) as e:
            LOGGER.debug("random source %s unavailable: %s", getattr(source, "__name__", source), e)
            continue
        return f"{value % ID_SPACE:05d}"
    return f"{random.randrange(ID_SPACE):05d}"


def is_valid_instance_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_ID_RE.match(value))


class IdentityService:
    """Keeps the per-host instance id in a small JSON state file.

    The file is read once per run. A missing or malformed value is replaced by
    a freshly generated one, written back atomically (temp file in the same
    directory, then ``os.replace``). When the write fails the run continues
    with a transient id; the next run will generate yet another one. A file
    that exists but cannot be read is never overwritten.
    """

    def __init__(
        self,
        state_file: Path,
        sources: tuple[Callable[[], int], ...] = DEFAULT_SOURCES,
    ) -> None:
        self.state_file = Path(state_file)
        self.sources = sources

    def load(self) -> str | None:
        p = self.state_file
        try:
            with open(p, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            LOGGER.warning("Ignoring corrupt instance state %s: %s", p, e)
            return None
        except OSError as e:
            raise IdentityReadError(f"Cannot read instance state {p}: {e}") from e
        value = obj.get(INSTANCE_KEY) if isinstance(obj, dict) else None
        if value is None:
            return None
        if not is_valid_instance_id(value):
            LOGGER.warning("Ignoring malformed %s=%r in %s", INSTANCE_KEY, value, p)
            return None
        return value

    def save(self, value: str) -> None:
        p = self.state_file
        state = self._read_raw()
        state[INSTANCE_KEY] = value
        payload = json.dumps(state, ensure_ascii=False, indent=2, sort_keys=True) + "\n"

        tmp_path: str | None = None
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=p.parent, prefix=".state_instance_tmp.", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, p)
            tmp_path = None
        except OSError as e:
            raise IdentityPersistError(f"Failed to persist INSTANCE_ID into {p}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    def ensure(self) -> InstanceIdentity:
        try:
            stored = self.load()
        except IdentityReadError as e:
            # The file may still hold the real id; leave it alone.
            value = generate_instance_id(self.sources)
            msg = f"ERROR: {e}. Using transient INSTANCE_ID={value}; state file left untouched."
            LOGGER.warning(msg)
            return InstanceIdentity(
                value=value,
                state=IdentityState.TRANSIENT,
                source="generated",
                warning=msg,
            )
        if stored is not None:
            LOGGER.debug("Using stored INSTANCE_ID=%s from %s", stored, self.state_file)
            return InstanceIdentity(value=stored, state=IdentityState.PERSISTED, source="stored")

        value = generate_instance_id(self.sources)
        LOGGER.info("Initialized INSTANCE_ID=%s (persisting into %s)", value, self.state_file)
        try:
            self.save(value)
        except IdentityPersistError as e:
            msg = f"ERROR: {e}. Ensure the state file location is writable."
            LOGGER.warning(msg)
            return InstanceIdentity(
                value=value,
                state=IdentityState.TRANSIENT,
                source="generated",
                warning=msg,
            )
        return InstanceIdentity(value=value, state=IdentityState.PERSISTED, source="generated")

    def _read_raw(self) -> dict[str, Any]:
        # Other keys in the state file survive a rewrite.
        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        return obj if isinstance(obj, dict) else {}


__all__ = ["IdentityService", "generate_instance_id", "is_valid_instance_id", "INSTANCE_KEY"]
