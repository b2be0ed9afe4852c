from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class ConfigPaths:
    path: Path


class ConfigService:
    def __init__(self, paths: ConfigPaths | None = None) -> None:
        self.paths = paths or ConfigPaths(path=self.default_path())

    @staticmethod
    def default_path() -> Path:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            base = Path(xdg)
        else:
            base = Path.home() / ".config"
        return base / "partition_snapshot" / "config.json"

    def load(self, *, required: bool = False) -> dict[str, Any]:
        """Read the JSON config file.

        A missing default file is simply empty. A file named explicitly with
        ``required=True`` must exist and hold a JSON object.
        """
        p = self.paths.path
        if not p.exists():
            if required:
                raise ValueError(f"config file not found: {p}")
            return {}
        try:
            with open(p, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"cannot read config file {p}: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError(f"config file must hold a JSON object: {p}")
        return obj
