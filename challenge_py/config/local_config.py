"""Per-directory settings (.challenge_py.local)."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


FILE_NAME = ".challenge_py.local"


@dataclass
class LocalConfig:
    """
    Defaults for the project directory: the challenge worked on and the
    language new files start in.
    """

    challenge: str = ""
    default_language: str = "python"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> Optional["LocalConfig"]:
        """
        Load local config from file.
        Without a path, the nearest file in the working directory or its parents is used.
        """
        if path is None:
            path = cls.find_config()

        if path is None or not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError):
            return None
        if not isinstance(data, dict):
            return None
        return cls(
            challenge=str(data.get("challenge") or ""),
            default_language=data.get("default_language") or "python",
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Save local config, by default into the working directory."""
        if path is None:
            path = Path.cwd() / FILE_NAME

        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                {"challenge": self.challenge, "default_language": self.default_language},
                f,
                indent=2,
                ensure_ascii=False,
            )

    @staticmethod
    def find_config() -> Optional[Path]:
        """Walk up from the working directory looking for a local config file."""
        cwd = Path.cwd()
        for directory in (cwd, *cwd.parents):
            candidate = directory / FILE_NAME
            if candidate.exists():
                return candidate
        return None
