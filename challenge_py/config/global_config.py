"""Global configuration management (~/.challenge_py.global)."""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_PATH = Path.home() / ".challenge_py.global"

# Environment variable -> field name. Environment wins over the file.
ENV_OVERRIDES = {
    "CHALLENGE_BASE_URL": "base_url",
    "CHALLENGE_FIREBASE_API_KEY": "firebase_api_key",
    "CHALLENGE_RECAPTCHA_TOKEN": "recaptcha_token",
    "CHALLENGE_COUNTRY_CODE": "country_code",
    "CHALLENGE_REQUEST_TIMEOUT": "request_timeout",
}


@dataclass
class GlobalConfig:
    """
    Global configuration storing the API endpoint and phone-auth settings.
    Stored at ~/.challenge_py.global
    """

    base_url: str = "http://localhost:8000"
    firebase_api_key: str = ""
    recaptcha_token: str = ""
    country_code: str = "+91"
    request_timeout: float = 30.0
    phone: str = ""

    @classmethod
    def load(cls, path: Optional[Path] = None, use_env: bool = True) -> "GlobalConfig":
        """Load global config from file, then apply environment overrides."""
        if path is None:
            path = DEFAULT_PATH

        config = cls()
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise TypeError("config must be a JSON object")
                known = {f.name for f in fields(cls)}
                config = cls(**{k: v for k, v in data.items() if k in known})
            except (json.JSONDecodeError, IOError, TypeError):
                config = cls()

        if use_env:
            load_dotenv()
            config.apply_env()
        return config

    def apply_env(self) -> None:
        """Override fields from CHALLENGE_* environment variables."""
        for env_name, field_name in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if not value:
                continue
            if field_name == "request_timeout":
                try:
                    self.request_timeout = float(value)
                except ValueError:
                    continue
            else:
                setattr(self, field_name, value.strip())

    def save(self, path: Optional[Path] = None) -> None:
        """Save global config to file."""
        if path is None:
            path = DEFAULT_PATH

        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    def has_phone_auth(self) -> bool:
        """Check if phone verification is configured."""
        return bool(self.firebase_api_key)
