from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, field_validator

from .allocation import DEFAULT_BUCKET_COUNT, DEFAULT_SALT
from .registry import DEFAULT_KEY


class IdentitySettings(BaseModel):
    territory: str = "ZA"
    registrant: str = "80G"
    owner_key: Optional[str] = None
    salt: str = DEFAULT_SALT
    bucket_count: int = DEFAULT_BUCKET_COUNT

    @field_validator("territory", mode="before")
    @classmethod
    def _check_territory(cls, value: str) -> str:
        value = str(value).strip().upper()
        if not re.fullmatch(r"[A-Z]{2}", value):
            raise ValueError(f"territory must be two letters, got {value!r}")
        return value

    @field_validator("registrant", mode="before")
    @classmethod
    def _check_registrant(cls, value: str) -> str:
        value = str(value).strip().upper()
        if not re.fullmatch(r"[A-Z0-9]{3}", value):
            raise ValueError(f"registrant must be three letters or digits, got {value!r}")
        return value

    @field_validator("owner_key", mode="before")
    @classmethod
    def _blank_owner(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("bucket_count")
    @classmethod
    def _positive_buckets(cls, value: int) -> int:
        if value < 1:
            raise ValueError("bucket_count must be at least 1")
        return value


class RegistrySettings(BaseModel):
    store_path: Path = Path("./isrc-registry.sqlite3")
    key: str = DEFAULT_KEY

    @field_validator("store_path", mode="before")
    @classmethod
    def _expand_store(cls, value: str | Path) -> Path:
        return Path(value).expanduser().resolve()


class Settings(BaseModel):
    identity: IdentitySettings = IdentitySettings()
    registry: RegistrySettings = RegistrySettings()

    @classmethod
    def load(cls, path: Path) -> "Settings":
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        return cls.model_validate(raw or {})


def find_config(explicit_path: Optional[Path]) -> Optional[Path]:
    """Return the config file to use, or None to run on defaults."""
    if explicit_path:
        if not explicit_path.exists():
            raise FileNotFoundError(f"Config file {explicit_path} does not exist")
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "config.yaml", cwd / "config.yml"):
        if candidate.exists():
            return candidate
    return None
