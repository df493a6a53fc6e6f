"""Central configuration loaded from environment variables and YAML files."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"


class HashAlgorithm(StrEnum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TWOFA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Global toggles
    enable_totp: bool = True
    allow_user_enrollment: bool = True

    # Shown in authenticator apps
    totp_issuer: str = "Jellyfin"

    # TOTP parameters
    secret_bytes: int = Field(default=20, gt=0)
    digits: int = Field(default=6, ge=6, le=8)
    period_seconds: int = Field(default=30, gt=0)
    drift_steps: int = Field(default=1, ge=0)
    algorithm: HashAlgorithm = HashAlgorithm.SHA1

    # Storage
    plugin_name: str = "Jellyfin.Plugin.2FA"
    config_dir: Path = Field(default_factory=lambda: CONFIG_DIR)

    @field_validator("totp_issuer")
    @classmethod
    def _issuer_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("totp_issuer must not be blank")
        return value

    @property
    def store_path(self) -> Path:
        """Location of the per-account enrollment document."""
        return self.config_dir / self.plugin_name / "users.json"


def load_settings_file(path: Path | str) -> Settings:
    """Build Settings from a YAML file of overrides on top of the environment."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    with open(path) as f:
        overrides: dict[str, Any] = yaml.safe_load(f) or {}
    return Settings(**overrides)


settings = Settings()
