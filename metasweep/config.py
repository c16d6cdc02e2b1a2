from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_INPUT_BYTES = 256 * 1024 * 1024


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or .env files."""

    model_config = SettingsConfigDict(env_file=(".env", ".env.local"), env_prefix="METASWEEP_")

    log_dir: Path | None = None
    max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES
    default_policy: Literal["aggressive", "safe"] = "aggressive"
    pdf_strip_mode: Literal["keys", "wipe"] = "keys"
    output_suffix: str = ".cleaned"

    @field_validator("log_dir", mode="after")
    @classmethod
    def ensure_directory(cls, value: Path | None) -> Path | None:
        if value is not None:
            value.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("max_input_bytes")
    @classmethod
    def validate_limit(cls, value: int) -> int:
        if value <= 0:
            msg = "max_input_bytes must be positive"
            raise ValueError(msg)
        return value

    @field_validator("output_suffix")
    @classmethod
    def validate_suffix(cls, value: str) -> str:
        if not value.startswith(".") or len(value) < 2:
            msg = "output_suffix must start with a dot"
            raise ValueError(msg)
        return value


settings = Settings()


__all__ = ["DEFAULT_MAX_INPUT_BYTES", "Settings", "settings"]
