from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="KTSRUN_", case_sensitive=False)

    interpreter: str = "kotlinc"
    interpreter_args: list[str] = Field(default_factory=lambda: ["-script"])
    script_prefix: str = "kotlin_script_"
    script_suffix: str = ".kts"
    temp_dir: Path | None = None
    encoding: str = "utf-8"
    locale: str = "en_US.UTF-8"
    entry_point: str = "main"

    max_output_lines: int = Field(default=10_000, ge=1)
    max_script_bytes: int = Field(default=1_000_000, ge=1)
    # None disables the deadline.
    run_timeout_s: float | None = Field(default=300.0, gt=0)

    log_level: str = "info"
    log_format: str = "json"
    # None falls back to the platform log directory.
    log_dir: Path | None = None


@lru_cache
def get_runtime_config() -> RuntimeConfig:
    return RuntimeConfig()
