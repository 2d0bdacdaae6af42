from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_workers() -> int:
    return os.cpu_count() or 1


class AggregatorSettings(BaseSettings):
    workers: int = Field(default_factory=_default_workers, ge=1)
    parse_timeout_seconds: float = Field(default=120.0, gt=0)
    strict_severity: bool = False
    source_root: Optional[str] = None  # absolute checkout path scanners ran in
    summary_max_findings: int = Field(default=50, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SCANGATE_",
        extra="ignore",
    )


@lru_cache
def get_settings() -> AggregatorSettings:
    return AggregatorSettings()
