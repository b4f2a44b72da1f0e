from __future__ import annotations

import os
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_WORKFLOWS,
)


class AgentConfig(BaseModel):
    """Generation agent settings."""

    model: Optional[str] = None
    instructions: Optional[str] = None
    name: Optional[str] = None


class PollingConfig(BaseModel):
    """Client polling settings."""

    interval: float = DEFAULT_POLL_INTERVAL
    max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS


class StagegateConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    workflows: List[str] = Field(default_factory=lambda: list(DEFAULT_WORKFLOWS))
    agent: AgentConfig = AgentConfig()
    polling: PollingConfig = PollingConfig()


def load_config(path: Optional[str] = None) -> StagegateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STAGEGATE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("STAGEGATE_CONFIG", DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StagegateConfig(**data)
    else:
        config = StagegateConfig()

    env_db_url = os.getenv("STAGEGATE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
