from __future__ import annotations

import logging
import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_MAX_SUBWORKFLOW_DEPTH,
    DEFAULT_RETRY_BACKOFF_BASE,
    DEFAULT_RETRY_BACKOFF_JITTER,
    DEFAULT_SHELL,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport used to expose debug sessions outside the process."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class ExecutorConfig(BaseModel):
    """Settings consumed by :class:`~stepflow.executor.WorkflowExecutor`."""

    shell: str = DEFAULT_SHELL
    max_subworkflow_depth: int = Field(default=DEFAULT_MAX_SUBWORKFLOW_DEPTH, ge=1)
    retry_backoff_base: float = Field(default=DEFAULT_RETRY_BACKOFF_BASE, ge=0)
    retry_backoff_jitter: float = Field(default=DEFAULT_RETRY_BACKOFF_JITTER, ge=0)
    # Applied to prompt steps without their own timeout. None waits forever.
    prompt_timeout: Optional[float] = Field(default=None, gt=0)


class DebuggerConfig(BaseModel):
    """Settings for debug sessions."""

    # 0 means unbounded subscriber queues.
    event_buffer_size: int = Field(default=0, ge=0)


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    log_level: str = "INFO"
    workflows_dir: Optional[str] = None
    database_url: Optional[str] = None
    executor: ExecutorConfig = ExecutorConfig()
    debugger: DebuggerConfig = DebuggerConfig()
    transport: TransportConfig = TransportConfig()


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to the STEPFLOW_CONFIG
            env variable or 'stepflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_db_url = os.getenv("STEPFLOW_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_transport = os.getenv("STEPFLOW_TRANSPORT")
    if env_transport:
        config.transport.backend = env_transport.lower()
    return config


def setup_logging(config: StepflowConfig) -> None:
    """Configure logging based on settings."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
