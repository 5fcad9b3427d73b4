"""Configuration schema using Pydantic.

Single data model and defaults for the bridge, persisted to ~/.studiobridge/config.json.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class BridgeConfig(BaseModel):
    """Bridge server and command execution settings."""
    host: str = "127.0.0.1"
    port: int = Field(default=8081, ge=1, le=65535)
    # Consecutive ports tried after ``port`` when it is taken.
    port_fallback_attempts: int = Field(default=10, ge=0)
    timeout_ms: int = Field(default=30_000, gt=0)
    retries: int = Field(default=2, ge=0)
    retry_delay_ms: int = Field(default=1_000, ge=0)
    metrics_capacity: int = Field(default=100, ge=1)
    recent_commands: int = Field(default=10, ge=0)
    # "wait": in-flight calls run to their own deadline when the plugin drops.
    # "fail_fast": they fail as soon as the last ready plugin disconnects.
    disconnect_policy: Literal["wait", "fail_fast"] = "wait"


class LoggingConfig(BaseModel):
    """Log sink configuration."""
    level: str = "INFO"
    file: bool = True  # Also write a rotating file under ~/.studiobridge/logs


class Config(BaseSettings):
    """Root configuration for studiobridge."""
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(
        env_prefix="STUDIOBRIDGE_",
        env_nested_delimiter="__"
    )
