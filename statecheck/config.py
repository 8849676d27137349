"""
Verifier Configuration Module

Centralized configuration for the replica consistency verifier using Pydantic Settings.
Supports environment variables, .env files, and runtime (CLI) overrides.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError

from statecheck.domain.exceptions import ConfigurationError
from statecheck.domain.models import ReplicaTarget


class Settings(BaseSettings):
    """Verifier-wide configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="STATECHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cluster layout
    base_directory: Path = Field(
        default=Path("../rocksDB-raft"),
        description="Directory holding one sub-directory per replica",
    )
    replica_ids: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["8775", "8776", "8777", "8778", "8779"],
        description="Replica identifiers (ports, host names or labels)",
    )
    state_machine_dirname: str = "stateMachine"

    # Verification
    open_timeout_seconds: float | None = Field(
        default=30.0,
        description="Upper bound on opening one store; 0 or None disables it",
    )
    baseline_replica: str | None = Field(
        default=None,
        description="Replica to diff the others against (default: first collected)",
    )
    max_workers: int | None = Field(default=None, ge=1)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_records: bool = Field(
        default=True,
        description="Emit one log record per key read",
    )

    # Report
    report_format: Literal["text", "json", "csv"] = "text"
    report_path: Path | None = None

    @field_validator("replica_ids", mode="before")
    @classmethod
    def _normalize_replica_ids(cls, value: Any) -> Any:
        """Accept JSON lists, comma separated strings and integer ports."""
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                value = json.loads(text)
            else:
                value = [part for part in text.split(",") if part.strip()]
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value]
        return value

    @field_validator("open_timeout_seconds", mode="before")
    @classmethod
    def _normalize_timeout(cls, value: Any) -> Any:
        if value in (0, "0", "0.0", ""):
            return None
        return value

    @field_validator("open_timeout_seconds")
    @classmethod
    def _check_timeout(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("open timeout must not be negative")
        return value

    @model_validator(mode="after")
    def _check_replicas(self) -> "Settings":
        if not self.replica_ids:
            raise ValueError("at least one replica id is required")

        seen: set[str] = set()
        duplicates: list[str] = []
        for replica_id in self.replica_ids:
            if replica_id in seen:
                duplicates.append(replica_id)
            seen.add(replica_id)
        if duplicates:
            raise ValueError(f"duplicate replica ids: {', '.join(duplicates)}")

        if self.baseline_replica is not None and self.baseline_replica not in self.replica_ids:
            raise ValueError(
                f"baseline replica {self.baseline_replica!r} is not one of the configured replicas"
            )
        return self

    def replica_path(self, replica_id: str) -> Path:
        """Store directory for one replica: <base>/<replica>/<stateMachine>."""
        return self.base_directory / str(replica_id) / self.state_machine_dirname

    def replica_targets(self) -> list[ReplicaTarget]:
        """Ordered (replica id, store path) pairs to verify."""
        return [
            ReplicaTarget(replica_id=replica_id, path=self.replica_path(replica_id))
            for replica_id in self.replica_ids
        ]


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings with explicit overrides on top of environment values.

    Args:
        **overrides: Field values taking precedence over env and .env;
            None values are ignored

    Returns:
        Settings: Validated settings

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(
            message=f"Invalid configuration: {first.get('msg', str(e))}",
            field=field,
            cause=e,
        ) from e
    except SettingsError as e:
        raise ConfigurationError(
            message=f"Invalid configuration: {e}",
            cause=e,
        ) from e


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Verifier settings singleton
    """
    return load_settings()
