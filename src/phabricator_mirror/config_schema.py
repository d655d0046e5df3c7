"""Unified configuration schema for phabricator_mirror.

Defines Pydantic models for the YAML config structure, one section per
concern, and an adapter that flattens them into fallback values for the
``Config`` dataclass.

Usage:
    from phabricator_mirror.config_schema import (
        build_config, to_config_fallbacks,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_config_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class PhabricatorConfig(BaseModel):
    """Phabricator connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Phabricator URL")
    api_token: str | None = Field(
        default=None, description="Conduit API token of the mirror account"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    repo_dir_prefix: str = Field(
        default="/var/repo/",
        description="Directory Phabricator stores hosted repositories in",
    )

    model_config = {"frozen": True}


class MirrorSettings(BaseModel):
    """Settings for the mirroring loop."""

    search_dir: str = Field(
        default="/var/repo",
        description="Directory under which to search for git repos",
    )
    sync_to_remote: bool = Field(
        default=False,
        description="Pull from and push to each repository's remote",
    )
    sync_period: int = Field(
        default=30,
        ge=1,
        le=86400,
        description="Seconds between the starts of two passes (1-86400)",
    )
    match_resolved_timestamps: bool = Field(
        default=True,
        description="Require accept/reject comments to share a timestamp "
        "to count as the same comment",
    )
    remote: str = Field(default="origin", description="Git remote name")
    git_timeout: float = Field(
        default=300.0, gt=0, description="Timeout for local git commands"
    )
    remote_timeout: float = Field(
        default=60.0, gt=0, description="Timeout for fetch and push"
    )

    model_config = {"frozen": True}


class DatabaseConfig(BaseModel):
    """How to reach Differential's database.

    Attributes:
        command: mysql client command and connection options.
        timeout: Seconds allowed for each query.
    """

    command: list[str] = Field(default_factory=lambda: ["mysql"])
    timeout: float = Field(default=60.0, gt=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log line format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    phabricator: PhabricatorConfig = Field(
        default_factory=PhabricatorConfig
    )
    mirror: MirrorSettings = Field(default_factory=MirrorSettings)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a value is out of range or of the
            wrong type.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config fallbacks
# ---------------------------------------------------------------------------


def to_config_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into ``load_config()`` fallbacks.

    Keys are ``Config`` field names; unset values are left out so that
    built-in defaults still apply.
    """
    phabricator = unified.phabricator
    mirror = unified.mirror
    fallbacks: dict[str, Any] = {
        "url": phabricator.url,
        "api_token": phabricator.api_token,
        "insecure": phabricator.insecure,
        "repo_dir_prefix": phabricator.repo_dir_prefix,
        "search_dir": mirror.search_dir,
        "sync_to_remote": mirror.sync_to_remote,
        "sync_period": mirror.sync_period,
        "match_resolved_timestamps": mirror.match_resolved_timestamps,
        "remote": mirror.remote,
        "git_timeout": mirror.git_timeout,
        "remote_timeout": mirror.remote_timeout,
        "mysql_command": list(unified.database.command),
        "database_timeout": unified.database.timeout,
    }
    return {k: v for k, v in fallbacks.items() if v is not None}
