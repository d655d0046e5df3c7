"""Tests for phabricator_mirror.config_schema -- Pydantic config models."""

import pytest
from pydantic import ValidationError

from phabricator_mirror.config_schema import (
    DatabaseConfig,
    LoggingConfig,
    MirrorSettings,
    PhabricatorConfig,
    UnifiedConfig,
    build_config,
    to_config_fallbacks,
)

# -------------------------------------------------------------------------
# Section models
# -------------------------------------------------------------------------


class TestUnifiedConfig:
    """Zero-config defaults and immutability."""

    def test_zero_config_is_valid(self):
        cfg = UnifiedConfig()
        assert cfg.phabricator.url is None
        assert cfg.mirror.sync_period == 30
        assert cfg.database.command == ["mysql"]
        assert cfg.logging.level == "INFO"

    def test_frozen(self):
        cfg = UnifiedConfig()
        with pytest.raises(ValidationError):
            cfg.mirror = MirrorSettings()


class TestPhabricatorConfig:
    def test_defaults(self):
        cfg = PhabricatorConfig()
        assert cfg.api_token is None
        assert cfg.insecure is False
        assert cfg.repo_dir_prefix == "/var/repo/"

    def test_frozen(self):
        cfg = PhabricatorConfig(url="https://phabricator.example.com")
        with pytest.raises(ValidationError):
            cfg.url = "https://other.example.com"


class TestMirrorSettings:
    def test_defaults(self):
        cfg = MirrorSettings()
        assert cfg.search_dir == "/var/repo"
        assert cfg.sync_to_remote is False
        assert cfg.match_resolved_timestamps is True
        assert cfg.remote == "origin"

    @pytest.mark.parametrize("period", [1, 30, 86400])
    def test_sync_period_in_range(self, period):
        assert MirrorSettings(sync_period=period).sync_period == period

    @pytest.mark.parametrize("period", [0, -1, 86401])
    def test_sync_period_out_of_range(self, period):
        with pytest.raises(ValidationError):
            MirrorSettings(sync_period=period)

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValidationError):
            MirrorSettings(git_timeout=0)
        with pytest.raises(ValidationError):
            MirrorSettings(remote_timeout=-1)


class TestDatabaseConfig:
    def test_command_list(self):
        cfg = DatabaseConfig(command=["mysql", "--defaults-file=/etc/m.cnf"])
        assert cfg.command[1] == "--defaults-file=/etc/m.cnf"

    def test_default_commands_are_independent(self):
        assert DatabaseConfig().command is not DatabaseConfig().command

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            DatabaseConfig(timeout=0)


class TestLoggingConfig:
    @pytest.mark.parametrize("fmt", ["text", "json"])
    def test_formats(self, fmt):
        assert LoggingConfig(format=fmt).format == fmt

    def test_unknown_format_rejected(self):
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")


# -------------------------------------------------------------------------
# build_config()
# -------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty_dict_gives_defaults(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        cfg = build_config(
            {
                "phabricator": {"url": "https://phabricator.example.com"},
                "mirror": {"sync_period": 60},
            }
        )
        assert cfg.phabricator.url == "https://phabricator.example.com"
        assert cfg.mirror.sync_period == 60
        assert cfg.mirror.search_dir == "/var/repo"
        assert cfg.database == DatabaseConfig()

    def test_invalid_value_raises(self):
        with pytest.raises(ValidationError):
            build_config({"mirror": {"sync_period": "often"}})


# -------------------------------------------------------------------------
# to_config_fallbacks()
# -------------------------------------------------------------------------


class TestToConfigFallbacks:
    def test_unset_connection_values_dropped(self):
        fallbacks = to_config_fallbacks(UnifiedConfig())
        assert "url" not in fallbacks
        assert "api_token" not in fallbacks
        assert fallbacks["sync_period"] == 30
        assert fallbacks["mysql_command"] == ["mysql"]

    def test_flattened_keys(self):
        cfg = build_config(
            {
                "phabricator": {
                    "url": "https://phabricator.example.com",
                    "api_token": "api-yaml",
                    "insecure": True,
                },
                "mirror": {
                    "sync_to_remote": True,
                    "match_resolved_timestamps": False,
                    "remote": "upstream",
                },
                "database": {"command": ["mysql", "-uphab"], "timeout": 5},
            }
        )
        fallbacks = to_config_fallbacks(cfg)

        assert fallbacks["url"] == "https://phabricator.example.com"
        assert fallbacks["api_token"] == "api-yaml"
        assert fallbacks["insecure"] is True
        assert fallbacks["sync_to_remote"] is True
        assert fallbacks["match_resolved_timestamps"] is False
        assert fallbacks["remote"] == "upstream"
        assert fallbacks["mysql_command"] == ["mysql", "-uphab"]
        assert fallbacks["database_timeout"] == 5.0

    def test_fallbacks_feed_load_config(self, monkeypatch):
        from phabricator_mirror.config import load_config

        for name in ("PHABRICATOR_URL", "PHABRICATOR_API_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        cfg = build_config(
            {
                "phabricator": {
                    "url": "https://phabricator.example.com",
                    "api_token": "api-yaml",
                }
            }
        )
        config = load_config(yaml_fallbacks=to_config_fallbacks(cfg))
        assert config.phabricator_url == "https://phabricator.example.com"
        assert config.api_token == "api-yaml"
