"""Runtime configuration for the mirror.

Reads settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PHABRICATOR_URL: Phabricator instance URL (required)
    PHABRICATOR_API_TOKEN: Conduit API token (required)
    PHABRICATOR_INSECURE: Skip SSL verification (optional, default: false)
    MIRROR_SEARCH_DIR: Directory to search for repos (default: /var/repo)
    MIRROR_SYNC_TO_REMOTE: Pull and push notes (optional, default: false)
    MIRROR_SYNC_PERIOD: Seconds between passes (optional, default: 30)
    MIRROR_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass
class Config:
    phabricator_url: str
    api_token: str
    insecure: bool = False
    debug: bool = False
    search_dir: str = "/var/repo"
    sync_to_remote: bool = False
    sync_period: int = 30
    match_resolved_timestamps: bool = True
    repo_dir_prefix: str = "/var/repo/"
    remote: str = "origin"
    git_timeout: float = 300.0
    remote_timeout: float = 60.0
    mysql_command: list[str] = field(default_factory=lambda: ["mysql"])
    database_timeout: float = 60.0


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the URL is malformed, the token is empty or a
            numeric setting is out of range.
    """
    config.phabricator_url = config.phabricator_url.strip()

    if not config.phabricator_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid Phabricator URL '{config.phabricator_url}': "
            "must start with http:// or https://"
        )

    parsed = urlparse(config.phabricator_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid Phabricator URL '{config.phabricator_url}': "
            "URL must include a hostname"
        )

    config.phabricator_url = config.phabricator_url.removesuffix("/")

    if not config.api_token.strip():
        raise ValueError(
            "Phabricator API token cannot be empty. "
            "Set PHABRICATOR_API_TOKEN environment variable."
        )

    if not (1 <= config.sync_period <= 86400):
        raise ValueError(
            f"Invalid sync period {config.sync_period}: "
            "must be between 1 and 86400 seconds"
        )

    if not config.mysql_command:
        raise ValueError("Database command cannot be empty")

    if not config.repo_dir_prefix.endswith("/"):
        config.repo_dir_prefix += "/"

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). "
            "Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _resolve_flag(cli_value: bool, env_key: str, fallback: bool) -> bool:
    if cli_value:
        return True
    env_value = _get_bool_env(env_key)
    if env_value is not None:
        return env_value
    return bool(fallback)


def load_config(
    url: str | None = None,
    api_token: str | None = None,
    search_dir: str | None = None,
    sync_to_remote: bool = False,
    sync_period: int | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override Phabricator URL.
        api_token: Override Conduit API token.
        search_dir: Override the repository search directory.
        sync_to_remote: Enable remote sync (CLI flag).
        sync_period: Override the number of seconds between passes.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config, as
            returned by ``to_config_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config (URL, API token) is missing
            after checking all sources, or a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error/default ---

    phabricator_url = url or os.getenv("PHABRICATOR_URL") or fb.get("url")
    if not phabricator_url:
        raise ValueError(
            "Phabricator URL not found. Set PHABRICATOR_URL environment "
            "variable, pass --url CLI argument, or add 'url' to the "
            "'phabricator' section of config.yml."
        )

    token = (
        api_token or os.getenv("PHABRICATOR_API_TOKEN") or fb.get("api_token")
    )
    if not token:
        raise ValueError(
            "Phabricator API token not found. Set PHABRICATOR_API_TOKEN "
            "environment variable or add 'api_token' to the 'phabricator' "
            "section of config.yml."
        )

    final_search_dir = (
        search_dir
        or os.getenv("MIRROR_SEARCH_DIR")
        or fb.get("search_dir", "/var/repo")
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    final_sync_to_remote = _resolve_flag(
        sync_to_remote,
        "MIRROR_SYNC_TO_REMOTE",
        fb.get("sync_to_remote", False),
    )
    final_insecure = _resolve_flag(
        insecure, "PHABRICATOR_INSECURE", fb.get("insecure", False)
    )
    final_debug = _resolve_flag(
        debug, "MIRROR_DEBUG", fb.get("debug", False)
    )

    # --- Numeric fields: CLI > env > YAML > default ---

    if sync_period is not None:
        final_sync_period = sync_period
    else:
        period_raw = os.getenv("MIRROR_SYNC_PERIOD")
        if period_raw is not None:
            try:
                final_sync_period = int(period_raw)
            except ValueError:
                raise ValueError(
                    f"Invalid MIRROR_SYNC_PERIOD '{period_raw}': "
                    "must be a number of seconds"
                ) from None
        else:
            final_sync_period = int(fb.get("sync_period", 30))

    config = Config(
        phabricator_url=phabricator_url,
        api_token=token.strip(),
        insecure=final_insecure,
        debug=final_debug,
        search_dir=final_search_dir,
        sync_to_remote=final_sync_to_remote,
        sync_period=final_sync_period,
        match_resolved_timestamps=bool(
            fb.get("match_resolved_timestamps", True)
        ),
        repo_dir_prefix=fb.get("repo_dir_prefix", "/var/repo/"),
        remote=fb.get("remote", "origin"),
        git_timeout=float(fb.get("git_timeout", 300.0)),
        remote_timeout=float(fb.get("remote_timeout", 60.0)),
        mysql_command=list(fb.get("mysql_command", ["mysql"])),
        database_timeout=float(fb.get("database_timeout", 60.0)),
    )

    validate_config(config)

    return config
