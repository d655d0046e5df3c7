"""Command line entry point: ``git-phabricator-mirror``."""

import argparse
import logging
import os
import sys

import requests
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config, to_config_fallbacks
from .core.conduit import ConduitClient, ConduitError
from .core.database import DatabaseError, DifferentialDatabase
from .logger import setup_logging
from .mirror.controller import SyncController
from .mirror.discovery import find_repos
from .phabricator.differential import PhabricatorTool
from .phabricator.transactions import TransactionOrderError
from .phabricator.users import UserDirectory
from .repository.base import RepositoryError

logger = logging.getLogger(__name__)

# Failures that stop the mirror. A supervisor restarts it with a clean
# slate.
_FATAL_ERRORS = (
    ConduitError,
    DatabaseError,
    RepositoryError,
    TransactionOrderError,
    requests.RequestException,
    FileNotFoundError,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="git-phabricator-mirror",
        description="Mirror git-appraise code reviews to and from "
        "Phabricator Differential",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Mirror every repository under /var/repo every 30 seconds
  git-phabricator-mirror

  # Also pull and push the review notes
  git-phabricator-mirror --sync-to-remote --sync-period 60

  # Run a single pass with debug output
  git-phabricator-mirror --once --debug

Connection settings come from PHABRICATOR_URL and PHABRICATOR_API_TOKEN
(a .env file is read too) or from .phabricator_mirror/config.yml.
        """,
    )
    parser.add_argument(
        "--search-dir",
        help="Directory under which to search for git repos "
        "(default: /var/repo)",
    )
    parser.add_argument(
        "--sync-to-remote",
        action="store_true",
        help="Sync the local repos (including git notes) to their remotes",
    )
    parser.add_argument(
        "--sync-period",
        type=int,
        help="Expected number of seconds between subsequent syncs of a "
        "repo (default: 30)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit",
    )
    parser.add_argument(
        "--url",
        help="Override Phabricator URL (takes precedence over "
        "PHABRICATOR_URL env var and config files)",
    )
    parser.add_argument(
        "--log-file",
        help="Write the log to this file instead of stderr",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"git-phabricator-mirror version {__version__}",
    )
    return parser


def _load(args: argparse.Namespace) -> tuple[Config, UnifiedConfig]:
    """Resolve the configuration from CLI args, env, .env and YAML."""
    load_dotenv()
    unified = build_config(load_hierarchical_config())
    config = load_config(
        url=args.url,
        search_dir=args.search_dir,
        sync_to_remote=args.sync_to_remote,
        sync_period=args.sync_period,
        debug=args.debug,
        yaml_fallbacks=to_config_fallbacks(unified),
    )
    return config, unified


def build_controller(config: Config) -> tuple[SyncController, UserDirectory]:
    conduit = ConduitClient(config)
    users = UserDirectory(conduit)
    database = DifferentialDatabase(
        config.mysql_command, timeout=config.database_timeout
    )
    tool = PhabricatorTool(
        conduit,
        users,
        database,
        repo_dir_prefix=config.repo_dir_prefix,
        match_resolved_timestamps=config.match_resolved_timestamps,
    )
    controller = SyncController(
        tool,
        sync_to_remote=config.sync_to_remote,
        match_resolved_timestamps=config.match_resolved_timestamps,
    )
    return controller, users


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    args = build_parser().parse_args(argv)

    try:
        config, unified = _load(args)
    except (ValueError, ValidationError, yaml.YAMLError, OSError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    os.environ.setdefault("LOG_LEVEL", unified.logging.level)
    log_file = args.log_file or unified.logging.file
    setup_logging(
        mode="service" if log_file else "cli",
        debug=config.debug,
        log_file=log_file,
        debug_format=args.debug_format or unified.logging.format,
    )
    config_files = discover_config_files()
    if config_files:
        logger.info("Using config file %s", config_files[0])

    controller, users = build_controller(config)

    def discover():
        return find_repos(
            config.search_dir,
            remote=config.remote,
            timeout=config.git_timeout,
            remote_timeout=config.remote_timeout,
        )

    try:
        mirror_user = users.whoami()
        logger.info(
            "Mirroring %s to %s as %s",
            config.search_dir,
            config.phabricator_url,
            mirror_user.user_name,
        )
        controller.run(
            discover,
            config.sync_period,
            max_ticks=1 if args.once else None,
        )
    except _FATAL_ERRORS:
        logger.exception("Mirroring stopped")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
