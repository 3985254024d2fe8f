"""
Command-line interface for the ledger resolver.

This module provides the main CLI entry point with commands for:
- resolve: Resolve a domain name to its address
- profile: Show the full mirrored record for a name
- refresh: Re-read a name from the ledger, bypassing cache and mirror
- reconcile: Run one reconciliation pass against the ledger listing
- serve: Run periodic reconciliation until interrupted
- config: Configuration management
"""

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Optional

from . import __version__
from .app import ApplicationContext
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_MIRROR_FILE,
    CacheConfig,
    LedgerConfig,
    LoggingConfig,
    PersistenceConfig,
    ReconciliationConfig,
    RetryConfig,
    SystemConfig,
    load_config_from_env,
)
from .exceptions import LedgerResolverError
from .models import Resolution


DEFAULT_CONFIG_PATH = Path.home() / ".ledger_resolver" / "config.json"


def create_default_config(simulation_mode: bool = False) -> SystemConfig:
    """Create a configuration with default values."""
    return SystemConfig(ledger=LedgerConfig(simulation_mode=simulation_mode))


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        ledger_data = data.get("ledger", {})
        ledger = LedgerConfig(
            rpc_url=ledger_data.get("rpc_url", LedgerConfig.rpc_url),
            rpc_user=ledger_data.get("rpc_user", ""),
            rpc_password=ledger_data.get("rpc_password", ""),
            timeout_seconds=float(ledger_data.get("timeout_seconds", 10.0)),
            simulation_mode=bool(ledger_data.get("simulation_mode", False)),
        )

        cache_data = data.get("cache", {})
        cache = CacheConfig(
            positive_ttl_seconds=float(cache_data.get("positive_ttl_seconds", 3600.0)),
            negative_ttl_seconds=float(cache_data.get("negative_ttl_seconds", 1800.0)),
        )

        reconciliation_data = data.get("reconciliation", {})
        reconciliation = ReconciliationConfig(
            interval_seconds=float(reconciliation_data.get("interval_seconds", 900.0)),
            write_delay_seconds=float(reconciliation_data.get("write_delay_seconds", 0.05)),
            run_on_start=bool(reconciliation_data.get("run_on_start", True)),
            mark_missing_as_banned=bool(reconciliation_data.get("mark_missing_as_banned", False)),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 2)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 0.5)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 10.0)),
        )
        if "retryable_errors" in retry_data:
            retry.retryable_errors = [str(code) for code in retry_data["retryable_errors"]]

        persistence_data = data.get("persistence", {})
        mirror_file_path = persistence_data.get("mirror_file_path")
        persistence = PersistenceConfig(
            mirror_file_path=Path(mirror_file_path) if mirror_file_path else DEFAULT_MIRROR_FILE,
            hmac_secret=persistence_data.get("hmac_secret", PersistenceConfig.hmac_secret),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        return SystemConfig(
            ledger=ledger,
            cache=cache,
            reconciliation=reconciliation,
            retry=retry,
            persistence=persistence,
            logging=logging_config,
        )

    except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = asdict(config)
        data["persistence"]["mirror_file_path"] = str(config.persistence.mirror_file_path)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """
    Build the effective configuration for a command.

    A ``--config`` file takes precedence over the environment; ``--dry-run``
    and ``--verbose`` are applied on top.
    """
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
    else:
        try:
            config = load_config_from_env()
        except LedgerResolverError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return None

    if getattr(args, "dry_run", False):
        config = replace(config, ledger=replace(config.ledger, simulation_mode=True))
    if getattr(args, "verbose", False):
        config = replace(config, logging=replace(config.logging, level="debug"))
    return config


def _print_resolution(resolution: Resolution, verbose: bool) -> None:
    if resolution.found:
        print(f"{resolution.name} -> {resolution.address}")
    elif resolution.error:
        print(f"{resolution.name}: not found ({resolution.error})")
    else:
        print(f"{resolution.name}: not found")
    if verbose and resolution.source is not None:
        print(f"  Source: {resolution.source.value}")


async def run_lookup(
    name: str,
    config: SystemConfig,
    action: str,
    verbose: bool = False,
) -> int:
    """
    Run a single resolve, profile or refresh request.

    Returns:
        Exit code (0 when the name was found, 1 otherwise)
    """
    async with ApplicationContext(config) as app:
        if action == "refresh":
            resolution = await app.force_refresh(name)
        elif action == "profile":
            resolution = await app.get_record(name)
        else:
            resolution = await app.resolve(name)

    if action == "profile" and resolution.found:
        print(json.dumps(resolution.record.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_resolution(resolution, verbose)

    return 0 if resolution.found else 1


async def run_reconcile(config: SystemConfig) -> int:
    """Run one reconciliation pass and print its report."""
    async with ApplicationContext(config) as app:
        report = await app.run_reconciliation()

    if report is None:
        print("Reconciliation did not complete; see log for details", file=sys.stderr)
        return 1

    print(
        f"Reconciliation complete: {report.updated} updated, {report.added} added, "
        f"{report.errored} errored, {report.unchanged} unchanged, {report.stale} stale "
        f"({report.duration_ms:.1f}ms)"
    )
    return 0 if report.errored == 0 else 1


async def serve(config: SystemConfig) -> int:
    """Run periodic reconciliation until SIGINT or SIGTERM."""
    async with ApplicationContext(config, start_reconciliation=True) as app:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, app.engine.stop)
            except (NotImplementedError, RuntimeError):
                # Windows: KeyboardInterrupt ends the loop instead
                break
        print(
            f"Serving; reconciling every {config.reconciliation.interval_seconds:.0f}s. "
            "Press Ctrl+C to stop."
        )
        await app.engine.wait_stopped()
    return 0


def _run_app(coro) -> int:
    try:
        return asyncio.run(coro)
    except LedgerResolverError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_lookup(args: argparse.Namespace) -> int:
    """Handle the 'resolve', 'profile' and 'refresh' commands."""
    config = resolve_config(args)
    if config is None:
        return 1
    return _run_app(run_lookup(args.name, config, args.command, verbose=args.verbose))


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Handle the 'reconcile' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    return _run_app(run_reconcile(config))


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the 'serve' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    try:
        return _run_app(serve(config))
    except KeyboardInterrupt:
        return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        masked = AuditLogger().mask_sensitive_data(asdict(config))
        print(f"Configuration from: {config_path}")
        print(json.dumps(masked, indent=2, default=str))
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        problems = validate_config(config)
        if problems:
            for problem in problems:
                print(f"  - {problem}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def validate_config(config: SystemConfig) -> list[str]:
    """Return a list of human-readable configuration problems."""
    problems = []
    if config.cache.positive_ttl_seconds <= 0:
        problems.append("cache.positive_ttl_seconds must be positive")
    if config.cache.negative_ttl_seconds <= 0:
        problems.append("cache.negative_ttl_seconds must be positive")
    if config.reconciliation.interval_seconds <= 0:
        problems.append("reconciliation.interval_seconds must be positive")
    if config.reconciliation.write_delay_seconds < 0:
        problems.append("reconciliation.write_delay_seconds must not be negative")
    if config.ledger.timeout_seconds <= 0:
        problems.append("ledger.timeout_seconds must be positive")
    if config.logging.level not in ("debug", "info", "warn", "error"):
        problems.append(f"logging.level is invalid: {config.logging.level}")
    if config.logging.output_format not in ("json", "text", "both"):
        problems.append(f"logging.output_format is invalid: {config.logging.output_format}")
    return problems


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file (defaults to environment / .env)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no real ledger requests",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ledger-resolver",
        description="Resolve domain names against a ledger-backed registry",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for command, help_text in (
        ("resolve", "Resolve a domain name to its address"),
        ("profile", "Show the full record for a domain name"),
        ("refresh", "Re-read a domain name from the ledger"),
    ):
        lookup_parser = subparsers.add_parser(command, help=help_text)
        lookup_parser.add_argument(
            "name",
            help="Domain name (e.g., alpha.domain)",
        )
        _add_common_arguments(lookup_parser)
        lookup_parser.set_defaults(func=cmd_lookup)

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Run one reconciliation pass",
    )
    _add_common_arguments(reconcile_parser)
    reconcile_parser.set_defaults(func=cmd_reconcile)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run periodic reconciliation until interrupted",
    )
    _add_common_arguments(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
