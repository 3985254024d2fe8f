"""
Configuration dataclasses for the ledger resolver.

This module defines the configuration structures used throughout the system:
ledger endpoint and credentials, cache lifetimes, reconciliation pacing,
transport retry, mirror persistence, and logging. It also provides
environment-based loading for deployments driven by a ``.env`` file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigError


DEFAULT_MIRROR_FILE = Path.home() / ".ledger_resolver" / "mirror.json"


@dataclass
class LedgerConfig:
    """Connection settings for the ledger JSON-RPC endpoint."""

    rpc_url: str = "http://127.0.0.1:8332/"
    rpc_user: str = ""
    rpc_password: str = ""
    timeout_seconds: float = 10.0
    simulation_mode: bool = False


@dataclass
class CacheConfig:
    """Lifetimes of the two resolution cache tiers."""

    positive_ttl_seconds: float = 3600.0
    negative_ttl_seconds: float = 1800.0


@dataclass
class ReconciliationConfig:
    """Reconciliation pacing and disappearance policy."""

    interval_seconds: float = 15 * 60.0
    write_delay_seconds: float = 0.05
    run_on_start: bool = True
    mark_missing_as_banned: bool = False


@dataclass
class RetryConfig:
    """Retry behavior for transient ledger transport failures."""

    max_retries: int = 2
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    retryable_errors: list[str] = field(
        default_factory=lambda: ["timeout", "network_error", "server_error"]
    )


@dataclass
class PersistenceConfig:
    """Mirror storage configuration."""

    mirror_file_path: Path = DEFAULT_MIRROR_FILE
    hmac_secret: str = "default-secret-change-me"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _float_env(environ: dict, name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(
            code="invalid_number",
            message=f"{name} must be a number, got {raw!r}",
            details={"variable": name},
        ) from e


def _bool_env(environ: dict, name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(
    environ: Optional[dict] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Build a SystemConfig from environment variables.

    When ``environ`` is omitted, variables from a ``.env`` file are loaded into
    the process environment first (existing variables take precedence).

    Args:
        environ: Mapping to read instead of ``os.environ``
        dotenv_path: Explicit path of the ``.env`` file to load

    Returns:
        SystemConfig populated from the environment, with defaults elsewhere

    Raises:
        ConfigError: If a numeric variable cannot be parsed
    """
    if environ is None:
        load_dotenv(dotenv_path=dotenv_path)
        environ = dict(os.environ)

    ledger = LedgerConfig(
        rpc_url=environ.get("LEDGER_RPC_URL", LedgerConfig.rpc_url),
        rpc_user=environ.get("LEDGER_RPC_USER", ""),
        rpc_password=environ.get("LEDGER_RPC_PASSWORD", ""),
        timeout_seconds=_float_env(environ, "LEDGER_TIMEOUT_SECONDS", 10.0),
        simulation_mode=_bool_env(environ, "SIMULATION_MODE", False),
    )

    cache = CacheConfig(
        positive_ttl_seconds=_float_env(environ, "DOMAIN_CACHE_TTL", 3600.0),
        negative_ttl_seconds=_float_env(environ, "NOT_FOUND_CACHE_TTL", 1800.0),
    )

    interval_minutes = _float_env(environ, "REFRESH_INTERVAL_MINUTES", 15.0)
    if interval_minutes <= 0:
        raise ConfigError(
            code="invalid_interval",
            message="REFRESH_INTERVAL_MINUTES must be positive",
            details={"value": interval_minutes},
        )
    reconciliation = ReconciliationConfig(
        interval_seconds=interval_minutes * 60.0,
        mark_missing_as_banned=_bool_env(environ, "MARK_MISSING_AS_BANNED", False),
    )

    mirror_file = environ.get("MIRROR_FILE")
    persistence = PersistenceConfig(
        mirror_file_path=Path(mirror_file) if mirror_file else DEFAULT_MIRROR_FILE,
        hmac_secret=environ.get("MIRROR_HMAC_SECRET", PersistenceConfig.hmac_secret),
    )

    logging_config = LoggingConfig(
        level=environ.get("LOG_LEVEL", "info").lower(),
        output_format=environ.get("LOG_FORMAT", "text").lower(),
    )

    return SystemConfig(
        ledger=ledger,
        cache=cache,
        reconciliation=reconciliation,
        retry=RetryConfig(),
        persistence=persistence,
        logging=logging_config,
    )
