"""
Ledger Resolver - Domain name resolution backed by a ledger registry.

This package resolves domain names to addresses through a two-tier cache, a
tamper-evident local mirror and a read-only JSON-RPC ledger, and keeps the
mirror in sync with periodic reconciliation passes.
"""

__version__ = "0.1.0"
__author__ = "Ledger Resolver Team"

from ledger_resolver.exceptions import (
    LedgerResolverError,
    NotFoundError,
    TransportError,
    PersistenceError,
    TamperingError,
    InternalError,
    ConfigError,
)
from ledger_resolver.enums import (
    LedgerErrorCode,
    LogLevel,
    LookupStatus,
    ResolutionSource,
    ResolutionStatus,
)
from ledger_resolver.config import (
    LedgerConfig,
    CacheConfig,
    ReconciliationConfig,
    RetryConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
)
from ledger_resolver.models import (
    ADDRESS_PLACEHOLDER,
    SubRecord,
    DomainRecord,
    LedgerError,
    LedgerLookup,
    LedgerListing,
    Resolution,
    ReconciliationReport,
)
from ledger_resolver.identifier import derive_identifier
from ledger_resolver.record_diff import (
    LISTING_FIELDS,
    TRACKED_FIELDS,
    apply_changes,
    compute_changes,
)
from ledger_resolver.cache import CacheStats, ResolutionCache, TTLStore
from ledger_resolver.mirror_store import MirrorStore
from ledger_resolver.retry_manager import RetryManager, RetryResult
from ledger_resolver.audit_logger import AuditLogger, LogEntry
from ledger_resolver.ledger_client import LedgerClient, LedgerSource
from ledger_resolver.resolver import Resolver
from ledger_resolver.scheduler import IntervalScheduler, ScheduledTask
from ledger_resolver.reconciliation import ReconciliationEngine
from ledger_resolver.app import ApplicationContext
from ledger_resolver.cli import (
    main as cli_main,
    create_parser,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # Exceptions
    "LedgerResolverError",
    "NotFoundError",
    "TransportError",
    "PersistenceError",
    "TamperingError",
    "InternalError",
    "ConfigError",
    # Enums
    "LedgerErrorCode",
    "LogLevel",
    "LookupStatus",
    "ResolutionSource",
    "ResolutionStatus",
    # Config
    "LedgerConfig",
    "CacheConfig",
    "ReconciliationConfig",
    "RetryConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    # Models
    "ADDRESS_PLACEHOLDER",
    "SubRecord",
    "DomainRecord",
    "LedgerError",
    "LedgerLookup",
    "LedgerListing",
    "Resolution",
    "ReconciliationReport",
    # Identifier
    "derive_identifier",
    # Record diff
    "LISTING_FIELDS",
    "TRACKED_FIELDS",
    "apply_changes",
    "compute_changes",
    # Cache
    "CacheStats",
    "ResolutionCache",
    "TTLStore",
    # Mirror Store
    "MirrorStore",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Ledger Client
    "LedgerClient",
    "LedgerSource",
    # Resolver
    "Resolver",
    # Scheduler
    "IntervalScheduler",
    "ScheduledTask",
    # Reconciliation
    "ReconciliationEngine",
    # Application
    "ApplicationContext",
    # CLI
    "cli_main",
    "create_parser",
    "load_config_from_file",
    "save_config_to_file",
]
