"""
Enumeration types for the ledger resolver.
"""

from enum import Enum


class ResolutionStatus(Enum):
    """Outcome of a resolver operation."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class ResolutionSource(Enum):
    """Tier that answered a resolver operation."""

    NEGATIVE_CACHE = "negative_cache"
    POSITIVE_CACHE = "positive_cache"
    MIRROR = "mirror"
    LEDGER = "ledger"


class LookupStatus(Enum):
    """Ledger single-record query result status."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class LedgerErrorCode(Enum):
    """Error codes for ledger client operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    AUTH_ERROR = "auth_error"
    RPC_ERROR = "rpc_error"
    PARSE_ERROR = "parse_error"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
