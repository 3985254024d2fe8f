"""
Exception classes for the ledger resolver.

All exceptions inherit from LedgerResolverError and carry a machine-readable
code, a human-readable message, and optional structured details.
"""

from typing import Optional


class LedgerResolverError(Exception):
    """Base exception for all ledger resolver errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerResolverError):
    """Raised when a name is confirmed absent or is not a domain record."""

    pass


class TransportError(LedgerResolverError):
    """Raised when the ledger is unreachable or returns a malformed response."""

    pass


class PersistenceError(LedgerResolverError):
    """Raised when a mirror read or write fails."""

    pass


class TamperingError(PersistenceError):
    """Raised when the mirror file fails HMAC validation."""

    pass


class InternalError(LedgerResolverError):
    """Raised on derivation failures and invariant violations."""

    pass


class ConfigError(LedgerResolverError):
    """Raised when configuration values cannot be parsed."""

    pass
