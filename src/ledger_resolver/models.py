"""
Data models for the ledger resolver.

This module defines the mirrored domain record and its subrecords, the result
types returned by the ledger client and the resolver, and the report produced
by a reconciliation pass.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .enums import LedgerErrorCode, LookupStatus, ResolutionSource, ResolutionStatus


# Stored when the ledger has no address for a record
ADDRESS_PLACEHOLDER = "0.0.0.0"


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SubRecord:
    """A subdomain profile owned by a domain record."""

    id: str
    name: str
    address: Optional[str] = None
    metadata: Optional[str] = None
    owner: Optional[str] = None
    rps: Optional[float] = None
    ownership_type: Optional[str] = None
    tenant: Optional[str] = None
    rented_at: Optional[int] = None
    duration: Optional[int] = None
    is_candidate: bool = False
    is_banned: bool = False
    is_domain: bool = False
    offered_at: Optional[int] = None
    bid_amount: Optional[float] = None
    buyer: Optional[str] = None
    balance: Optional[float] = None
    bid_target: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SubRecord":
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)


@dataclass
class DomainRecord:
    """
    A domain profile as mirrored from the ledger.

    ``name`` is stored lowercased and ``identifier`` is always the HASH160 of
    that name. ``address`` is never None; ADDRESS_PLACEHOLDER marks an
    unknown address.
    """

    name: str
    identifier: str
    address: str = ADDRESS_PLACEHOLDER
    owner: Optional[str] = None
    signer: Optional[str] = None
    metadata: Optional[str] = None
    rps: Optional[float] = None
    is_rented: bool = False
    tenant: Optional[str] = None
    rented_at: Optional[int] = None
    duration: Optional[int] = None
    is_banned: bool = False
    is_candidate: bool = False
    is_domain: bool = True
    missed: Optional[int] = None
    offered_at: Optional[int] = None
    bid_amount: Optional[float] = None
    buyer: Optional[str] = None
    balance: Optional[float] = None
    bid_target: Optional[str] = None
    owned_subrecords: list[SubRecord] = field(default_factory=list)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Serialize to the persisted layout."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DomainRecord":
        """Rebuild a record from its persisted layout, ignoring unknown keys."""
        known = {
            name: data[name]
            for name in cls.__dataclass_fields__
            if name in data and name != "owned_subrecords"
        }
        known["owned_subrecords"] = [
            SubRecord.from_dict(sub) for sub in data.get("owned_subrecords") or []
        ]
        if known.get("address") is None:
            known["address"] = ADDRESS_PLACEHOLDER
        return cls(**known)

    def copy(self) -> "DomainRecord":
        """Return an independent snapshot of this record."""
        return DomainRecord.from_dict(self.to_dict())


@dataclass
class LedgerError:
    """Error information from a ledger query."""

    code: LedgerErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class LedgerLookup:
    """Result of a single-record ledger query."""

    status: LookupStatus
    record: Optional[DomainRecord] = None
    error: Optional[LedgerError] = None
    response_time_ms: float = 0.0


@dataclass
class LedgerListing:
    """Full snapshot of the ledger's domain listing."""

    records: list[DomainRecord]
    total: int
    skipped: int = 0


@dataclass
class Resolution:
    """Outcome of resolve, get_record and force_refresh."""

    status: ResolutionStatus
    name: str
    record: Optional[DomainRecord] = None
    source: Optional[ResolutionSource] = None
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.status == ResolutionStatus.FOUND

    @property
    def address(self) -> Optional[str]:
        """Resolved address, or None unless the status is FOUND."""
        if self.status != ResolutionStatus.FOUND or self.record is None:
            return None
        return self.record.address


@dataclass
class ReconciliationReport:
    """Counters and timing of one reconciliation pass."""

    started_at: str
    finished_at: Optional[str] = None
    updated: int = 0
    added: int = 0
    errored: int = 0
    unchanged: int = 0
    stale: int = 0
    duration_ms: float = 0.0
    errors: list[str] = field(default_factory=list)
