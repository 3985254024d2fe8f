"""
Resolver for the ledger resolver.

This module answers name queries through a lookup cascade:

1. Negative cache hit -> not found
2. Positive cache hit -> found
3. Mirror hit on a domain record -> cache positive, found
4. Ledger lookup -> persist and cache positive on success, cache negative on
   confirmed absence

Ledger transport failures are reported to callers as not found but are never
cached, so the name is retried on the next query.
"""

from typing import Optional

from .audit_logger import AuditLogger, ComponentLogging
from .cache import ResolutionCache
from .enums import LookupStatus, ResolutionSource, ResolutionStatus
from .exceptions import InternalError, PersistenceError
from .identifier import canonical_name
from .ledger_client import LedgerSource
from .mirror_store import MirrorStore
from .models import DomainRecord, Resolution
from .record_diff import apply_changes, compute_changes


INVALID_NAME = "invalid_name"


class Resolver(ComponentLogging):
    """
    Orchestrates cache, mirror and ledger lookups.

    The cache is owned by the application context and shared with the
    reconciliation engine, which only refreshes or invalidates entries.
    """

    COMPONENT = "Resolver"

    def __init__(
        self,
        ledger: LedgerSource,
        mirror: MirrorStore,
        cache: ResolutionCache,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._ledger = ledger
        self._mirror = mirror
        self._cache = cache
        self._logger = logger

    async def resolve(self, name: str) -> Resolution:
        """
        Resolve a name to its address.

        Returns:
            Resolution whose ``address`` is set when the status is FOUND
        """
        resolution = await self._cascade(name)
        if resolution.found:
            self._log_info(
                f"Resolved {resolution.name} to {resolution.address}",
                {"name": resolution.name, "source": resolution.source.value},
            )
        return resolution

    async def get_record(self, name: str) -> Resolution:
        """Fetch the full domain record for a name."""
        return await self._cascade(name)

    async def _cascade(self, name: str) -> Resolution:
        canonical = canonical_name(name)
        if canonical is None:
            return self._invalid(name)

        hit, cached = self._cache.lookup(canonical)
        if hit and cached is None:
            self._log_debug(f"{canonical} found in not-found cache")
            return Resolution(
                status=ResolutionStatus.NOT_FOUND,
                name=canonical,
                source=ResolutionSource.NEGATIVE_CACHE,
            )
        if hit:
            return Resolution(
                status=ResolutionStatus.FOUND,
                name=canonical,
                record=cached,
                source=ResolutionSource.POSITIVE_CACHE,
            )

        mirrored = self._mirror.find_by_name(canonical)
        if mirrored is not None and mirrored.is_domain:
            self._cache.set_positive(canonical, mirrored)
            return Resolution(
                status=ResolutionStatus.FOUND,
                name=canonical,
                record=mirrored,
                source=ResolutionSource.MIRROR,
            )

        return await self._resolve_from_ledger(canonical)

    async def _resolve_from_ledger(self, canonical: str) -> Resolution:
        try:
            lookup = await self._ledger.lookup_by_name(canonical)
        except InternalError as e:
            self._log_error(f"Identifier derivation failed for {canonical}", e)
            return Resolution(
                status=ResolutionStatus.ERROR,
                name=canonical,
                error=e.message,
            )

        if lookup.status == LookupStatus.FOUND and lookup.record is not None:
            stored = self._persist(lookup.record)
            self._cache.set_positive(canonical, stored)
            return Resolution(
                status=ResolutionStatus.FOUND,
                name=canonical,
                record=stored,
                source=ResolutionSource.LEDGER,
            )

        if lookup.status == LookupStatus.NOT_FOUND:
            self._log_info(f"{canonical} not found in ledger or is not a domain")
            self._cache.set_negative(canonical)
            return Resolution(
                status=ResolutionStatus.NOT_FOUND,
                name=canonical,
                source=ResolutionSource.LEDGER,
            )

        message = lookup.error.message if lookup.error else "ledger lookup failed"
        self._log_error(
            f"Ledger unavailable while resolving {canonical}; answering not found",
            data={
                "name": canonical,
                "error_code": lookup.error.code.value if lookup.error else None,
                "error_message": message,
            },
        )
        return Resolution(
            status=ResolutionStatus.NOT_FOUND,
            name=canonical,
            source=ResolutionSource.LEDGER,
            error=message,
        )

    async def force_refresh(self, name: str) -> Resolution:
        """
        Re-read a name from the ledger, bypassing cache and mirror.

        On success the mirror record and the positive cache are overwritten
        and any negative entry is dropped. On confirmed absence the name is
        cached negative and the mirror is left untouched. On a transport
        failure nothing changes.
        """
        canonical = canonical_name(name)
        if canonical is None:
            return self._invalid(name)

        self._log_info(f"Manually refreshing {canonical}")
        try:
            lookup = await self._ledger.lookup_by_name(canonical)
        except InternalError as e:
            self._log_error(f"Identifier derivation failed for {canonical}", e)
            return Resolution(
                status=ResolutionStatus.ERROR,
                name=canonical,
                error=e.message,
            )

        if lookup.status == LookupStatus.FOUND and lookup.record is not None:
            existing = self._mirror.find_by_name(canonical)
            if existing is not None:
                record = apply_changes(existing, compute_changes(existing, lookup.record))
            else:
                record = lookup.record
            stored = self._persist(record)
            self._cache.set_positive(canonical, stored)
            return Resolution(
                status=ResolutionStatus.FOUND,
                name=canonical,
                record=stored,
                source=ResolutionSource.LEDGER,
            )

        if lookup.status == LookupStatus.NOT_FOUND:
            self._log_info(f"{canonical} no longer exists in ledger or is not a domain")
            self._cache.set_negative(canonical)
            return Resolution(
                status=ResolutionStatus.NOT_FOUND,
                name=canonical,
                source=ResolutionSource.LEDGER,
            )

        message = lookup.error.message if lookup.error else "ledger lookup failed"
        self._log_error(
            f"Refresh of {canonical} failed; cache and mirror left unchanged",
            data={"name": canonical, "error_message": message},
        )
        return Resolution(
            status=ResolutionStatus.NOT_FOUND,
            name=canonical,
            source=ResolutionSource.LEDGER,
            error=message,
        )

    def _persist(self, record: DomainRecord) -> DomainRecord:
        """Write a ledger record to the mirror; a failed write keeps serving it."""
        try:
            return self._mirror.upsert(record)
        except PersistenceError as e:
            self._log_error(f"Failed to persist {record.name} to mirror", e)
            return record

    def _invalid(self, name: object) -> Resolution:
        self._log_warn("Rejected invalid domain name", {"name": repr(name)})
        return Resolution(
            status=ResolutionStatus.ERROR,
            name=name if isinstance(name, str) else repr(name),
            error=INVALID_NAME,
        )

    @property
    def cache(self) -> ResolutionCache:
        return self._cache
