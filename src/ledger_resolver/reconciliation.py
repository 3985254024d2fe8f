"""
Reconciliation Engine for the ledger resolver.

Periodically pulls the full domain listing from the ledger and brings the
mirror in line with it:

- New names are created in the mirror
- Changed fields are patched field by field
- Entries already held in the positive cache are refreshed after each write

Records that disappear from the listing are never deleted. When
``mark_missing_as_banned`` is enabled they are flagged as banned instead.
"""

import asyncio
import time
from typing import Iterable, Optional

from .audit_logger import AuditLogger, ComponentLogging
from .cache import ResolutionCache
from .config import ReconciliationConfig
from .exceptions import InternalError, PersistenceError, TransportError
from .ledger_client import LedgerSource
from .mirror_store import MirrorStore
from .models import DomainRecord, ReconciliationReport, utc_now
from .record_diff import LISTING_FIELDS, apply_changes, compute_changes
from .scheduler import IntervalScheduler


TASK_NAME = "reconciliation"


class ReconciliationEngine(ComponentLogging):
    """
    Synchronizes the mirror with the ledger's domain listing.

    At most one pass runs at a time; a pass requested while another is in
    flight is skipped.
    """

    COMPONENT = "Reconciliation"

    def __init__(
        self,
        ledger: LedgerSource,
        mirror: MirrorStore,
        cache: ResolutionCache,
        config: Optional[ReconciliationConfig] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._ledger = ledger
        self._mirror = mirror
        self._cache = cache
        self._config = config or ReconciliationConfig()
        self._logger = logger

        self._running = False
        self._last_report: Optional[ReconciliationReport] = None
        self._scheduler: Optional[IntervalScheduler] = None
        self._scheduler_task: Optional[asyncio.Task] = None
        self._trigger_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Whether a pass is currently in flight."""
        return self._running

    @property
    def last_report(self) -> Optional[ReconciliationReport]:
        return self._last_report

    async def run_pass(self) -> Optional[ReconciliationReport]:
        """
        Run one reconciliation pass.

        Returns:
            The pass report, or None if a pass was already running or the
            listing could not be fetched
        """
        if self._running:
            self._log_debug("Reconciliation already running, skipping")
            return None
        self._running = True
        try:
            return await self._reconcile()
        finally:
            self._running = False

    async def _reconcile(self) -> Optional[ReconciliationReport]:
        start_time = time.monotonic()
        report = ReconciliationReport(started_at=utc_now())
        self._log_info("Reconciliation pass started")

        try:
            listing = await self._ledger.list_all()
        except TransportError as e:
            self._log_error("Reconciliation aborted: ledger listing unavailable", e)
            return None

        listed_names: set[str] = set()

        for incoming in listing.records:
            listed_names.add(incoming.name)
            try:
                outcome = self._reconcile_record(incoming)
            except (PersistenceError, InternalError) as e:
                report.errored += 1
                report.errors.append(f"{incoming.name}: {e.message}")
                self._log_error(f"Failed to reconcile {incoming.name}", e)
            else:
                if outcome == "added":
                    report.added += 1
                elif outcome == "updated":
                    report.updated += 1
                else:
                    report.unchanged += 1
            await asyncio.sleep(self._config.write_delay_seconds)

        if self._config.mark_missing_as_banned:
            report.stale = await self.mark_stale_records(listed_names, report)

        report.finished_at = utc_now()
        report.duration_ms = (time.monotonic() - start_time) * 1000
        self._last_report = report
        self._log_info(
            "Reconciliation pass complete",
            {
                "updated": report.updated,
                "added": report.added,
                "errored": report.errored,
                "unchanged": report.unchanged,
                "stale": report.stale,
                "skipped_entries": listing.skipped,
                "duration_ms": round(report.duration_ms, 2),
            },
        )
        return report

    def _reconcile_record(self, incoming: DomainRecord) -> str:
        # No await between reading and writing the mirror record
        current = self._mirror.find_by_name(incoming.name)
        if current is None:
            stored = self._mirror.create(incoming)
            if self._cache.clear_negative(stored.name):
                self._log_debug(f"Dropped not-found cache entry for {stored.name}")
            self._log_info(f"Added {stored.name} from ledger listing")
            return "added"

        changes = compute_changes(current, incoming, LISTING_FIELDS)
        if not changes:
            return "unchanged"

        stored = self._mirror.upsert(apply_changes(current, changes))
        self._cache.refresh_if_present(stored.name, stored)
        self._log_info(
            f"Updated {stored.name}",
            {"changed_fields": sorted(changes)},
        )
        return "updated"

    async def mark_stale_records(
        self,
        listed_names: Iterable[str],
        report: Optional[ReconciliationReport] = None,
    ) -> int:
        """
        Flag mirrored records missing from the listing as banned.

        Records are kept in the mirror. A failure on one record is logged and,
        when a report is given, counted as errored there.

        Returns:
            Number of records newly flagged
        """
        listed = set(listed_names)
        flagged = 0
        for name in self._mirror.names():
            if name in listed:
                continue
            record = self._mirror.find_by_name(name)
            if record is None or record.is_banned:
                continue
            try:
                stored = self._mirror.upsert(apply_changes(record, {"is_banned": True}))
            except PersistenceError as e:
                self._log_error(f"Failed to flag {name} as stale", e)
                if report is not None:
                    report.errored += 1
                    report.errors.append(f"{name}: {e.message}")
                continue
            self._cache.refresh_if_present(stored.name, stored)
            self._log_warn(f"{stored.name} missing from ledger listing, flagged as banned")
            flagged += 1
            await asyncio.sleep(self._config.write_delay_seconds)
        return flagged

    def trigger(self) -> bool:
        """
        Start a pass in the background.

        Returns:
            True if a pass was started, False if one is already in flight
        """
        if self._running or (self._trigger_task is not None and not self._trigger_task.done()):
            return False
        self._trigger_task = asyncio.create_task(self.run_pass())
        return True

    def start(self) -> bool:
        """
        Begin periodic reconciliation on the running event loop.

        Returns:
            False if the engine was already started
        """
        if self._scheduler_task is not None and not self._scheduler_task.done():
            return False
        self._scheduler = IntervalScheduler(logger=self._logger)
        self._scheduler.schedule(
            TASK_NAME,
            self._config.interval_seconds,
            self.run_pass,
            run_immediately=self._config.run_on_start,
        )
        self._scheduler_task = asyncio.create_task(self._scheduler.run())
        self._log_info(
            "Periodic reconciliation started",
            {"interval_seconds": self._config.interval_seconds},
        )
        return True

    def stop(self) -> None:
        """Cancel future passes. A pass already in flight runs to completion."""
        if self._scheduler is not None:
            self._scheduler.stop()
            self._log_info("Periodic reconciliation stopped")

    async def wait_stopped(self) -> None:
        """Wait for the scheduler loop and any triggered pass to finish."""
        if self._scheduler_task is not None:
            await self._scheduler_task
        if self._trigger_task is not None:
            await self._trigger_task
