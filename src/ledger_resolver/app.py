"""
Application context for the ledger resolver.

Builds and owns every long-lived component: logger, resolution cache, mirror
store, ledger client, resolver and reconciliation engine. The cache is created
here and injected into both the resolver and the engine.

Opening the mirror is the only fatal startup step; a mirror that cannot be
read or fails HMAC validation aborts ``__aenter__``.
"""

from typing import Optional

import httpx

from .audit_logger import AuditLogger, ComponentLogging
from .cache import ResolutionCache
from .config import SystemConfig
from .ledger_client import LedgerClient, LedgerSource
from .mirror_store import MirrorStore
from .models import ReconciliationReport, Resolution
from .reconciliation import ReconciliationEngine
from .resolver import Resolver


class ApplicationContext(ComponentLogging):
    """
    Entry point for inbound requests.

    Usage::

        async with ApplicationContext(config) as app:
            resolution = await app.resolve("alpha.domain")
    """

    COMPONENT = "Application"

    def __init__(
        self,
        config: SystemConfig,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ledger: Optional[LedgerSource] = None,
        start_reconciliation: bool = False,
    ) -> None:
        """
        Initialize the context without touching disk or network.

        Args:
            config: System configuration
            logger: Audit logger (built from config.logging if omitted)
            transport: Optional httpx transport for the ledger client
            ledger: Alternative ledger source replacing the JSON-RPC client
            start_reconciliation: Start periodic reconciliation on enter
        """
        self._config = config
        self._logger = logger or AuditLogger(
            output_format=config.logging.output_format,
            level=config.logging.level,
        )
        self._start_reconciliation = start_reconciliation

        self._cache = ResolutionCache(config.cache)
        self._mirror = MirrorStore(
            config.persistence.mirror_file_path,
            config.persistence.hmac_secret,
        )
        self._client: Optional[LedgerClient] = None
        if ledger is None:
            self._client = LedgerClient(
                config.ledger,
                retry_config=config.retry,
                logger=self._logger,
                transport=transport,
            )
            ledger = self._client
        self._ledger = ledger

        self._resolver = Resolver(ledger, self._mirror, self._cache, logger=self._logger)
        self._engine = ReconciliationEngine(
            ledger,
            self._mirror,
            self._cache,
            config=config.reconciliation,
            logger=self._logger,
        )

    async def __aenter__(self) -> "ApplicationContext":
        count = self._mirror.load()
        self._log_info("Mirror loaded", {"records": count, "file": str(self._mirror.file_path)})
        if self._config.ledger.simulation_mode:
            self._log_info("Simulation mode enabled; no ledger requests will be made")
        if self._start_reconciliation:
            self._engine.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop reconciliation, wait for an in-flight pass and release the client."""
        self._engine.stop()
        await self._engine.wait_stopped()
        if self._client is not None:
            await self._client.close()

    async def resolve(self, name: str) -> Resolution:
        return await self._resolver.resolve(name)

    async def get_record(self, name: str) -> Resolution:
        return await self._resolver.get_record(name)

    async def force_refresh(self, name: str) -> Resolution:
        return await self._resolver.force_refresh(name)

    def trigger_reconciliation(self) -> bool:
        """Start a reconciliation pass in the background if none is running."""
        return self._engine.trigger()

    async def run_reconciliation(self) -> Optional[ReconciliationReport]:
        """Run a reconciliation pass and wait for its report."""
        return await self._engine.run_pass()

    @property
    def config(self) -> SystemConfig:
        return self._config

    @property
    def logger(self) -> AuditLogger:
        return self._logger

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def mirror(self) -> MirrorStore:
        return self._mirror

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    @property
    def engine(self) -> ReconciliationEngine:
        return self._engine
