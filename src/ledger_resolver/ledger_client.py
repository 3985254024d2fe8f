"""
Ledger Client for domain profile lookups.

This module provides an async JSON-RPC client for the authoritative ledger.
It issues read-only queries (single profile by identifier, full domain
listing), translates wire results into DomainRecord objects, and keeps
transport failures distinct from legitimate absence.

RPC contract:
- getprofile [identifierHex] -> profile object or null
- getdomainprofiles [] -> {total, domains: [{profile_id, name, ip, rps,
  height, extra, owner}, ...]}
"""

import copy
import json
import time
from abc import abstractmethod
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger, ComponentLogging
from .config import LedgerConfig, RetryConfig
from .enums import LedgerErrorCode, LookupStatus
from .exceptions import InternalError, NotFoundError, TransportError
from .identifier import canonical_name, derive_identifier
from .models import (
    ADDRESS_PLACEHOLDER,
    DomainRecord,
    LedgerError,
    LedgerListing,
    LedgerLookup,
    SubRecord,
)
from .retry_manager import RetryManager


def _metadata_text(value: Any) -> Optional[str]:
    """Opaque payloads are stored verbatim as text."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _subrecord_from_wire(profile: dict) -> SubRecord:
    return SubRecord(
        id=str(profile.get("id", "")),
        name=str(profile.get("name", "")).lower(),
        address=profile.get("link"),
        metadata=_metadata_text(profile.get("appData")),
        owner=profile.get("owner"),
        rps=profile.get("rps"),
        ownership_type=profile.get("ownershipType"),
        tenant=profile.get("tenant"),
        rented_at=profile.get("rentedAt"),
        duration=profile.get("duration"),
        is_candidate=bool(profile.get("isCandidate", False)),
        is_banned=bool(profile.get("isBanned", False)),
        is_domain=profile.get("isDomain") is True,
        offered_at=profile.get("offeredAt"),
        bid_amount=profile.get("bidAmount"),
        buyer=profile.get("buyer"),
        balance=profile.get("balance"),
        bid_target=profile.get("bidTarget"),
    )


def record_from_profile(name: str, profile: dict) -> DomainRecord:
    """
    Translate a ``getprofile`` result into a DomainRecord.

    The record's identity comes from the queried name, not from the payload.
    """
    canonical = name.lower()
    owned = profile.get("ownedProfiles") or []
    return DomainRecord(
        name=canonical,
        identifier=derive_identifier(canonical),
        address=profile.get("link") or ADDRESS_PLACEHOLDER,
        owner=profile.get("owner"),
        signer=profile.get("signer"),
        metadata=_metadata_text(profile.get("appData")),
        rps=profile.get("rps"),
        is_rented=bool(profile.get("isRented", False)),
        tenant=profile.get("tenant"),
        rented_at=profile.get("rentedAt"),
        duration=profile.get("duration"),
        is_banned=bool(profile.get("isBanned", False)),
        is_candidate=bool(profile.get("isCandidate", False)),
        is_domain=profile.get("isDomain") is True,
        missed=profile.get("missed"),
        offered_at=profile.get("offeredAt"),
        bid_amount=profile.get("bidAmount"),
        buyer=profile.get("buyer"),
        balance=profile.get("balance"),
        bid_target=profile.get("bidTarget"),
        owned_subrecords=[_subrecord_from_wire(p) for p in owned if isinstance(p, dict)],
    )


def record_from_listing_entry(entry: dict) -> DomainRecord:
    """
    Translate a ``getdomainprofiles`` entry into a DomainRecord.

    Listing entries only carry address, owner and score data; the remaining
    fields keep their defaults.

    Raises:
        ValueError: If the entry has no usable name
        InternalError: If the name cannot be hashed into an identifier
    """
    canonical = canonical_name(entry.get("name"))
    if canonical is None:
        raise ValueError(f"Listing entry has no usable name: {entry!r}")
    return DomainRecord(
        name=canonical,
        identifier=derive_identifier(canonical),
        address=entry.get("ip") or ADDRESS_PLACEHOLDER,
        owner=entry.get("owner"),
        rps=entry.get("rps"),
        metadata=_metadata_text({
            "rps": entry.get("rps"),
            "height": entry.get("height"),
            "extra": entry.get("extra"),
        }),
        is_domain=True,
        is_banned=False,
    )


@runtime_checkable
class LedgerSource(Protocol):
    """Read-only query contract the resolver and reconciliation engine rely on."""

    @abstractmethod
    async def lookup_by_name(self, name: str) -> LedgerLookup:
        """Look up one domain profile by name."""
        ...

    @abstractmethod
    async def list_all(self) -> LedgerListing:
        """
        Fetch the full domain listing.

        Raises:
            TransportError: If the ledger cannot be queried
        """
        ...


class LedgerClient(ComponentLogging):
    """
    Async JSON-RPC client for the ledger.

    Never mutates ledger state. Transient transport failures are retried with
    exponential backoff; everything else is reported on the first attempt.
    """

    COMPONENT = "LedgerClient"

    RPC_ID = "ledger-resolver"

    # RPC error messages meaning the profile does not exist
    NOT_FOUND_INDICATORS = [
        "not found",
        "does not exist",
        "no such",
        "unknown profile",
    ]

    # Profiles served in simulation mode
    SIMULATED_PROFILES: dict[str, dict] = {
        "example.domain": {
            "name": "example.domain",
            "link": "192.168.1.100",
            "owner": "0xabcdef1234567890",
            "signer": "0x9876543210abcdef",
            "appData": "0xdata123456",
            "rps": 95,
            "isRented": False,
            "isCandidate": True,
            "isBanned": False,
            "missed": 0,
            "isDomain": True,
            "balance": 1000,
            "ownedProfiles": [
                {
                    "id": "0xsubdomain1",
                    "name": "subdomain1.example.domain",
                    "link": "192.168.1.101",
                    "owner": "0xabcdef1234567890",
                    "rps": 80,
                    "ownershipType": "owned",
                    "isDomain": True,
                    "balance": 500,
                },
            ],
        },
        "test.domain": {
            "name": "test.domain",
            "link": "192.168.1.200",
            "owner": "0x1234567890abcdef",
            "signer": "0xfedcba0987654321",
            "appData": "0xdata654321",
            "rps": 85,
            "isRented": True,
            "tenant": "0x2468ace13579bdf",
            "rentedAt": 1000,
            "duration": 10000,
            "isCandidate": False,
            "isBanned": False,
            "missed": 0,
            "isDomain": True,
            "balance": 2000,
            "ownedProfiles": [],
        },
    }

    def __init__(
        self,
        config: LedgerConfig,
        retry_config: Optional[RetryConfig] = None,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the ledger client.

        Args:
            config: Endpoint, credentials, timeout and simulation flag
            retry_config: Backoff policy for transient failures
            logger: Optional audit logger
            transport: Optional httpx transport (used by tests)
        """
        self._config = config
        self._retry_manager = RetryManager(retry_config or RetryConfig())
        self._logger = logger
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "LedgerClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            auth = None
            if self._config.rpc_user or self._config.rpc_password:
                auth = httpx.BasicAuth(self._config.rpc_user, self._config.rpc_password)
            self._client = httpx.AsyncClient(
                auth=auth,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def rpc_call(self, method: str, params: list) -> Any:
        """
        Issue one JSON-RPC request.

        Returns:
            The ``result`` member of the response

        Raises:
            NotFoundError: If the node reports that the requested profile does
                not exist
            TransportError: On timeout, connection failure, HTTP failure, RPC
                error, or a malformed response body
        """
        if self._config.simulation_mode:
            return self._simulated_call(method, params)

        client = self._ensure_client()
        payload = {
            "jsonrpc": "1.0",
            "id": self.RPC_ID,
            "method": method,
            "params": params,
        }

        try:
            response = await client.post(
                self._config.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                code=LedgerErrorCode.TIMEOUT.value,
                message=f"Ledger request timed out after {self._config.timeout_seconds}s",
                details={"method": method},
            ) from e
        except httpx.TransportError as e:
            raise TransportError(
                code=LedgerErrorCode.NETWORK_ERROR.value,
                message=f"Connection error: {e}",
                details={"method": method},
            ) from e

        if response.status_code in (401, 403):
            raise TransportError(
                code=LedgerErrorCode.AUTH_ERROR.value,
                message=f"Ledger rejected credentials (HTTP {response.status_code})",
                details={"method": method, "http_status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        # Nodes report RPC failures with a JSON error member, often on HTTP 500
        if isinstance(body, dict) and body.get("error") is not None:
            error_text = json.dumps(body["error"], default=str)
            if self._is_not_found_message(error_text):
                raise NotFoundError(
                    code="profile_not_found",
                    message=f"RPC Error: {error_text}",
                    details={"method": method},
                )
            raise TransportError(
                code=LedgerErrorCode.RPC_ERROR.value,
                message=f"RPC Error: {error_text}",
                details={"method": method, "http_status": response.status_code},
            )

        if response.status_code >= 500:
            raise TransportError(
                code=LedgerErrorCode.SERVER_ERROR.value,
                message=f"Ledger server error: {response.status_code}",
                details={"method": method, "http_status": response.status_code},
            )

        if response.status_code != 200:
            raise TransportError(
                code=LedgerErrorCode.RPC_ERROR.value,
                message=f"Unexpected HTTP status: {response.status_code}",
                details={"method": method, "http_status": response.status_code},
            )

        if not isinstance(body, dict) or "result" not in body:
            raise TransportError(
                code=LedgerErrorCode.PARSE_ERROR.value,
                message="Ledger response is not a JSON-RPC result object",
                details={"method": method},
            )

        return body["result"]

    async def _call(self, method: str, params: list) -> Any:
        async def attempt() -> Any:
            return await self.rpc_call(method, params)

        outcome = await self._retry_manager.execute_with_retry(attempt)
        if outcome.success:
            return outcome.result
        self._log_error(
            f"Ledger RPC call {method} failed after {outcome.attempts} attempt(s)",
            outcome.last_error,
            {"method": method},
        )
        raise outcome.last_error

    def _is_not_found_message(self, message: str) -> bool:
        text = message.lower()
        return any(indicator in text for indicator in self.NOT_FOUND_INDICATORS)

    async def lookup_by_name(self, name: str) -> LedgerLookup:
        """
        Look up one domain profile.

        Profiles whose domain flag is not true are reported as NOT_FOUND.

        Args:
            name: Domain name (any letter case)

        Returns:
            LedgerLookup with FOUND, NOT_FOUND, or ERROR status
        """
        start_time = time.perf_counter()
        identifier = derive_identifier(name)
        self._log_debug(
            f"Looking up {name}",
            {"name": name, "identifier": identifier},
        )

        try:
            profile = await self._call("getprofile", [identifier])
        except NotFoundError:
            return LedgerLookup(
                status=LookupStatus.NOT_FOUND,
                response_time_ms=self._elapsed_ms(start_time),
            )
        except TransportError as e:
            return LedgerLookup(
                status=LookupStatus.ERROR,
                error=LedgerError(
                    code=LedgerErrorCode(e.code),
                    message=e.message,
                    http_status_code=e.details.get("http_status"),
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )

        if profile is None:
            return LedgerLookup(
                status=LookupStatus.NOT_FOUND,
                response_time_ms=self._elapsed_ms(start_time),
            )

        if not isinstance(profile, dict):
            return LedgerLookup(
                status=LookupStatus.ERROR,
                error=LedgerError(
                    code=LedgerErrorCode.PARSE_ERROR,
                    message=f"Profile is not an object: {type(profile).__name__}",
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )

        if profile.get("isDomain") is not True:
            self._log_info(f"Profile {identifier} is not a domain", {"name": name})
            return LedgerLookup(
                status=LookupStatus.NOT_FOUND,
                response_time_ms=self._elapsed_ms(start_time),
            )

        return LedgerLookup(
            status=LookupStatus.FOUND,
            record=record_from_profile(name, profile),
            response_time_ms=self._elapsed_ms(start_time),
        )

    async def list_all(self) -> LedgerListing:
        """
        Fetch the full domain listing.

        The listing is an authoritative snapshot: a name absent from it is
        removed or never existed. Malformed entries are skipped.

        Raises:
            TransportError: If the ledger is unreachable or the listing is
                malformed as a whole
        """
        try:
            result = await self._call("getdomainprofiles", [])
        except NotFoundError as e:
            raise TransportError(
                code=LedgerErrorCode.RPC_ERROR.value,
                message=e.message,
                details=e.details,
            ) from e

        if not isinstance(result, dict) or not isinstance(result.get("domains"), list):
            raise TransportError(
                code=LedgerErrorCode.PARSE_ERROR.value,
                message="Domain listing has no 'domains' array",
            )

        domains = result["domains"]
        try:
            total = int(result.get("total", len(domains)))
        except (TypeError, ValueError):
            total = len(domains)

        records: list[DomainRecord] = []
        skipped = 0
        for entry in domains:
            if not isinstance(entry, dict):
                skipped += 1
                self._log_warn("Skipping non-object listing entry", {"entry": repr(entry)})
                continue
            try:
                record = record_from_listing_entry(entry)
            except (ValueError, InternalError) as e:
                skipped += 1
                self._log_warn(f"Skipping listing entry: {e}")
                continue

            profile_id = entry.get("profile_id")
            if profile_id and str(profile_id).lower() != record.identifier:
                self._log_warn(
                    f"Listing profile_id for {record.name} differs from derived identifier",
                    {"profile_id": profile_id, "identifier": record.identifier},
                )
            records.append(record)

        self._log_info(
            f"Retrieved {total} domain profiles from ledger",
            {"total": total, "parsed": len(records), "skipped": skipped},
        )
        return LedgerListing(records=records, total=total, skipped=skipped)

    def _simulated_call(self, method: str, params: list) -> Any:
        """Answer RPC calls from SIMULATED_PROFILES without network access."""
        if method == "getprofile":
            identifier = str(params[0]).lower() if params else ""
            for name, profile in self.SIMULATED_PROFILES.items():
                if derive_identifier(name) == identifier:
                    return copy.deepcopy(profile)
            return None

        if method == "getdomainprofiles":
            domains = [
                {
                    "profile_id": derive_identifier(name),
                    "name": name,
                    "ip": profile.get("link", ""),
                    "rps": profile.get("rps"),
                    "height": 0,
                    "extra": profile.get("appData"),
                    "owner": profile.get("owner"),
                }
                for name, profile in self.SIMULATED_PROFILES.items()
            ]
            return {"total": len(domains), "domains": domains}

        raise TransportError(
            code=LedgerErrorCode.RPC_ERROR.value,
            message=f"RPC Error: unknown method {method}",
            details={"method": method},
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    @property
    def simulation_mode(self) -> bool:
        return self._config.simulation_mode
