"""
Property-based tests for the Ledger Client.

HTTP traffic is served by ``httpx.MockTransport`` so that request shape,
response translation and failure classification can be checked without a
ledger node.
"""

import asyncio
import base64
import json
import string

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import httpx

from ledger_resolver.config import LedgerConfig, RetryConfig
from ledger_resolver.enums import LedgerErrorCode, LookupStatus
from ledger_resolver.exceptions import NotFoundError, TransportError
from ledger_resolver.identifier import derive_identifier
from ledger_resolver.ledger_client import LedgerClient, LedgerSource
from ledger_resolver.models import ADDRESS_PLACEHOLDER


RPC_URL = "http://ledger.test:8332/"

FAST_RETRY = RetryConfig(max_retries=2, base_delay_seconds=0.0, max_delay_seconds=0.0)


def make_client(handler, **config_overrides) -> LedgerClient:
    config = LedgerConfig(
        rpc_url=RPC_URL,
        rpc_user=config_overrides.pop("rpc_user", "rpcuser"),
        rpc_password=config_overrides.pop("rpc_password", "rpcpass"),
        **config_overrides,
    )
    return LedgerClient(config, retry_config=FAST_RETRY, transport=httpx.MockTransport(handler))


def rpc_result(result) -> httpx.Response:
    return httpx.Response(200, json={"result": result, "error": None, "id": "ledger-resolver"})


def domain_profile(address: str = "10.0.0.1", **extra) -> dict:
    profile = {
        "link": address,
        "owner": "0xowner",
        "signer": "0xsigner",
        "appData": {"b": 2, "a": 1},
        "rps": 90,
        "isRented": False,
        "isDomain": True,
        "ownedProfiles": [
            {"id": "0xsub", "name": "Sub.Alpha.Domain", "link": "10.0.0.9", "isDomain": True},
        ],
    }
    profile.update(extra)
    return profile


def domain_name_strategy() -> st.SearchStrategy[str]:
    label = st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=20)
    return st.builds(lambda l: f"{l}.domain", label)


class TestRequestShapeProperty:
    """Lookups send a JSON-RPC 1.0 getprofile with the derived identifier."""

    @given(name=domain_name_strategy())
    @settings(max_examples=30, deadline=None)
    def test_getprofile_carries_identifier_and_basic_auth(self, name: str) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return rpc_result(domain_profile())

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name(name)

        result = asyncio.run(run_test())

        assert result.status == LookupStatus.FOUND
        assert len(seen) == 1
        body = json.loads(seen[0].content)
        assert body["jsonrpc"] == "1.0"
        assert body["method"] == "getprofile"
        assert body["params"] == [derive_identifier(name)]
        expected_auth = base64.b64encode(b"rpcuser:rpcpass").decode("ascii")
        assert seen[0].headers["Authorization"] == f"Basic {expected_auth}"

    def test_no_auth_header_without_credentials(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return rpc_result(None)

        async def run_test():
            async with make_client(handler, rpc_user="", rpc_password="") as client:
                return await client.lookup_by_name("alpha.domain")

        asyncio.run(run_test())
        assert "Authorization" not in seen[0].headers


class TestProfileTranslation:
    """Wire profiles become lowercased, identifier-keyed records."""

    def test_found_profile_is_translated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return rpc_result(domain_profile())

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("Alpha.Domain")

        result = asyncio.run(run_test())
        record = result.record

        assert record.name == "alpha.domain"
        assert record.identifier == derive_identifier("alpha.domain")
        assert record.address == "10.0.0.1"
        assert record.metadata == '{"a":1,"b":2}'
        assert record.owned_subrecords[0].name == "sub.alpha.domain"
        assert record.owned_subrecords[0].address == "10.0.0.9"

    def test_missing_link_uses_placeholder(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return rpc_result(domain_profile(address=None))

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.record.address == ADDRESS_PLACEHOLDER


class TestAbsenceVersusFailureProperty:
    """Legitimate absence is never confused with a transport failure."""

    @given(profile=st.sampled_from([
        None,
        {"link": "10.0.0.1", "isDomain": False},
        {"link": "10.0.0.1"},
        {"link": "10.0.0.1", "isDomain": "true"},
    ]))
    @settings(max_examples=10, deadline=None)
    def test_null_or_non_domain_is_not_found(self, profile) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return rpc_result(profile)

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.NOT_FOUND
        assert result.error is None

    def test_rpc_not_found_message_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -5, "message": "Profile not found"}},
            )

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        assert asyncio.run(run_test()).status == LookupStatus.NOT_FOUND

    def test_rpc_call_raises_not_found_error(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -5, "message": "Profile does not exist"}},
            )

        async def run_test():
            async with make_client(handler) as client:
                return await client.rpc_call("getprofile", ["00"])

        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(run_test())
        assert exc_info.value.code == "profile_not_found"
        assert len(calls) == 1

    def test_rpc_error_is_error_without_retry(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(
                200,
                json={"result": None, "error": {"code": -8, "message": "Invalid identifier parameter"}},
            )

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.RPC_ERROR
        assert len(calls) == 1

    def test_server_error_is_retried_then_reported(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="unavailable")

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.SERVER_ERROR
        assert result.error.http_status_code == 503
        assert len(calls) == FAST_RETRY.max_retries + 1

    def test_timeout_is_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.TIMEOUT

    def test_connection_failure_is_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.NETWORK_ERROR

    def test_auth_failure_is_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.AUTH_ERROR

    def test_non_object_profile_is_parse_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return rpc_result(["unexpected"])

        async def run_test():
            async with make_client(handler) as client:
                return await client.lookup_by_name("alpha.domain")

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.ERROR
        assert result.error.code == LedgerErrorCode.PARSE_ERROR


class TestListing:
    """Bulk listing translation and failure handling."""

    def test_listing_entries_are_translated_and_malformed_skipped(self) -> None:
        listing = {
            "total": 4,
            "domains": [
                {
                    "profile_id": derive_identifier("alpha.domain"),
                    "name": "Alpha.Domain",
                    "ip": "10.0.0.1",
                    "rps": 5,
                    "height": 100,
                    "extra": "x",
                    "owner": "0xowner",
                },
                {"profile_id": "ffff", "name": "beta.domain", "ip": ""},
                {"ip": "10.0.0.3"},
                "garbage",
            ],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["method"] == "getdomainprofiles"
            return rpc_result(listing)

        async def run_test():
            async with make_client(handler) as client:
                return await client.list_all()

        result = asyncio.run(run_test())

        assert result.total == 4
        assert result.skipped == 2
        assert [r.name for r in result.records] == ["alpha.domain", "beta.domain"]
        alpha, beta = result.records
        assert alpha.address == "10.0.0.1"
        assert alpha.owner == "0xowner"
        assert alpha.metadata == '{"extra":"x","height":100,"rps":5}'
        assert alpha.is_domain is True
        assert alpha.is_banned is False
        # A disagreeing profile_id never overrides the derived identifier
        assert beta.identifier == derive_identifier("beta.domain")
        assert beta.address == ADDRESS_PLACEHOLDER

    def test_listing_transport_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def run_test():
            async with make_client(handler) as client:
                return await client.list_all()

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(run_test())
        assert exc_info.value.code == "network_error"

    def test_listing_without_domains_array_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return rpc_result({"total": 0})

        async def run_test():
            async with make_client(handler) as client:
                return await client.list_all()

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(run_test())
        assert exc_info.value.code == "parse_error"

    def test_unhashable_and_unservable_names_are_skipped(self) -> None:
        # \ud800 decodes to a lone surrogate, which has no UTF-8 encoding
        body = (
            b'{"result": {"total": 4, "domains": ['
            b'{"name": "good.domain", "ip": "10.0.0.1"},'
            b'{"name": "bad\\ud800.domain"},'
            b'{"name": "two words.domain"},'
            b'{"name": "tab\\tname.domain"}'
            b']}, "error": null, "id": "ledger-resolver"}'
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body, headers={"Content-Type": "application/json"})

        async def run_test():
            async with make_client(handler) as client:
                return await client.list_all()

        result = asyncio.run(run_test())

        assert [r.name for r in result.records] == ["good.domain"]
        assert result.skipped == 3
        assert result.total == 4

    def test_listing_not_found_rpc_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -5, "message": "No such method"}},
            )

        async def run_test():
            async with make_client(handler) as client:
                return await client.list_all()

        with pytest.raises(TransportError) as exc_info:
            asyncio.run(run_test())
        assert exc_info.value.code == "rpc_error"


class TestSimulationModeProperty:
    """Simulation mode answers from built-in profiles without HTTP."""

    @given(name=st.sampled_from(["example.domain", "EXAMPLE.domain", "test.domain"]))
    @settings(max_examples=10, deadline=None)
    def test_simulated_profiles_resolve(self, name: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("simulation mode made a network request")

        async def run_test():
            async with make_client(handler, simulation_mode=True) as client:
                return await client.lookup_by_name(name)

        result = asyncio.run(run_test())
        assert result.status == LookupStatus.FOUND
        assert result.record.name == name.lower()

    def test_simulated_unknown_name_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("simulation mode made a network request")

        async def run_test():
            async with make_client(handler, simulation_mode=True) as client:
                return (
                    await client.lookup_by_name("unknown.domain"),
                    await client.list_all(),
                )

        lookup, listing = asyncio.run(run_test())
        assert lookup.status == LookupStatus.NOT_FOUND
        assert sorted(r.name for r in listing.records) == ["example.domain", "test.domain"]

    def test_client_satisfies_ledger_source(self) -> None:
        client = LedgerClient(LedgerConfig(simulation_mode=True))
        assert isinstance(client, LedgerSource)
