"""
Property-based tests for Audit Logger module.

Uses Hypothesis to verify output formats, level filtering, credential masking
and error context.
"""

import json
from io import StringIO

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from ledger_resolver.audit_logger import AuditLogger, ComponentLogging
from ledger_resolver.enums import LogLevel
from ledger_resolver.exceptions import TransportError


SENSITIVE_PATTERNS = sorted(AuditLogger.SENSITIVE_KEYS)


@st.composite
def component_name_strategy(draw) -> str:
    """Generate valid component names."""
    return draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-"),
        min_size=1,
        max_size=50,
    ))


@st.composite
def message_strategy(draw) -> str:
    """Generate valid log messages."""
    return draw(st.text(
        alphabet=st.characters(
            whitelist_categories=('L', 'N', 'P', 'S', 'Z'),
            blacklist_characters='\x00\n\r',
        ),
        min_size=1,
        max_size=200,
    ))


@st.composite
def non_sensitive_key_strategy(draw) -> str:
    """Generate keys that are NOT sensitive."""
    key = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"),
        min_size=1,
        max_size=20,
    ))
    for pattern in SENSITIVE_PATTERNS:
        assume(pattern not in key)
    return key


@st.composite
def sensitive_key_strategy(draw) -> str:
    """Generate keys that ARE sensitive."""
    base = draw(st.sampled_from(SENSITIVE_PATTERNS))
    prefix = draw(st.sampled_from(["", "ledger_", "rpc_", "mirror_"]))
    return draw(st.sampled_from([prefix + base, (prefix + base).upper()]))


class TestDualFormatProperty:
    """Each entry is written in every configured format."""

    @given(
        level=st.sampled_from(list(LogLevel)),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_both_format_writes_json_and_text(
        self,
        level: LogLevel,
        component: str,
        message: str,
    ) -> None:
        stream = StringIO()
        logger = AuditLogger(output_format="both", level="debug", output_stream=stream)

        entry = logger.log(level, component, message, {"name": "alpha.domain"})

        lines = stream.getvalue().splitlines()
        assert entry is not None
        assert len(lines) == 2
        parsed = json.loads(lines[0])
        assert parsed["level"] == level.value
        assert parsed["component"] == component
        assert parsed["message"] == message
        assert parsed["data"] == {"name": "alpha.domain"}
        assert f"[{component}]" in lines[1]
        assert level.value.upper() in lines[1]

    @given(message=message_strategy())
    @settings(max_examples=50)
    def test_json_only_format(self, message: str) -> None:
        stream = StringIO()
        logger = AuditLogger(output_format="json", output_stream=stream)

        logger.log(LogLevel.INFO, "Resolver", message)

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == message


class TestLevelFilterProperty:
    """Entries below the minimum level are dropped."""

    @given(
        minimum=st.sampled_from(list(LogLevel)),
        level=st.sampled_from(list(LogLevel)),
    )
    @settings(max_examples=50)
    def test_only_entries_at_or_above_minimum_written(
        self,
        minimum: LogLevel,
        level: LogLevel,
    ) -> None:
        order = list(LogLevel)
        stream = StringIO()
        logger = AuditLogger(level=minimum.value, output_stream=stream)

        entry = logger.log(level, "Resolver", "message")

        expected = order.index(level) >= order.index(minimum)
        assert (entry is not None) == expected
        assert bool(stream.getvalue()) == expected
        assert len(logger.entries) == (1 if expected else 0)

    def test_invalid_level_rejected(self) -> None:
        try:
            AuditLogger(level="verbose")
        except ValueError:
            return
        raise AssertionError("invalid level should raise ValueError")


class TestSensitiveDataMaskingProperty:
    """Credentials never reach the output stream."""

    @given(
        key=sensitive_key_strategy(),
        value=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=8, max_size=40),
    )
    @settings(max_examples=100)
    def test_sensitive_data_masked(self, key: str, value: str) -> None:
        stream = StringIO()
        logger = AuditLogger(output_format="json", output_stream=stream)

        logger.log(LogLevel.INFO, "LedgerClient", "connecting", {key: value})

        assert value not in stream.getvalue()
        assert logger.entries[0].data[key] == AuditLogger.MASK_VALUE

    @given(
        key=non_sensitive_key_strategy(),
        value=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=40),
    )
    @settings(max_examples=100)
    def test_non_sensitive_data_not_masked(self, key: str, value: str) -> None:
        logger = AuditLogger(output_stream=StringIO())

        entry = logger.log(LogLevel.INFO, "Resolver", "lookup", {key: value})

        assert entry.data[key] == value

    @given(key=sensitive_key_strategy())
    @settings(max_examples=50)
    def test_nested_sensitive_data_masked(self, key: str) -> None:
        logger = AuditLogger(output_stream=StringIO())
        data = {
            "ledger": {key: "hunter2-secret-value", "rpc_url": "http://127.0.0.1:8332/"},
            "attempts": [{key: "hunter2-secret-value"}],
        }

        masked = logger.mask_sensitive_data(data)

        assert masked["ledger"][key] == AuditLogger.MASK_VALUE
        assert masked["ledger"]["rpc_url"] == "http://127.0.0.1:8332/"
        assert masked["attempts"][0][key] == AuditLogger.MASK_VALUE
        assert data["ledger"][key] == "hunter2-secret-value"


class TestErrorContextProperty:
    """Error entries carry the exception's type, message and code."""

    @given(message=message_strategy(), code=st.sampled_from(["timeout", "network_error", "rpc_error"]))
    @settings(max_examples=50)
    def test_error_logs_include_error_context(self, message: str, code: str) -> None:
        logger = AuditLogger(output_stream=StringIO())
        error = TransportError(code=code, message=message)

        entry = logger.log_error("LedgerClient", "lookup failed", error, {"name": "alpha.domain"})

        assert entry.level == LogLevel.ERROR
        assert entry.data["error_message"] == message
        assert entry.data["error_type"] == "TransportError"
        assert entry.data["error_code"] == code
        assert entry.data["name"] == "alpha.domain"

    def test_plain_exception_has_no_code(self) -> None:
        logger = AuditLogger(output_stream=StringIO())

        entry = logger.log_error("Resolver", "boom", ValueError("bad"))

        assert entry.data["error_type"] == "ValueError"
        assert "error_code" not in entry.data


class TestComponentLogging:
    """Components log through an optional injected logger."""

    class Component(ComponentLogging):
        COMPONENT = "Widget"

        def __init__(self, logger=None) -> None:
            self._logger = logger

        def work(self) -> None:
            self._log_debug("debug")
            self._log_info("info", {"k": 1})
            self._log_warn("warn")
            self._log_error("error", ValueError("x"))

    def test_helpers_tag_component(self) -> None:
        logger = AuditLogger(level="debug", output_stream=StringIO())

        self.Component(logger).work()

        assert [e.level for e in logger.entries] == list(LogLevel)
        assert {e.component for e in logger.entries} == {"Widget"}

    def test_helpers_without_logger_are_silent(self) -> None:
        self.Component().work()
