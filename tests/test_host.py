"""Tests for the connector host: sessions, streaming, masking and mode flags."""

from __future__ import annotations

import json
import logging
from itertools import islice

import pytest

from fakes import UnreachableConnector
from idconnect.contract.requests import CallRequest
from idconnect.errors import (
    ConfigurationError,
    ConnectionError,
    OperationError,
    RouteNotFoundError,
    ValidationError,
)
from idconnect.host import ConnectorHost
from idconnect.semantics.schemas import MembershipsUpdateSemantics
from idconnect.util.logging import MASK


# ---------------------------------------------------------------------------
# Class operations
# ---------------------------------------------------------------------------

class TestOperations:
    def test_memberships_update(self, recording_host, recording):
        """MembershipsUpdate describes its parent and runs with normalized arrays."""
        descriptor = recording_host.describe("Groups", "MembershipsUpdate", {})
        assert descriptor == MembershipsUpdateSemantics(parent_class_name="Groups")
        assert descriptor.model_dump(by_alias=True) == {
            "kind": "memberships-update",
            "parentClassName": "Groups",
        }

        result = recording_host.invoke(
            "Groups",
            "MembershipsUpdate",
            {},
            {"group": "350407628", "add": "173875528", "remove": []},
        )
        assert result is None
        assert recording.executed == [
            (
                "Groups.MembershipsUpdate",
                {"group": "350407628", "add": ["173875528"], "remove": []},
            )
        ]

    def test_validation_failure_leases_no_session(self, recording_host, recording, recording_pool):
        """Invalid parameters are rejected before a session is leased."""
        with pytest.raises(ValidationError):
            recording_host.invoke("MyClass", "MyOperation", {}, {"id": "1"})
        assert recording.executed == []
        assert recording.opened == []
        assert recording_pool.releases == 0
        assert len(recording_pool) == 0

    def test_validation_failure_with_unreachable_back_end(self):
        """A down back end does not hide a validation failure."""
        connector = UnreachableConnector()
        with ConnectorHost(connector) as host:
            with pytest.raises(ValidationError) as info:
                host.invoke("MyClass", "MyOperation", {}, {"id": "1"})
            assert list(info.value.violations) == ["id"]

            with pytest.raises(ConnectionError, match="back end down"):
                host.invoke("MyClass", "MyOperation", {}, {"name": "x"})
        assert connector.executed == []

    def test_validation_failure_while_sessions_exhausted(self, recording_host, recording):
        """Validation does not wait for a session held by another call."""
        params = {"nr_of_sessions": 1}
        held = recording_host.invoke("Numbers", "Read", params)
        next(held)
        try:
            with pytest.raises(ValidationError):
                recording_host.invoke("MyClass", "MyOperation", params, {"id": "1"})
        finally:
            held.close()
        assert len(recording.opened) == 1

    def test_operation_failure_surfaces(self, recording_host, recording_pool):
        """Unexpected exceptions from an operation become OperationError."""
        with pytest.raises(OperationError):
            recording_host.invoke("MyClass", "Explode", {}, {})
        assert recording_pool.active_count({}) == 0

    def test_lost_connection_discards_session(self, recording_host, recording, recording_pool):
        """A socket-level ConnectionError surfaces as ConnectionError and drops the session."""
        with pytest.raises(ConnectionError, match="reset by peer"):
            recording_host.invoke("MyClass", "Disconnect", {}, {})
        assert recording.closed == recording.opened
        assert len(recording.closed) == 1
        assert recording_pool.idle_count({}) == 0

    def test_json_payloads(self, recording_host, recording):
        """Parameters may arrive as JSON text."""
        recording_host.invoke("MyClass", "MyOperation", "{}", '{"name": "x"}')
        assert recording.executed == [("MyClass.MyOperation", {"name": "x"})]

    def test_malformed_payload(self, recording_host):
        """Undecodable JSON is a ConfigurationError."""
        with pytest.raises(ConfigurationError):
            recording_host.invoke("MyClass", "MyOperation", "{}", "{broken")

    def test_unknown_route(self, recording_host, recording_pool):
        """Unknown pairs fail before any session is leased."""
        with pytest.raises(RouteNotFoundError):
            recording_host.invoke("Unknown", "Read", {})
        assert recording_pool.releases == 0


# ---------------------------------------------------------------------------
# Streaming reads
# ---------------------------------------------------------------------------

class TestStreaming:
    def test_abandoned_stream_releases_once(self, recording_host, recording, recording_pool):
        """Closing a partly consumed stream releases its session once."""
        rows = recording_host.invoke("Numbers", "Read", {})
        taken = list(islice(rows, 3))
        rows.close()

        assert [r["n"] for r in taken] == [0, 1, 2]
        assert recording.produced == 3
        assert recording_pool.releases == 1
        assert recording_pool.active_count({}) == 0

    def test_no_session_before_first_row(self, recording_host, recording):
        """A read leases nothing until its first row is requested."""
        rows = recording_host.invoke("Numbers", "Read", {})
        assert recording.opened == []
        next(rows)
        assert len(recording.opened) == 1
        rows.close()

    def test_exhausted_stream_reuses_session(self, recording_host, recording):
        """Consecutive reads reuse the same pooled session."""
        first = list(recording_host.invoke("Numbers", "Read", {}))
        second = list(recording_host.invoke("Numbers", "Read", {}))
        assert len(first) == len(second) == 10
        assert {r["session"] for r in first + second} == {recording.opened[0].id}
        assert recording.opened[0].resets == 2

    def test_failing_stream_releases(self, recording_host, recording_pool):
        """A read failing mid-stream releases its session."""
        rows = recording_host.invoke("Failing", "Read", {})
        assert next(rows) == {"n": 0}
        with pytest.raises(OperationError):
            next(rows)
        assert recording_pool.releases == 1
        assert recording_pool.active_count({}) == 0

    def test_concurrent_streams_respect_maximum(self, recording_host, recording):
        """nr_of_sessions bounds concurrent streams."""
        params = {"nr_of_sessions": 1}
        first = recording_host.invoke("Numbers", "Read", params)
        next(first)
        second = recording_host.invoke("Numbers", "Read", params)
        with pytest.raises(ConnectionError, match="Timed out"):
            next(second)
        first.close()

        third = recording_host.invoke("Numbers", "Read", params)
        assert next(third)["n"] == 0
        third.close()
        assert len(recording.opened) == 1


# ---------------------------------------------------------------------------
# Connection phase and masking
# ---------------------------------------------------------------------------

class TestConnection:
    def test_connection_info(self, recording_host):
        """connection_info returns the connector's items."""
        names = [item.name for item in recording_host.connection_info()]
        assert names == ["host", "secret", "nr_of_sessions"]

    def test_connection_params_split(self, recording_host):
        """Only declared connection items key the pool."""
        system = {"host": "h", "secret": "s", "page_size": 10}
        assert recording_host.connection_params(system) == {"host": "h", "secret": "s"}

    def test_test_connection_success(self, recording_host):
        """A passing connection test returns None."""
        assert recording_host.test_connection({"host": "ok"}) is None

    def test_connection_error_propagates(self, recording_host):
        """A ConnectionError from the connector propagates unchanged."""
        with pytest.raises(ConnectionError, match="unreachable"):
            recording_host.test_connection({"host": "unreachable"})

    def test_unexpected_failure_becomes_connection_error(self, recording_host):
        """Other connection-test failures become ConnectionError."""
        with pytest.raises(ConnectionError, match="socket exploded"):
            recording_host.test_connection({"host": "broken"})

    def test_secrets_masked_in_logs(self, recording_host, caplog):
        """Password values never reach the log."""
        caplog.set_level(logging.INFO, logger="idconnect")
        recording_host.test_connection({"host": "ok", "secret": "s3cr3t", "Password": "hunter2"})
        recording_host.invoke(
            "MyClass", "MyOperation", {"secret": "s3cr3t"}, {"accountPassword": "Winter2024!"}
        )
        assert "s3cr3t" not in caplog.text
        assert "hunter2" not in caplog.text
        assert "Winter2024!" not in caplog.text
        assert MASK in caplog.text

    def test_execution_sees_real_values(self, recording_host, recording):
        """Operations receive unmasked values."""
        recording_host.invoke("MyClass", "MyOperation", {}, {"accountPassword": "Winter2024!"})
        assert recording.executed[0][1] == {"accountPassword": "Winter2024!"}


# ---------------------------------------------------------------------------
# Mode-flag entry point
# ---------------------------------------------------------------------------

class TestHandle:
    def test_connection_info_metadata(self, recording_host):
        """connection-info metadata returns the items."""
        items = recording_host.handle({"call": "connection-info", "mode": "metadata"})
        assert items[0].name == "host"

    def test_connection_test(self, recording_host):
        """connection-test envelopes run the connection test."""
        with pytest.raises(ConnectionError):
            recording_host.handle(
                {"call": "connection-test", "mode": "test", "systemParams": {"host": "unreachable"}}
            )

    def test_dispatcher_catalog(self, recording_host):
        """dispatcher metadata returns the catalog."""
        entries = recording_host.handle({"call": "dispatcher", "mode": "metadata"})
        pairs = {(e.class_name, e.operation_name) for e in entries}
        assert ("Numbers", "Read") in pairs
        assert ("Groups", "MembershipsUpdate") in pairs

    def test_class_read_defaults_to_read_operation(self, recording_host):
        """class-read envelopes default to the Read operation."""
        request = CallRequest.parse(
            json.dumps({"call": "class-read", "mode": "execute", "className": "Numbers"})
        )
        assert request.operation_name == "Read"
        rows = list(recording_host.handle(request))
        assert len(rows) == 10

    def test_class_operation_metadata_and_execute(self, recording_host, recording):
        """class-operation envelopes describe, then execute."""
        envelope = {
            "call": "class-operation",
            "className": "Groups",
            "operationName": "MembershipsUpdate",
        }
        descriptor = recording_host.handle(dict(envelope, mode="metadata"))
        assert descriptor.kind == "memberships-update"
        assert recording.executed == []

        recording_host.handle(
            dict(envelope, mode="execute", functionParams={"group": "g", "add": ["u"], "remove": []})
        )
        assert len(recording.executed) == 1

    def test_dispatcher_routes_pairs(self, recording_host, recording):
        """dispatcher execute envelopes route to the named pair."""
        recording_host.handle(
            {
                "call": "dispatcher",
                "mode": "execute",
                "className": "MyClass",
                "operationName": "MyOperation",
                "functionParams": {"name": "x"},
            }
        )
        assert recording.executed == [("MyClass.MyOperation", {"name": "x"})]

    @pytest.mark.parametrize(
        "envelope",
        [
            {"call": "connection-info", "mode": "execute"},
            {"call": "connection-test", "mode": "metadata"},
            {"call": "class-operation", "mode": "test", "className": "A", "operationName": "B"},
            {"call": "class-operation", "mode": "execute", "className": "A"},
            {"call": "class-operation", "mode": "execute", "className": "A", "operationName": "Read"},
            {"call": "dispatcher", "mode": "execute"},
            {"call": "dispatcher", "mode": "metadata", "className": "A"},
            {"call": "unknown", "mode": "metadata"},
        ],
    )
    def test_invalid_envelopes(self, recording_host, recording, envelope):
        """Envelopes that do not fit their call are ConfigurationError."""
        with pytest.raises(ConfigurationError):
            recording_host.handle(envelope)
        assert recording.executed == []


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------

class TestClose:
    def test_close_unloads_once(self, recording, recording_pool):
        """Closing twice unloads the connector once and closes its sessions."""
        with ConnectorHost(recording, pool=recording_pool) as host:
            list(host.invoke("Numbers", "Read", {}))
        host.close()

        assert recording.unloaded == 1
        assert recording.closed == recording.opened
        with pytest.raises(ConnectionError):
            list(host.invoke("Numbers", "Read", {}))
