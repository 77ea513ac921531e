"""Shared pytest fixtures for the connector tests.

The sample directory connector runs against an in-memory SQLite database;
every test gets a fresh connector and therefore a fresh database.
"""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from fakes import CountingPool, RecordingConnector
from idconnect.host import ConnectorHost
from idconnect.main import create_app
from idconnect.sample.connector import DirectoryConnector


# ---------------------------------------------------------------------------
# Recording connector
# ---------------------------------------------------------------------------

@pytest.fixture()
def recording() -> RecordingConnector:
    return RecordingConnector()


@pytest.fixture()
def recording_pool(recording: RecordingConnector) -> CountingPool:
    return CountingPool(recording, acquire_timeout=0.2)


@pytest.fixture()
def recording_host(recording: RecordingConnector, recording_pool: CountingPool) -> Generator[ConnectorHost, None, None]:
    host = ConnectorHost(recording, pool=recording_pool)
    yield host
    host.close()


# ---------------------------------------------------------------------------
# Sample directory connector
# ---------------------------------------------------------------------------

@pytest.fixture()
def system_params() -> dict:
    """Resolved connection + configuration parameters for the sample connector."""
    return {
        "database_url": "sqlite://",
        "nr_of_sessions": 2,
        "sessions_idle_timeout": 0,
        "page_size": 2,
        "include_disabled": False,
        "expose_tables": False,
    }


@pytest.fixture()
def directory() -> DirectoryConnector:
    """A sample connector with its schema provisioned in the in-memory database."""
    connector = DirectoryConnector()
    connector.init_schema({"database_url": "sqlite://"})
    return connector


@pytest.fixture()
def directory_host(directory: DirectoryConnector) -> Generator[ConnectorHost, None, None]:
    host = ConnectorHost(directory)
    yield host
    host.close()


@pytest.fixture()
def seeded(directory_host: ConnectorHost, system_params: dict) -> dict:
    """Create three users and two groups through the connector operations.

    Returns the ids keyed by name so tests need no extra queries.
    """
    for username, enabled in (("alice", True), ("bob", True), ("carol", False)):
        directory_host.invoke(
            "Users",
            "Create",
            system_params,
            {"username": username, "display_name": username.title(), "enabled": enabled},
        )
    for name in ("admins", "staff"):
        directory_host.invoke("Groups", "Create", system_params, {"name": name})

    users = {
        row["username"]: row["id"]
        for row in directory_host.invoke(
            "Users", "Read", system_params, {"only_enabled": False}
        )
    }
    groups = {row["name"]: row["id"] for row in directory_host.invoke("Groups", "Read", system_params)}
    return {"users": users, "groups": groups}


# ---------------------------------------------------------------------------
# FastAPI TestClient
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(directory: DirectoryConnector) -> Generator[TestClient, None, None]:
    """Return a ``TestClient`` serving the sample connector."""
    app = create_app(directory)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
