"""Sample directory connector.

A complete connector over a small SQLAlchemy directory schema (users,
groups, memberships).  It serves as the reference implementation of the
contract and as the default connector of the HTTP API.

Engines are created lazily, one per distinct database URL, and disposed
when the host unloads the connector.  Pooled sessions are ORM sessions
bound to those engines.  The tables are created only by
:meth:`DirectoryConnector.init_schema`; every other call leaves the
database schema untouched.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any

from sqlalchemy import MetaData, create_engine, inspect, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from idconnect.contract.base import Connector, Params
from idconnect.dispatch.router import Router
from idconnect.dispatch.schemas import ClassCatalogEntry
from idconnect.errors import ConfigurationError, ConnectionError
from idconnect.params.schemas import ParameterItem, ParameterType, VisibilityRef
from idconnect.params.values import NR_OF_SESSIONS, SESSIONS_IDLE_TIMEOUT
from idconnect.sample.classes import (
    GroupCreate,
    GroupMembershipsUpdate,
    GroupsRead,
    MembershipsRead,
    TableRead,
    UserCreate,
    UserDelete,
    UsersRead,
    UserUpdate,
)
from idconnect.sample.models import Base
from idconnect.settings import settings

logger = logging.getLogger(__name__)

DATABASE_URL = "database_url"
USERNAME = "Username"
PASSWORD = "Password"

# Tables served by the static classes; everything else is offered dynamically
_STATIC_TABLES = {"users", "groups", "memberships"}


class DirectoryConnector(Connector):
    name = "sample-directory"

    def __init__(self, router: Router | None = None) -> None:
        self._engines: dict[str, Engine] = {}
        self._engines_lock = threading.Lock()
        super().__init__(router)

    # -- Engines ---------------------------------------------------------------

    @staticmethod
    def database_url(params: Params) -> URL:
        """Build the database URL from the connection parameters."""
        raw = params.get(DATABASE_URL) or settings.SAMPLE_DATABASE_URL
        try:
            url = make_url(str(raw))
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid {DATABASE_URL}: {exc}") from exc
        if params.get(USERNAME):
            url = url.set(username=str(params[USERNAME]))
        if params.get(PASSWORD):
            url = url.set(password=str(params[PASSWORD]))
        return url

    def engine(self, params: Params) -> Engine:
        """Return the cached engine for ``params``.  Nothing is created in the database."""
        url = self.database_url(params)
        key = url.render_as_string(hide_password=False)
        with self._engines_lock:
            engine = self._engines.get(key)
            if engine is None:
                engine = self._create_engine(url)
                self._engines[key] = engine
        return engine

    @staticmethod
    def _create_engine(url: URL) -> Engine:
        kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
            # One shared in-memory database for every session
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        try:
            engine = create_engine(url, **kwargs)
        except SQLAlchemyError as exc:
            raise ConnectionError(f"Cannot open database {url!r}: {exc}") from exc
        logger.info("engine: opened %r", url)
        return engine

    def init_schema(self, params: Params) -> None:
        """Create the directory tables that do not exist yet.

        Never called from a metadata or read path; deployments call it once
        when provisioning the database.
        """
        engine = self.engine(params)
        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as exc:
            raise ConnectionError(f"Cannot create the directory schema: {exc}") from exc
        logger.info("init_schema: directory tables ready in %r", engine.url)

    # -- Connection / configuration --------------------------------------------------

    def connection_info(self) -> list[ParameterItem]:
        return [
            ParameterItem(
                name="intro",
                type=ParameterType.STATIC_TEXT,
                label="Connection to the directory database",
            ),
            ParameterItem(
                name=DATABASE_URL,
                type=ParameterType.TEXTBOX,
                label="Database URL",
                tooltip="SQLAlchemy URL, e.g. postgresql://host/directory",
                value=settings.SAMPLE_DATABASE_URL,
            ),
            ParameterItem(name=USERNAME, type=ParameterType.TEXTBOX, label="User name"),
            ParameterItem(
                name=PASSWORD,
                type=ParameterType.TEXTBOX,
                label="Password",
                password_flag=True,
                disabled_when=VisibilityRef(target_name=USERNAME, negated=True),
            ),
            ParameterItem(
                name=NR_OF_SESSIONS,
                type=ParameterType.TEXTBOX,
                label="Maximum concurrent sessions",
                value=1,
            ),
            ParameterItem(
                name=SESSIONS_IDLE_TIMEOUT,
                type=ParameterType.TEXTBOX,
                label="Idle session timeout (seconds, 0 disables)",
                value=0,
            ),
        ]

    def test_connection(self, connection_params: Params) -> None:
        try:
            with self.engine(connection_params).connect() as conn:
                conn.execute(text("SELECT 1"))
        except ConfigurationError as exc:
            raise ConnectionError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise ConnectionError(f"Cannot reach the directory database: {exc}") from exc

    def configuration_info(self, connection_params: Params) -> list[ParameterItem]:
        return [
            ParameterItem(
                name="page_size",
                type=ParameterType.TEXTBOX,
                label="Rows fetched per round trip",
                value=100,
            ),
            ParameterItem(
                name="include_disabled",
                type=ParameterType.CHECKBOX,
                label="Include disabled accounts by default",
                value=False,
            ),
            ParameterItem(
                name="expose_tables",
                type=ParameterType.CHECKBOX,
                label="Offer other database tables as read-only classes",
                value=False,
            ),
        ]

    # -- Sessions --------------------------------------------------------------------------

    def open_session(self, connection_params: Params) -> Session:
        return Session(self.engine(connection_params))

    def close_session(self, session: Session) -> None:
        session.close()

    def reset_session(self, session: Session) -> None:
        # End the transaction a read left open and expire cached rows
        session.rollback()

    def unload(self) -> None:
        with self._engines_lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()
        logger.info("unload: disposed %d engine(s)", len(engines))

    # -- Classes -------------------------------------------------------------------------------

    def register_classes(self, router: Router) -> None:
        router.register_read("Users", UsersRead(), description="Directory user accounts")
        router.register_operation("Users", "Create", UserCreate())
        router.register_operation("Users", "Update", UserUpdate())
        router.register_operation("Users", "Delete", UserDelete())

        router.register_read("Groups", GroupsRead(), description="Directory groups")
        router.register_operation("Groups", "Create", GroupCreate())
        router.register_operation("Groups", "MembershipsUpdate", GroupMembershipsUpdate())

        router.register_read(
            "Memberships",
            MembershipsRead(self),
            description="Group memberships",
            parentColumn="group_id",
            childColumn="user_id",
        )
        router.add_provider(self.table_classes)

    def table_classes(self, system_params: Params) -> Iterator[tuple[ClassCatalogEntry, TableRead]]:
        """Offer every extra table as a read-only class when configured to."""
        if not system_params.get("expose_tables"):
            return
        engine = self.engine(system_params)
        try:
            names = inspect(engine).get_table_names()
        except SQLAlchemyError as exc:
            raise ConnectionError(f"Cannot list database tables: {exc}") from exc

        metadata = MetaData()
        for name in sorted(set(names) - _STATIC_TABLES):
            table = metadata.tables.get(name)
            if table is None:
                metadata.reflect(bind=engine, only=[name])
                table = metadata.tables[name]
            entry = ClassCatalogEntry(
                class_name=name,
                operation_name="Read",
                description=f"Raw rows of table {name}",
                dynamic=True,
            )
            yield entry, TableRead(table)
