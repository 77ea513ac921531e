"""Connector host.

Drives a loaded :class:`~idconnect.contract.base.Connector` through the
operation surface: connection and configuration metadata, connection test,
dispatcher catalog, describe and invoke.  The host owns the session pool,
splits connection parameters out of the system parameters to key it, and
masks secrets in everything it logs.

The host keeps no per-call state.  Metadata is re-described on every
invoke, so allowances always reflect the current system parameters.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import closing
from typing import Any

from idconnect.contract.base import ClassRead, ClassRow, Connector, Descriptor
from idconnect.contract.requests import Call, CallRequest, Mode
from idconnect.dispatch.schemas import ClassCatalogEntry
from idconnect.errors import ConnectionError, ConnectorError
from idconnect.params.schemas import ParameterItem
from idconnect.params.values import decode_params, validate_items
from idconnect.pool import SessionPool
from idconnect.util.logging import mask_params, masked_names

logger = logging.getLogger(__name__)

Payload = str | bytes | Mapping[str, Any] | None


class ConnectorHost:
    def __init__(self, connector: Connector, pool: SessionPool | None = None) -> None:
        self.connector = connector
        self.pool = pool or SessionPool(
            connector.open_session, connector.close_session, connector.reset_session
        )
        self._unloaded = False

    # -- Helpers ---------------------------------------------------------------

    def _masked(self, params: Mapping[str, Any]) -> Any:
        secret = {item.name for item in self.connector.connection_info() if item.password_flag}
        return mask_params(params, masked_names(secret))

    def connection_params(self, system_params: Mapping[str, Any]) -> dict[str, Any]:
        """The subset of ``system_params`` declared by the connection items."""
        names = {item.name for item in self.connector.connection_info()}
        return {k: v for k, v in system_params.items() if k in names}

    # -- Connection / configuration ----------------------------------------------

    def connection_info(self) -> list[ParameterItem]:
        return validate_items(self.connector.connection_info())

    def test_connection(self, connection_params: Payload) -> None:
        """Run the connector's connection test.

        Any failure surfaces as ``ConnectionError``; nothing is retried.
        """
        params = decode_params(connection_params)
        logger.info(
            "test_connection: connector=%s params=%s", self.connector.name, self._masked(params)
        )
        try:
            self.connector.test_connection(params)
        except ConnectorError as exc:
            logger.warning("test_connection: connector=%s failed: %s", self.connector.name, exc)
            raise
        except Exception as exc:
            logger.warning("test_connection: connector=%s failed: %s", self.connector.name, exc)
            raise ConnectionError(f"Connection test failed: {exc}") from exc
        logger.info("test_connection: connector=%s succeeded", self.connector.name)

    def configuration_info(self, connection_params: Payload) -> list[ParameterItem]:
        params = decode_params(connection_params)
        return validate_items(self.connector.configuration_info(params))

    # -- Dispatcher ----------------------------------------------------------------

    def list_catalog(self, system_params: Payload) -> list[ClassCatalogEntry]:
        params = decode_params(system_params)
        entries = self.connector.router.list_catalog(params)
        logger.debug("list_catalog: connector=%s entries=%d", self.connector.name, len(entries))
        return entries

    def describe(
        self,
        class_name: str,
        operation_name: str,
        system_params: Payload,
    ) -> list[ParameterItem] | Descriptor:
        params = decode_params(system_params)
        return self.connector.router.describe(class_name, operation_name, params)

    def invoke(
        self,
        class_name: str,
        operation_name: str,
        system_params: Payload,
        function_params: Payload = None,
    ) -> Iterator[ClassRow] | None:
        """Execute the pair on a pooled session.

        Reads return a generator that leases its session on the first
        ``next()`` and releases it when exhausted, failed or closed.
        Operations are validated before a session is leased, then run
        immediately and return ``None``.
        """
        system = decode_params(system_params)
        function = decode_params(function_params)
        router = self.connector.router
        contract = router.resolve(class_name, operation_name, system)

        logger.info(
            "invoke: %s.%s system=%s function=%s",
            class_name,
            operation_name,
            self._masked(system),
            self._masked(function),
        )
        if isinstance(contract, ClassRead):
            return self._stream(class_name, operation_name, system, function)

        connection = self.connection_params(system)
        try:
            # Validation needs no session and must not wait for one
            params = router.validate(class_name, operation_name, system, function)
            with self.pool.session(connection) as session:
                router.execute(class_name, operation_name, system, params, session=session)
        except ConnectorError as exc:
            logger.warning("invoke: %s.%s failed: %s", class_name, operation_name, exc)
            raise
        logger.info("invoke: %s.%s completed", class_name, operation_name)
        return None

    def _stream(
        self,
        class_name: str,
        operation_name: str,
        system: dict[str, Any],
        function: dict[str, Any],
    ) -> Iterator[ClassRow]:
        produced = 0
        completed = False
        try:
            with self.pool.session(self.connection_params(system)) as session:
                rows = self.connector.router.invoke(
                    class_name, operation_name, system, function, session=session
                )
                with closing(rows):
                    for row in rows:
                        produced += 1
                        yield row
            completed = True
        except ConnectorError as exc:
            logger.warning(
                "invoke: %s.%s failed after %d rows: %s", class_name, operation_name, produced, exc
            )
            raise
        finally:
            logger.info(
                "invoke: %s.%s %s after %d rows",
                class_name,
                operation_name,
                "completed" if completed else "stopped",
                produced,
            )

    # -- Mode-flag entry point ---------------------------------------------------------

    def handle(self, request: CallRequest | str | bytes | Mapping[str, Any]) -> Any:
        """Serve one :class:`CallRequest` envelope."""
        req = CallRequest.parse(request)
        system, function = req.system_params, req.function_params

        if req.call is Call.CONNECTION_INFO:
            return self.connection_info()
        if req.call is Call.CONNECTION_TEST:
            return self.test_connection(system)
        if req.call is Call.CONFIGURATION_INFO:
            return self.configuration_info(system)
        if req.is_catalog:
            return self.list_catalog(system)
        if req.mode is Mode.METADATA:
            return self.describe(req.class_name, req.operation_name, system)
        return self.invoke(req.class_name, req.operation_name, system, function)

    # -- Teardown ------------------------------------------------------------------------

    def close(self) -> None:
        """Unload hook: drop pooled sessions and let the connector clean up."""
        if self._unloaded:
            return
        self._unloaded = True
        self.pool.close_all()
        self.connector.unload()
        logger.info("close: connector=%s unloaded", self.connector.name)

    def __enter__(self) -> "ConnectorHost":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
