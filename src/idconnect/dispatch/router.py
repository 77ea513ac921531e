"""Dispatcher / Router.

Maps ``(class_name, operation_name)`` pairs to contract instances.  Static
classes are registered once when the connector is built; classes that only
exist for a particular back-end system come from catalog providers, which
are asked again on every call.

Usage::

    router = Router()

    @router.read("Users", description="All user accounts")
    def read_users(system_params, function_params, session):
        yield from ...

    router.register_operation("Groups", "MembershipsUpdate", MembershipsOperation())
"""

from __future__ import annotations

import builtins
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

from idconnect.contract.base import (
    READ,
    ClassOperation,
    ClassRead,
    ClassRow,
    Descriptor,
    FunctionOperation,
    FunctionRead,
    Params,
)
from idconnect.dispatch.schemas import ClassCatalogEntry
from idconnect.errors import (
    ConfigurationError,
    ConnectionError,
    ConnectorError,
    OperationError,
    RouteNotFoundError,
)
from idconnect.params.schemas import ParameterItem
from idconnect.params.values import validate_items
from idconnect.semantics.validation import validate_function_params

logger = logging.getLogger(__name__)

Contract = ClassRead | ClassOperation
CatalogProvider = Callable[[Params], Iterable[tuple[ClassCatalogEntry, Contract]]]


class Router:
    """Registration table plus dynamic catalog providers."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], Contract] = {}
        self._display: dict[tuple[str, str], dict[str, Any]] = {}
        self._providers: list[CatalogProvider] = []

    # -- Registration --------------------------------------------------------

    def register_read(self, class_name: str, contract: ClassRead, **display: Any) -> None:
        if not isinstance(contract, ClassRead):
            raise TypeError(f"Read contract for '{class_name}' must be a ClassRead")
        self._register(class_name, READ, contract, display)

    def register_operation(
        self,
        class_name: str,
        operation_name: str,
        contract: ClassOperation,
        **display: Any,
    ) -> None:
        if operation_name == READ:
            raise ValueError("Use register_read() for the Read operation")
        if not isinstance(contract, ClassOperation):
            raise TypeError(
                f"Operation contract for '{class_name}.{operation_name}' must be a ClassOperation"
            )
        self._register(class_name, operation_name, contract, display)

    def _register(
        self,
        class_name: str,
        operation_name: str,
        contract: Contract,
        display: dict[str, Any],
    ) -> None:
        key = (class_name, operation_name)
        if key in self._routes:
            raise ValueError(f"Route already registered: {class_name}.{operation_name}")
        self._routes[key] = contract
        self._display[key] = dict(display)
        logger.debug("register: %s.%s -> %s", class_name, operation_name, type(contract).__name__)

    def read(
        self,
        class_name: str,
        params: list[ParameterItem] | Callable[[Params], list[ParameterItem]] | None = None,
        **display: Any,
    ) -> Callable:
        """Decorator registering a read function ``f(system, function, session)``."""

        def decorator(func: Callable[[Params, Params, Any], Iterator[ClassRow]]) -> Callable:
            self.register_read(class_name, FunctionRead(func, params), **display)
            return func

        return decorator

    def operation(
        self,
        class_name: str,
        operation_name: str,
        semantics: Descriptor | Callable[[Params], Descriptor],
        **display: Any,
    ) -> Callable:
        """Decorator registering an operation function ``f(system, function, session)``."""

        def decorator(func: Callable[[Params, Params, Any], None]) -> Callable:
            self.register_operation(
                class_name, operation_name, FunctionOperation(func, semantics), **display
            )
            return func

        return decorator

    def add_provider(self, provider: CatalogProvider) -> None:
        """Add a provider of run-time (entry, contract) pairs."""
        self._providers.append(provider)

    # -- Discovery -----------------------------------------------------------

    def _dynamic(self, system_params: Params) -> Iterator[tuple[ClassCatalogEntry, Contract]]:
        for provider in self._providers:
            yield from provider(system_params)

    def list_catalog(self, system_params: Params) -> list[ClassCatalogEntry]:
        """Every known (class, operation) pair, static entries first."""
        entries = [
            ClassCatalogEntry(class_name=cls, operation_name=op, **self._display[(cls, op)])
            for cls, op in self._routes
        ]
        seen = set(self._routes)
        for entry, _contract in self._dynamic(system_params):
            key = (entry.class_name, entry.operation_name)
            if key in seen:
                logger.warning(
                    "list_catalog: provider entry %s.%s shadowed by a static route", *key
                )
                continue
            seen.add(key)
            entries.append(entry)
        return entries

    def resolve(self, class_name: str, operation_name: str, system_params: Params) -> Contract:
        """Return the contract serving the pair or raise ``RouteNotFoundError``."""
        contract = self._routes.get((class_name, operation_name))
        if contract is not None:
            return contract
        for entry, candidate in self._dynamic(system_params):
            if entry.class_name == class_name and entry.operation_name == operation_name:
                return candidate
        raise RouteNotFoundError(class_name, operation_name)

    # -- Metadata phase --------------------------------------------------------

    def describe(
        self,
        class_name: str,
        operation_name: str,
        system_params: Params,
    ) -> list[ParameterItem] | Descriptor:
        """Metadata of the pair: items for Read, a descriptor otherwise."""
        contract = self.resolve(class_name, operation_name, system_params)
        try:
            if isinstance(contract, ClassRead):
                return validate_items(contract.describe(system_params))
            return contract.describe(system_params)
        except ConnectorError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Cannot describe {class_name}.{operation_name}: {exc}"
            ) from exc

    # -- Execution phase -------------------------------------------------------

    def validate(
        self,
        class_name: str,
        operation_name: str,
        system_params: Params,
        function_params: Params,
    ) -> dict[str, Any]:
        """Re-describe an operation and check ``function_params`` against it.

        Returns the normalized parameters to hand to :meth:`execute`.
        """
        contract = self.resolve(class_name, operation_name, system_params)
        if not isinstance(contract, ClassOperation):
            raise TypeError(f"{class_name}.{operation_name} is not a class operation")
        descriptor = self.describe(class_name, operation_name, system_params)
        params = validate_function_params(descriptor, function_params)
        logger.debug("validate: %s.%s kind=%s", class_name, operation_name, descriptor.kind)
        return params

    def execute(
        self,
        class_name: str,
        operation_name: str,
        system_params: Params,
        params: Params,
        session: Any = None,
    ) -> None:
        """Run an operation with parameters already returned by :meth:`validate`."""
        contract = self.resolve(class_name, operation_name, system_params)
        if not isinstance(contract, ClassOperation):
            raise TypeError(f"{class_name}.{operation_name} is not a class operation")
        try:
            contract.execute(system_params, params, session)
        except ConnectorError:
            raise
        except builtins.ConnectionError as exc:
            raise ConnectionError(f"{class_name}.{operation_name} lost its connection: {exc}") from exc
        except Exception as exc:
            raise OperationError(
                f"{class_name}.{operation_name} failed: {exc}", cause=exc
            ) from exc

    def invoke(
        self,
        class_name: str,
        operation_name: str,
        system_params: Params,
        function_params: Params,
        session: Any = None,
    ) -> Iterator[ClassRow] | None:
        """Run the pair.

        Reads return a lazy row iterator.  Operations are re-described and
        validated first; a ``ValidationError`` means the operation never ran.
        """
        contract = self.resolve(class_name, operation_name, system_params)
        if isinstance(contract, ClassRead):
            return self._rows(class_name, contract, system_params, function_params, session)

        params = self.validate(class_name, operation_name, system_params, function_params)
        self.execute(class_name, operation_name, system_params, params, session=session)
        return None

    @staticmethod
    def _rows(
        class_name: str,
        contract: ClassRead,
        system_params: Params,
        function_params: Mapping[str, Any],
        session: Any,
    ) -> Iterator[ClassRow]:
        try:
            yield from contract.read(system_params, function_params, session)
        except ConnectorError:
            raise
        except builtins.ConnectionError as exc:
            raise ConnectionError(f"{class_name}.{READ} lost its connection: {exc}") from exc
        except Exception as exc:
            raise OperationError(f"{class_name}.{READ} failed: {exc}", cause=exc) from exc
