"""Abstract connector contracts.

Every operation is answered in one of two phases.  The metadata phase
(``describe``, ``connection_info``, ``configuration_info``) is a pure
function of already-resolved upstream parameters.  The execution phase
(``read``, ``execute``, ``test_connection``) does the work and may have
side effects.

A connector module subclasses :class:`Connector` and registers its classes
on ``self.router`` in :meth:`Connector.register_classes`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from idconnect.params.schemas import ParameterItem
from idconnect.semantics.schemas import CudSemantics, MembershipsUpdateSemantics

if TYPE_CHECKING:
    from idconnect.dispatch.router import Router

Scalar = str | int | float | bool | None
ClassRow = dict[str, Scalar]
Params = Mapping[str, Any]
Descriptor = CudSemantics | MembershipsUpdateSemantics

READ = "Read"


class ClassRead(ABC):
    """Read contract of one class."""

    def describe(self, system_params: Params) -> list[ParameterItem]:
        """Parameter Items accepted by :meth:`read`.  None by default."""
        return []

    @abstractmethod
    def read(
        self,
        system_params: Params,
        function_params: Params,
        session: Any,
    ) -> Iterator[ClassRow]:
        """Yield the class rows lazily.

        Implementations are generators: nothing may be fetched before the
        first row is requested, and rows must not be buffered in full.
        """


class ClassOperation(ABC):
    """Create/update/delete or memberships-update contract of one class."""

    @abstractmethod
    def describe(self, system_params: Params) -> Descriptor:
        """Declare the operation semantics and parameter allowances."""

    @abstractmethod
    def execute(self, system_params: Params, function_params: Params, session: Any) -> None:
        """Perform the operation with already validated parameters."""


class FunctionRead(ClassRead):
    """Adapter turning a plain read function into a :class:`ClassRead`."""

    def __init__(
        self,
        func: Callable[[Params, Params, Any], Iterator[ClassRow]],
        params: Callable[[Params], list[ParameterItem]] | list[ParameterItem] | None = None,
    ) -> None:
        self.func = func
        self.params = params

    def describe(self, system_params: Params) -> list[ParameterItem]:
        if callable(self.params):
            return self.params(system_params)
        return list(self.params or [])

    def read(self, system_params: Params, function_params: Params, session: Any) -> Iterator[ClassRow]:
        return self.func(system_params, function_params, session)


class FunctionOperation(ClassOperation):
    """Adapter turning a plain function plus a descriptor into a :class:`ClassOperation`."""

    def __init__(
        self,
        func: Callable[[Params, Params, Any], None],
        semantics: Callable[[Params], Descriptor] | Descriptor,
    ) -> None:
        self.func = func
        self.semantics = semantics

    def describe(self, system_params: Params) -> Descriptor:
        if callable(self.semantics):
            return self.semantics(system_params)
        return self.semantics

    def execute(self, system_params: Params, function_params: Params, session: Any) -> None:
        self.func(system_params, function_params, session)


class Connector(ABC):
    """A connector module as loaded by the host."""

    #: Display name used in log records
    name: str = "connector"

    def __init__(self, router: Router | None = None) -> None:
        from idconnect.dispatch.router import Router

        self.router = router if router is not None else Router()
        self.register_classes(self.router)

    def register_classes(self, router: Router) -> None:
        """Populate the router.  Called once from ``__init__``."""

    @abstractmethod
    def connection_info(self) -> list[ParameterItem]:
        """Parameter Items describing the connection settings."""

    @abstractmethod
    def test_connection(self, connection_params: Params) -> None:
        """Verify connectivity, raising ``ConnectionError`` on failure."""

    def configuration_info(self, connection_params: Params) -> list[ParameterItem]:
        """Parameter Items describing configuration settings."""
        return []

    @abstractmethod
    def open_session(self, connection_params: Params) -> Any:
        """Open a new back-end session for the pool."""

    def close_session(self, session: Any) -> None:
        """Close a session evicted from the pool."""
        close = getattr(session, "close", None)
        if callable(close):
            close()

    def reset_session(self, session: Any) -> None:
        """Bring a released session back to a clean state before reuse."""

    def unload(self) -> None:
        """Release process-wide state when the host drops the connector."""
