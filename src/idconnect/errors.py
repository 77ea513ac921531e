"""Exception taxonomy for the connector contract.

Every error is surfaced to the immediate caller.  Nothing in the contract
layer retries; retry policy belongs to the host.
"""

from __future__ import annotations

import builtins


class ConnectorError(Exception):
    """Base class for all connector contract errors."""


class ConnectionError(ConnectorError, builtins.ConnectionError):
    """Connectivity or authentication failure against the back-end system."""


class ConfigurationError(ConnectorError):
    """Upstream parameters are missing or malformed at metadata time."""


class ValidationError(ConnectorError):
    """Execution-time parameters violate the declared semantics.

    ``violations`` maps each offending parameter name to a short reason.
    Parameter values are never included so the message is safe to log.
    """

    def __init__(self, violations: dict[str, str]) -> None:
        self.violations = dict(violations)
        detail = "; ".join(f"{name}: {reason}" for name, reason in sorted(self.violations.items()))
        super().__init__(f"Parameter validation failed ({detail})")


class RouteNotFoundError(ConnectorError):
    """No contract is registered for the requested (class, operation) pair."""

    def __init__(self, class_name: str, operation_name: str) -> None:
        self.class_name = class_name
        self.operation_name = operation_name
        super().__init__(
            f"No route registered for class '{class_name}' operation '{operation_name}'"
        )


class OperationError(ConnectorError):
    """Execution-phase failure of a read or class operation."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)

