"""Connector contract: two-phase class reads, class operations and connectors."""

from idconnect.contract.base import (
    READ,
    ClassOperation,
    ClassRead,
    ClassRow,
    Connector,
    FunctionOperation,
    FunctionRead,
)
from idconnect.contract.requests import ALLOWED_MODES, Call, CallRequest, Mode

__all__ = [
    "ALLOWED_MODES",
    "READ",
    "Call",
    "CallRequest",
    "ClassOperation",
    "ClassRead",
    "ClassRow",
    "Connector",
    "FunctionOperation",
    "FunctionRead",
    "Mode",
]
