"""Validation Engine.

Checks execution-time function parameters against the Semantics Descriptor
declared by the operation's metadata call.  The engine runs before the
operation executes, so an operation never observes invalid input.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from idconnect.errors import ValidationError
from idconnect.semantics.schemas import (
    WILDCARD,
    Allowance,
    CudSemantics,
    MembershipsUpdateSemantics,
)

logger = logging.getLogger(__name__)

# Membership fields handed to the operation as lists
MEMBERSHIP_LIST_FIELDS = ("add", "remove")


def is_empty(value: Any) -> bool:
    """``None`` and blank strings count as empty.

    Empty lists do not: a membership update may legitimately add or remove
    nothing.
    """
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def as_list(value: Any) -> list[Any]:
    """Coerce a scalar to a one-element list; sequences become lists."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def validate_function_params(
    descriptor: CudSemantics | MembershipsUpdateSemantics,
    params: Mapping[str, Any],
) -> dict[str, Any]:
    """Validate ``params`` against ``descriptor`` and return the normalized copy.

    Individually named rules are applied first and always win over the
    wildcard.  The wildcard is consulted only for names that are not listed.
    For memberships updates ``add`` and ``remove`` come back as lists.

    Raises
    ------
    ValidationError
        Listing every offending parameter name.  Values are never reported.
    """
    allowances = descriptor.parameter_allowances
    violations: dict[str, str] = {}

    for name, allowance in allowances.items():
        if name == WILDCARD:
            continue
        if allowance is Allowance.MANDATORY and is_empty(params.get(name)):
            violations[name] = "mandatory parameter is missing"
        elif allowance is Allowance.PROHIBITED and name in params:
            violations[name] = "prohibited parameter is present"

    wildcard = descriptor.wildcard
    for name, value in params.items():
        if name in allowances:
            continue
        if wildcard is Allowance.PROHIBITED:
            violations[name] = "parameter is not allowed"
        elif wildcard is Allowance.MANDATORY and is_empty(value):
            violations[name] = "parameter must not be empty"

    if violations:
        logger.info(
            "validate_function_params: kind=%s rejected parameters %s",
            descriptor.kind,
            sorted(violations),
        )
        raise ValidationError(violations)

    normalized = dict(params)
    if isinstance(descriptor, MembershipsUpdateSemantics):
        for name in MEMBERSHIP_LIST_FIELDS:
            normalized[name] = as_list(normalized[name])
    return normalized
