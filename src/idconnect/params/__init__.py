"""Parameter Item model.

Re-exports the schemas and helpers so connector code can use short imports::

    from idconnect.params import ParameterItem, ParameterType
"""

from idconnect.params.schemas import (
    ParameterItem,
    ParameterTable,
    ParameterType,
    SelectionMode,
    SessionPolicy,
    VisibilityRef,
)
from idconnect.params.values import (
    NR_OF_SESSIONS,
    SESSIONS_IDLE_TIMEOUT,
    decode_params,
    dump_items,
    is_disabled,
    is_hidden,
    parse_items,
    resolve_values,
    session_policy,
    validate_items,
)

__all__ = [
    "NR_OF_SESSIONS",
    "SESSIONS_IDLE_TIMEOUT",
    "ParameterItem",
    "ParameterTable",
    "ParameterType",
    "SelectionMode",
    "SessionPolicy",
    "VisibilityRef",
    "decode_params",
    "dump_items",
    "is_disabled",
    "is_hidden",
    "parse_items",
    "resolve_values",
    "session_policy",
    "validate_items",
]
