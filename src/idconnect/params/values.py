"""Parameter payload decoding, item-array checks and consumer-side helpers.

Payloads cross the host boundary as JSON objects.  ``decode_params`` turns
them into plain dicts of JSON values; everything after that works on dicts.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import JsonValue, TypeAdapter
from pydantic import ValidationError as SchemaError

from idconnect.errors import ConfigurationError
from idconnect.params.schemas import ParameterItem, ParameterType, SessionPolicy

logger = logging.getLogger(__name__)

NR_OF_SESSIONS = "nr_of_sessions"
SESSIONS_IDLE_TIMEOUT = "sessions_idle_timeout"

_PARAMS_ADAPTER: TypeAdapter[dict[str, JsonValue]] = TypeAdapter(dict[str, JsonValue])
_ITEMS_ADAPTER: TypeAdapter[list[ParameterItem]] = TypeAdapter(list[ParameterItem])


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_params(payload: str | bytes | Mapping[str, Any] | None) -> dict[str, JsonValue]:
    """Decode a parameter payload into a dict of JSON values.

    Accepts a JSON document (``str``/``bytes``) or an already-parsed mapping.
    ``None`` and the empty string decode to an empty dict.

    Raises
    ------
    ConfigurationError
        If the payload is not valid JSON or its root is not an object.
    """
    if payload is None:
        return {}
    try:
        if isinstance(payload, (str, bytes)):
            if not payload.strip():
                return {}
            return _PARAMS_ADAPTER.validate_json(payload)
        return _PARAMS_ADAPTER.validate_python(dict(payload))
    except (SchemaError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed parameter payload: {exc}") from exc


def parse_items(data: str | bytes | Sequence[Any]) -> list[ParameterItem]:
    """Decode and check a Parameter Item array received from a connector."""
    try:
        if isinstance(data, (str, bytes)):
            items = _ITEMS_ADAPTER.validate_json(data)
        else:
            items = _ITEMS_ADAPTER.validate_python(list(data))
    except SchemaError as exc:
        raise ConfigurationError(f"Malformed parameter items: {exc}") from exc
    return validate_items(items)


def dump_items(items: Sequence[ParameterItem]) -> list[dict[str, Any]]:
    """Wire representation of an item array."""
    return [item.dump() for item in items]


# ---------------------------------------------------------------------------
# Array invariants
# ---------------------------------------------------------------------------

def validate_items(items: Sequence[ParameterItem]) -> list[ParameterItem]:
    """Check the invariants of one emitted item array.

    Names must be unique and every ``disabledWhen``/``hiddenWhen`` reference
    must name an item of the same array.  Position does not matter.

    Returns the items as a list so calls can be chained.
    """
    seen: set[str] = set()
    duplicates: set[str] = set()
    for item in items:
        if item.name in seen:
            duplicates.add(item.name)
        seen.add(item.name)
    if duplicates:
        raise ConfigurationError(f"Duplicate parameter item names: {sorted(duplicates)}")

    for item in items:
        for field, ref in (("disabledWhen", item.disabled_when), ("hiddenWhen", item.hidden_when)):
            if ref is not None and ref.target_name not in seen:
                raise ConfigurationError(
                    f"Item '{item.name}' {field} references unknown item '{ref.target_name}'"
                )
    return list(items)


# ---------------------------------------------------------------------------
# Consumer side
# ---------------------------------------------------------------------------

def resolve_values(
    items: Sequence[ParameterItem],
    values: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Overlay supplied ``values`` on the defaults declared by ``items``."""
    resolved: dict[str, Any] = {
        item.name: item.value
        for item in items
        if item.type is not ParameterType.STATIC_TEXT and item.value is not None
    }
    resolved.update(values or {})
    return resolved


def _ref_active(ref, items: Sequence[ParameterItem], values: Mapping[str, Any]) -> bool:
    if ref is None:
        return False
    if ref.target_name in values:
        current = values[ref.target_name]
    else:
        current = next((i.value for i in items if i.name == ref.target_name), None)
    return bool(current) != ref.negated


def is_hidden(item: ParameterItem, items: Sequence[ParameterItem], values: Mapping[str, Any]) -> bool:
    """Evaluate ``item.hidden_when`` against the current form ``values``."""
    return _ref_active(item.hidden_when, items, values)


def is_disabled(item: ParameterItem, items: Sequence[ParameterItem], values: Mapping[str, Any]) -> bool:
    """Evaluate ``item.disabled_when`` against the current form ``values``."""
    return _ref_active(item.disabled_when, items, values)


# ---------------------------------------------------------------------------
# Reserved connection settings
# ---------------------------------------------------------------------------

def session_policy(connection_params: Mapping[str, Any]) -> SessionPolicy:
    """Read the reserved pooling settings from connection-phase parameters.

    Missing or empty entries fall back to one session and no idle expiry.
    """
    raw_max = connection_params.get(NR_OF_SESSIONS)
    raw_idle = connection_params.get(SESSIONS_IDLE_TIMEOUT)
    try:
        max_sessions = int(raw_max) if raw_max not in (None, "") else 1
        idle = float(raw_idle) if raw_idle not in (None, "") else 0.0
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid session pool settings: {exc}") from exc

    if max_sessions < 1:
        raise ConfigurationError(f"{NR_OF_SESSIONS} must be at least 1, got {max_sessions}")
    if idle < 0:
        raise ConfigurationError(f"{SESSIONS_IDLE_TIMEOUT} must not be negative, got {idle}")

    logger.debug("session_policy: max=%d idle_timeout=%s", max_sessions, idle)
    return SessionPolicy(nr_of_sessions=max_sessions, sessions_idle_timeout=idle)
