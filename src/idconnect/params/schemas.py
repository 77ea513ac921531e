"""Pydantic v2 schemas for Parameter Items.

A Parameter Item describes one configurable field.  Arrays of items are the
output of every connection, configuration and class-read metadata call and
are rendered as forms by the host.  Items serialize with camelCase aliases
(``passwordFlag``, ``disabledWhen`` ...) and are frozen once built.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, JsonValue, model_validator
from pydantic.alias_generators import to_camel


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ParameterType(str, Enum):
    STATIC_TEXT = "static-text"
    TEXTBOX = "textbox"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    CHECKGROUP = "checkgroup"
    DATE = "date"
    COMBO = "combo"
    GRID = "grid"


# Types backed by a table of selectable rows
TABLE_TYPES = frozenset(
    {ParameterType.RADIO, ParameterType.CHECKGROUP, ParameterType.COMBO, ParameterType.GRID}
)


class SelectionMode(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class VisibilityRef(_Schema):
    """Reference to a sibling item controlling visibility or enablement.

    Accepts the compact wire form ``"name"`` / ``"!name"`` as well as the
    tagged object form ``{"targetName": ..., "negated": ...}``.
    """

    target_name: str
    negated: bool = False

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            negated = data.startswith("!")
            name = data[1:] if negated else data
            return {"target_name": name.strip(), "negated": negated}
        return data

    def __str__(self) -> str:
        return f"!{self.target_name}" if self.negated else self.target_name


class ParameterTable(_Schema):
    """Rows plus column/selection settings for table-backed items.

    ``value_column``/``display_column`` apply to radio, checkgroup and combo;
    ``columns``/``key_column``/``selection_mode`` apply to grid.
    """

    rows: list[dict[str, JsonValue]] = []
    value_column: str | None = None
    display_column: str | None = None
    columns: list[str] | None = None
    key_column: str | None = None
    selection_mode: SelectionMode = SelectionMode.SINGLE
    filterable: bool = False
    checkbox: bool = False

    def referenced_columns(self) -> set[str]:
        """Columns every row must carry."""
        cols = {c for c in (self.value_column, self.display_column, self.key_column) if c}
        cols.update(self.columns or ())
        return cols


class ParameterItem(_Schema):
    name: str
    type: ParameterType
    label: str | None = None
    tooltip: str | None = None
    value: JsonValue = None
    password_flag: bool = False
    disabled_when: VisibilityRef | None = None
    hidden_when: VisibilityRef | None = None
    table: ParameterTable | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> "ParameterItem":
        if not self.name:
            raise ValueError("parameter item name must not be empty")

        if self.type in TABLE_TYPES:
            if self.table is None:
                raise ValueError(f"item '{self.name}' of type {self.type.value} requires a table")
            if self.type is ParameterType.GRID:
                if not self.table.key_column or not self.table.columns:
                    raise ValueError(f"grid item '{self.name}' requires columns and keyColumn")
            elif not self.table.value_column:
                raise ValueError(f"item '{self.name}' requires table.valueColumn")
            missing = [
                col
                for row in self.table.rows
                for col in sorted(self.table.referenced_columns())
                if col not in row
            ]
            if missing:
                raise ValueError(
                    f"table rows of item '{self.name}' lack columns: {sorted(set(missing))}"
                )
        elif self.table is not None:
            raise ValueError(f"item '{self.name}' of type {self.type.value} cannot carry a table")

        if self.value is not None:
            self._check_value()
        return self

    def _check_value(self) -> None:
        if self.type is ParameterType.CHECKBOX and not isinstance(self.value, bool):
            raise ValueError(f"checkbox item '{self.name}' needs a boolean value")
        if self.type is ParameterType.CHECKGROUP and not isinstance(self.value, list):
            raise ValueError(f"checkgroup item '{self.name}' needs a list value")
        if self.type is ParameterType.DATE:
            if not isinstance(self.value, str):
                raise ValueError(f"date item '{self.name}' needs an ISO date string")
            try:
                date.fromisoformat(self.value)
            except ValueError as exc:
                raise ValueError(f"date item '{self.name}': {exc}") from exc

    def dump(self) -> dict[str, Any]:
        """Wire representation (camelCase, unset optional fields dropped)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SessionPolicy(_Schema):
    """Pooling settings carried by the reserved connection-phase items."""

    nr_of_sessions: int = 1
    sessions_idle_timeout: float = 0

    @property
    def expires(self) -> bool:
        return self.sessions_idle_timeout > 0
