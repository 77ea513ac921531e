"""Pydantic v2 schemas for Semantics Descriptors.

A class operation declares its intent through its metadata call: either a
create/update/delete descriptor with per-parameter allowances, or a
memberships-update descriptor naming the parent class.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from idconnect.errors import ConfigurationError

WILDCARD = "*"


class Allowance(str, Enum):
    MANDATORY = "mandatory"
    PROHIBITED = "prohibited"
    OPTIONAL = "optional"


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class CudSemantics(_Schema):
    """Create, update or delete intent.

    ``parameter_allowances`` maps parameter names (or ``"*"`` for every
    parameter not named) to an allowance.  Names left out are optional.
    The field also accepts a list of ``{"name": ..., "allowance": ...}``
    pairs; a name may appear only once, the wildcard included.
    """

    kind: Literal["create", "update", "delete"]
    parameter_allowances: dict[str, Allowance] = {}

    @field_validator("parameter_allowances", mode="before")
    @classmethod
    def _from_pairs(cls, value: Any) -> Any:
        if isinstance(value, Mapping) or value is None:
            return value or {}
        allowances: dict[str, Any] = {}
        for entry in value:
            if isinstance(entry, Mapping):
                name, allowance = entry.get("name"), entry.get("allowance")
            else:
                name, allowance = entry
            if name in allowances:
                label = "wildcard" if name == WILDCARD else f"parameter '{name}'"
                raise ValueError(f"duplicate allowance for {label}")
            allowances[name] = allowance
        return allowances

    @property
    def wildcard(self) -> Allowance:
        return self.parameter_allowances.get(WILDCARD, Allowance.OPTIONAL)

    def allowance_for(self, name: str) -> Allowance:
        """Effective allowance of ``name``; the wildcard applies to unnamed parameters."""
        return self.parameter_allowances.get(name, self.wildcard)


class MembershipsUpdateSemantics(_Schema):
    """Membership mutation of ``parent_class_name``.

    The allowances are fixed: ``group``, ``add`` and ``remove`` are
    mandatory and every other parameter is prohibited.
    """

    kind: Literal["memberships-update"] = "memberships-update"
    parent_class_name: str

    @property
    def parameter_allowances(self) -> dict[str, Allowance]:
        return {
            "group": Allowance.MANDATORY,
            "add": Allowance.MANDATORY,
            "remove": Allowance.MANDATORY,
            WILDCARD: Allowance.PROHIBITED,
        }

    @property
    def wildcard(self) -> Allowance:
        return Allowance.PROHIBITED

    def allowance_for(self, name: str) -> Allowance:
        return self.parameter_allowances.get(name, self.wildcard)


SemanticsDescriptor = Annotated[
    Union[CudSemantics, MembershipsUpdateSemantics],
    Field(discriminator="kind"),
]

_DESCRIPTOR_ADAPTER: TypeAdapter[SemanticsDescriptor] = TypeAdapter(SemanticsDescriptor)


def parse_semantics(data: str | bytes | Mapping[str, Any]) -> CudSemantics | MembershipsUpdateSemantics:
    """Decode a descriptor from its wire form."""
    try:
        if isinstance(data, (str, bytes)):
            return _DESCRIPTOR_ADAPTER.validate_json(data)
        return _DESCRIPTOR_ADAPTER.validate_python(data)
    except SchemaError as exc:
        raise ConfigurationError(f"Malformed semantics descriptor: {exc}") from exc


def dump_semantics(descriptor: CudSemantics | MembershipsUpdateSemantics) -> dict[str, Any]:
    """Wire representation of a descriptor."""
    return descriptor.model_dump(by_alias=True, mode="json")
