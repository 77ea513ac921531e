"""Pydantic v2 schemas for the connector HTTP endpoints."""

from pydantic import BaseModel, ConfigDict, JsonValue
from pydantic.alias_generators import to_camel


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SystemParamsBody(_Body):
    system_params: dict[str, JsonValue] = {}


class InvokeBody(_Body):
    system_params: dict[str, JsonValue] = {}
    function_params: dict[str, JsonValue] = {}


class ConnectionTestOut(BaseModel):
    status: str
    message: str
