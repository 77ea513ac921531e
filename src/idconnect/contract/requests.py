"""Call envelope carrying the mode flag.

A host that talks to a connector through a single entry point sends a
``CallRequest``: which call, in which mode, for which (class, operation),
with which resolved parameters.  Each call accepts only its own modes, so a
metadata request can never trigger execution and vice versa.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, JsonValue, model_validator
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from idconnect.contract.base import READ
from idconnect.errors import ConfigurationError


class Mode(str, Enum):
    METADATA = "metadata"
    EXECUTE = "execute"
    TEST = "test"


class Call(str, Enum):
    CONNECTION_INFO = "connection-info"
    CONNECTION_TEST = "connection-test"
    CONFIGURATION_INFO = "configuration-info"
    CLASS_READ = "class-read"
    CLASS_OPERATION = "class-operation"
    DISPATCHER = "dispatcher"


ALLOWED_MODES: dict[Call, frozenset[Mode]] = {
    Call.CONNECTION_INFO: frozenset({Mode.METADATA}),
    Call.CONNECTION_TEST: frozenset({Mode.TEST}),
    Call.CONFIGURATION_INFO: frozenset({Mode.METADATA}),
    Call.CLASS_READ: frozenset({Mode.METADATA, Mode.EXECUTE}),
    Call.CLASS_OPERATION: frozenset({Mode.METADATA, Mode.EXECUTE}),
    Call.DISPATCHER: frozenset({Mode.METADATA, Mode.EXECUTE}),
}


class CallRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    call: Call
    mode: Mode
    class_name: str | None = None
    operation_name: str | None = None
    system_params: dict[str, JsonValue] = {}
    function_params: dict[str, JsonValue] = {}

    @model_validator(mode="before")
    @classmethod
    def _default_read(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and data.get("call") in (Call.CLASS_READ, Call.CLASS_READ.value):
            data = dict(data)
            if not data.get("operationName") and not data.get("operation_name"):
                data["operation_name"] = READ
        return data

    @model_validator(mode="after")
    def _check_mode(self) -> "CallRequest":
        if self.mode not in ALLOWED_MODES[self.call]:
            raise ValueError(f"mode '{self.mode.value}' is not valid for call '{self.call.value}'")
        if self.call in (Call.CLASS_READ, Call.CLASS_OPERATION) and not self.class_name:
            raise ValueError(f"call '{self.call.value}' requires className")
        if self.call is Call.CLASS_OPERATION and not self.operation_name:
            raise ValueError("call 'class-operation' requires operationName")
        if self.call is Call.CLASS_OPERATION and self.operation_name == READ:
            raise ValueError("use call 'class-read' for the Read operation")
        if self.call is Call.DISPATCHER:
            if self.operation_name and not self.class_name:
                raise ValueError("dispatcher routing requires className with operationName")
            if self.class_name and not self.operation_name:
                raise ValueError("dispatcher routing requires operationName with className")
            if not self.class_name and self.mode is not Mode.METADATA:
                raise ValueError("the dispatcher catalog is a metadata call")
        return self

    @property
    def is_catalog(self) -> bool:
        return self.call is Call.DISPATCHER and self.class_name is None

    @classmethod
    def parse(cls, data: str | bytes | Mapping[str, Any] | "CallRequest") -> "CallRequest":
        """Decode a request, reporting malformed envelopes as ``ConfigurationError``."""
        if isinstance(data, cls):
            return data
        try:
            if isinstance(data, (str, bytes)):
                return cls.model_validate_json(data)
            return cls.model_validate(data)
        except SchemaError as exc:
            raise ConfigurationError(f"Malformed call request: {exc}") from exc
