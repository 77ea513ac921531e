"""Pydantic v2 schemas for dispatcher discovery output."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ClassCatalogEntry(BaseModel):
    """One (class, operation) pair known to the dispatcher.

    Any extra keys are display-only metadata for the host and are kept as
    given.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="allow",
    )

    class_name: str
    operation_name: str

    @property
    def display(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
