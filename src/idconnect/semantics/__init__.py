"""Semantics Descriptors and the Validation Engine."""

from idconnect.semantics.schemas import (
    WILDCARD,
    Allowance,
    CudSemantics,
    MembershipsUpdateSemantics,
    SemanticsDescriptor,
    dump_semantics,
    parse_semantics,
)
from idconnect.semantics.validation import validate_function_params

__all__ = [
    "WILDCARD",
    "Allowance",
    "CudSemantics",
    "MembershipsUpdateSemantics",
    "SemanticsDescriptor",
    "dump_semantics",
    "parse_semantics",
    "validate_function_params",
]
