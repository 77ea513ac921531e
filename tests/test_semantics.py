"""Tests for Semantics Descriptors and the Validation Engine."""

from __future__ import annotations

import pydantic
import pytest

from idconnect.errors import ConfigurationError, ValidationError
from idconnect.semantics import (
    Allowance,
    CudSemantics,
    MembershipsUpdateSemantics,
    dump_semantics,
    parse_semantics,
    validate_function_params,
)


class TestDescriptors:
    def test_cud_wire_form(self):
        """CUD descriptors dump their kind and allowances."""
        descriptor = CudSemantics(
            kind="update",
            parameter_allowances={"id": Allowance.MANDATORY, "*": Allowance.OPTIONAL},
        )
        assert dump_semantics(descriptor) == {
            "kind": "update",
            "parameterAllowances": {"id": "mandatory", "*": "optional"},
        }

    def test_memberships_wire_form(self):
        """Memberships descriptors dump their parent class."""
        descriptor = MembershipsUpdateSemantics(parent_class_name="Groups")
        assert dump_semantics(descriptor) == {
            "kind": "memberships-update",
            "parentClassName": "Groups",
        }

    def test_parse_dispatches_on_kind(self):
        """parse_semantics picks the model from kind."""
        assert isinstance(parse_semantics('{"kind": "delete"}'), CudSemantics)
        parsed = parse_semantics({"kind": "memberships-update", "parentClassName": "Teams"})
        assert isinstance(parsed, MembershipsUpdateSemantics)
        assert parsed.parent_class_name == "Teams"

    @pytest.mark.parametrize(
        "payload",
        [
            {"kind": "merge"},
            {"kind": "memberships-update"},
            {"kind": "create", "parameterAllowances": {"id": "sometimes"}},
        ],
    )
    def test_parse_rejects_malformed(self, payload):
        """Unknown kinds and allowances are a ConfigurationError."""
        with pytest.raises(ConfigurationError):
            parse_semantics(payload)

    def test_allowances_from_pairs(self):
        """Allowances may be given as pairs."""
        descriptor = CudSemantics(
            kind="create",
            parameter_allowances=[("id", "prohibited"), {"name": "*", "allowance": "mandatory"}],
        )
        assert descriptor.allowance_for("id") is Allowance.PROHIBITED
        assert descriptor.allowance_for("anything") is Allowance.MANDATORY

    @pytest.mark.parametrize(
        "pairs",
        [
            [("id", "mandatory"), ("id", "optional")],
            [("*", "prohibited"), ("*", "optional")],
        ],
    )
    def test_duplicate_pairs_rejected(self, pairs):
        """A name may appear only once among the allowances."""
        with pytest.raises(pydantic.ValidationError, match="duplicate allowance"):
            CudSemantics(kind="create", parameter_allowances=pairs)

    def test_unlisted_names_default_to_optional(self):
        """Without a wildcard every name is optional."""
        descriptor = CudSemantics(kind="delete")
        assert descriptor.wildcard is Allowance.OPTIONAL
        assert descriptor.allowance_for("id") is Allowance.OPTIONAL

    def test_memberships_allowances_are_fixed(self):
        """group, add and remove are mandatory, the rest prohibited."""
        descriptor = MembershipsUpdateSemantics(parent_class_name="Groups")
        assert descriptor.allowance_for("group") is Allowance.MANDATORY
        assert descriptor.allowance_for("add") is Allowance.MANDATORY
        assert descriptor.allowance_for("remove") is Allowance.MANDATORY
        assert descriptor.allowance_for("comment") is Allowance.PROHIBITED


class TestCudValidation:
    def test_mandatory_missing_and_empty(self):
        """Missing and blank mandatory values are both reported."""
        descriptor = CudSemantics(kind="create", parameter_allowances={"name": "mandatory", "mail": "mandatory"})
        with pytest.raises(ValidationError) as info:
            validate_function_params(descriptor, {"mail": "  "})
        assert set(info.value.violations) == {"name", "mail"}

    def test_prohibited_present_even_when_null(self):
        """A prohibited name fails even with a null value."""
        descriptor = CudSemantics(kind="update", parameter_allowances={"id": "prohibited"})
        with pytest.raises(ValidationError) as info:
            validate_function_params(descriptor, {"id": None, "name": "x"})
        assert list(info.value.violations) == ["id"]

    def test_named_rule_beats_wildcard(self):
        """A named allowance overrides the wildcard."""
        descriptor = CudSemantics(
            kind="delete",
            parameter_allowances={"id": "mandatory", "*": "prohibited"},
        )
        assert validate_function_params(descriptor, {"id": 7}) == {"id": 7}
        with pytest.raises(ValidationError) as info:
            validate_function_params(descriptor, {"id": 7, "force": True})
        assert list(info.value.violations) == ["force"]

    def test_wildcard_mandatory_requires_values(self):
        """A mandatory wildcard rejects empty values."""
        descriptor = CudSemantics(kind="update", parameter_allowances={"*": "mandatory"})
        with pytest.raises(ValidationError) as info:
            validate_function_params(descriptor, {"a": "x", "b": None, "c": ""})
        assert set(info.value.violations) == {"b", "c"}

    def test_all_optional_passes_anything(self):
        """All-optional descriptors accept any parameters."""
        descriptor = CudSemantics(kind="create")
        params = {"a": None, "b": [], "c": {"d": 1}}
        assert validate_function_params(descriptor, params) == params

    def test_result_is_a_copy(self):
        """The normalized parameters are a new dict."""
        descriptor = CudSemantics(kind="create")
        params = {"a": 1}
        normalized = validate_function_params(descriptor, params)
        normalized["a"] = 2
        assert params == {"a": 1}

    def test_message_omits_values(self):
        """Violation messages never echo values."""
        descriptor = CudSemantics(kind="update", parameter_allowances={"password": "prohibited"})
        with pytest.raises(ValidationError) as info:
            validate_function_params(descriptor, {"password": "hunter2"})
        assert "password" in str(info.value)
        assert "hunter2" not in str(info.value)


class TestMembershipsValidation:
    descriptor = MembershipsUpdateSemantics(parent_class_name="Groups")

    def test_scalar_add_becomes_list_and_empty_remove_is_allowed(self):
        """A scalar add becomes a list and remove may be empty."""
        normalized = validate_function_params(
            self.descriptor, {"group": "350407628", "add": "173875528", "remove": []}
        )
        assert normalized == {"group": "350407628", "add": ["173875528"], "remove": []}

    def test_missing_fields(self):
        """Missing add and remove are reported."""
        with pytest.raises(ValidationError) as info:
            validate_function_params(self.descriptor, {"group": "g"})
        assert set(info.value.violations) == {"add", "remove"}

    def test_extra_parameter_is_prohibited(self):
        """Parameters besides group, add and remove are prohibited."""
        with pytest.raises(ValidationError) as info:
            validate_function_params(
                self.descriptor, {"group": "g", "add": [], "remove": [], "reason": "audit"}
            )
        assert list(info.value.violations) == ["reason"]

    def test_empty_group_rejected(self):
        """An empty group is a violation."""
        with pytest.raises(ValidationError) as info:
            validate_function_params(self.descriptor, {"group": "", "add": ["u"], "remove": []})
        assert list(info.value.violations) == ["group"]
