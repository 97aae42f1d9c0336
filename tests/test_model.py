# tests/test_model.py
"""Tests for the immutable schema descriptors."""

import pytest
from pydantic import ValidationError


class TestOccurrence:

    def test_star_max_is_unbounded(self):
        from fhirstruct.schemas.model import UNBOUNDED, FieldSpec

        spec = FieldSpec(name="identifier", type="Identifier", max="*")
        assert spec.max is UNBOUNDED
        assert spec.is_list
        assert spec.max_text == "*"

    def test_numeric_string_max(self):
        from fhirstruct.schemas.model import FieldSpec

        spec = FieldSpec(name="line", type="string", max="3")
        assert spec.max == 3
        assert spec.is_list

    def test_defaults_are_optional_single(self):
        from fhirstruct.schemas.model import FieldSpec

        spec = FieldSpec(name="title", type="string")
        assert spec.min == 0
        assert spec.max == 1
        assert not spec.is_list
        assert not spec.is_required
        assert spec.is_primitive

    def test_max_below_min_rejected(self):
        from fhirstruct.schemas.model import FieldSpec

        with pytest.raises(ValidationError, match="smaller than min"):
            FieldSpec(name="x", type="string", min=2, max=1)

    def test_negative_min_rejected(self):
        from fhirstruct.schemas.model import FieldSpec

        with pytest.raises(ValidationError):
            FieldSpec(name="x", type="string", min=-1)

    def test_frozen(self):
        from fhirstruct.schemas.model import FieldSpec

        spec = FieldSpec(name="title", type="string")
        with pytest.raises(ValidationError):
            spec.name = "other"


class TestChoiceGroup:

    def test_member_names(self):
        from fhirstruct.schemas.model import ChoiceGroup

        group = ChoiceGroup(stem="value", types=("Quantity", "dateTime", "string"))
        assert group.name == "value[x]"
        assert group.member_names() == ["valueQuantity", "valueDateTime", "valueString"]
        assert group.type_for_member("valueDateTime") == "dateTime"
        assert group.type_for_member("valueBoolean") is None

    def test_member_spec_view(self):
        from fhirstruct.schemas.model import ChoiceGroup

        group = ChoiceGroup(stem="occurrence", types=("dateTime", "string"), min=1, path="Immunization.occurrence[x]")
        spec = group.member_spec("dateTime")
        assert spec.name == "occurrenceDateTime"
        assert spec.type == "dateTime"
        assert spec.min == 0
        assert spec.path == "Immunization.occurrence[x]"

    def test_empty_types_rejected(self):
        from fhirstruct.schemas.model import ChoiceGroup

        with pytest.raises(ValidationError, match="at least one member"):
            ChoiceGroup(stem="value", types=())

    def test_repeating_choice_rejected(self):
        from fhirstruct.schemas.model import ChoiceGroup

        with pytest.raises(ValidationError, match="max 1"):
            ChoiceGroup(stem="value", types=("string",), max="*")


class TestCodeBinding:

    def test_permits_by_system(self):
        from fhirstruct.schemas.model import BindingStrength, CodeBinding

        binding = CodeBinding(
            strength=BindingStrength.REQUIRED,
            codes={"http://hl7.org/fhir/request-status": ("draft", "active")},
        )
        assert binding.is_required
        assert binding.permits("draft")
        assert binding.permits("active", "http://hl7.org/fhir/request-status")
        assert not binding.permits("active", "http://example.org/other")
        assert not binding.permits("retired")

    def test_all_codes_deduplicates(self):
        from fhirstruct.schemas.model import CodeBinding

        binding = CodeBinding(strength="example", codes={"a": ("x", "y"), "b": ("y", "z")})
        assert binding.all_codes() == ["x", "y", "z"]
        assert not binding.is_required

    def test_unknown_strength_rejected(self):
        from fhirstruct.schemas.model import CodeBinding

        with pytest.raises(ValidationError):
            CodeBinding(strength="mandatory")


class TestRecordType:

    def _record_type(self):
        from fhirstruct.schemas.model import ChoiceGroup, FieldSpec, RecordType

        return RecordType(
            name="Observation",
            kind="resource",
            elements=(
                FieldSpec(name="status", type="code", min=1),
                ChoiceGroup(stem="value", types=("Quantity", "string")),
                FieldSpec(name="note", type="Annotation", max="*"),
            ),
        )

    def test_lookup_helpers(self):
        from fhirstruct.schemas.model import ChoiceGroup, FieldSpec

        rt = self._record_type()
        assert rt.is_resource
        assert isinstance(rt.element("status"), FieldSpec)
        assert isinstance(rt.element("value"), ChoiceGroup)
        assert isinstance(rt.element("value[x]"), ChoiceGroup)
        assert rt.element("missing") is None
        assert rt.field("value") is None
        assert rt.field_names() == ["status", "value[x]", "note"]
        assert rt.wire_keys() == ["status", "valueQuantity", "valueString", "note"]
        assert [f.name for f in rt.fields()] == ["status", "note"]
        assert [g.stem for g in rt.choice_groups()] == ["value"]

    def test_duplicate_element_names_rejected(self):
        from fhirstruct.schemas.model import FieldSpec, RecordType

        with pytest.raises(ValidationError, match="declared twice"):
            RecordType(
                name="Broken",
                elements=(FieldSpec(name="a", type="string"), FieldSpec(name="a", type="code")),
            )

    def test_choice_member_clashing_with_field_rejected(self):
        from fhirstruct.schemas.model import ChoiceGroup, FieldSpec, RecordType

        with pytest.raises(ValidationError, match="valueString"):
            RecordType(
                name="Broken",
                elements=(
                    FieldSpec(name="valueString", type="string"),
                    ChoiceGroup(stem="value", types=("string",)),
                ),
            )

    def test_choice_member_name_helper(self):
        from fhirstruct.schemas.model import choice_member_name

        assert choice_member_name("deceased", "boolean") == "deceasedBoolean"
        assert choice_member_name("value", "CodeableConcept") == "valueCodeableConcept"
