"""Validation engine: check a Record against its RecordType.

The validator never raises for a bad record.  It walks the record in
declaration order, recursing into nested records and lists, and collects a
:class:`ValidationIssue` for every violation it finds:

    missing_required   min-1 field or choice group absent
    cardinality        more values than the field's max
    ambiguous_choice   several members of one choice group populated
    type_mismatch      primitive lexical / Python type wrong, nested record
                       of the wrong type, undeclared choice member type
    unknown_type       nested record whose type is not registered
    unknown_element    value stored under an undeclared name
    invalid_code       code outside a required binding
    invalid_reference  literal reference to a resource type not allowed
    unverified_code    (warning) code outside a non-required binding, or a
                       binding that cannot be checked without terminology

Validation is pure: the same record always yields the same result.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from ..codec.common import ELEMENT, RESOURCE, as_list, child_path, undeclared_keys
from ..record import ChoiceValue, Record
from ..schemas import primitives
from ..schemas.model import UNBOUNDED, ChoiceGroup, CodeBinding, FieldSpec, RecordType
from ..schemas.registry import SchemaRegistry, get_registry
from ..schemas.terminology import TerminologyService
from .models import IssueKind, ValidationIssue, ValidationResult

__all__ = ["Validator", "reference_target_type", "validate"]

logger = logging.getLogger(__name__)

_LISTED_CODES_LIMIT = 10


def reference_target_type(reference: str) -> Optional[str]:
    """Resource type named by a literal reference, or ``None``.

    Handles relative (``Patient/123``), versioned
    (``Patient/123/_history/2``) and absolute URL references.  Contained
    (``#p1``) and URN references name no type.
    """
    if not reference or reference.startswith("#") or reference.startswith("urn:"):
        return None
    parts = reference.split("/")
    if "_history" in parts:
        parts = parts[: parts.index("_history")]
    if len(parts) < 2:
        return None
    candidate = parts[-2]
    return candidate if candidate[:1].isupper() else None


class _Pass:
    """State of one validation pass."""

    def __init__(self, registry: SchemaRegistry, terminology: Optional[TerminologyService]) -> None:
        self.registry = registry
        self.terminology = terminology
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []

    def error(self, kind: IssueKind, path: str, message: str) -> None:
        self.errors.append(ValidationIssue(kind=kind, path=path, message=message))

    def warn(self, kind: IssueKind, path: str, message: str) -> None:
        self.warnings.append(ValidationIssue(kind=kind, path=path, message=message, severity="warning"))

    # -- records --------------------------------------------------------------

    def record(self, record: Record, record_type: RecordType, path: str) -> None:
        for key in undeclared_keys(record, record_type):
            self.error("unknown_element", child_path(path, key), f"'{key}' is not an element of {record_type.name}")
        for element in record_type.elements:
            if isinstance(element, FieldSpec):
                self.field(record, element, path)
            else:
                self.choice(record, element, path)

    def field(self, record: Record, spec: FieldSpec, path: str) -> None:
        raw = record.get(spec.name)
        values = as_list(raw)
        companions = as_list(record.companions.get(spec.name))
        where = child_path(path, spec.name)

        count = sum(
            1
            for i in range(max(len(values), len(companions)))
            if (i < len(values) and values[i] is not None) or (i < len(companions) and companions[i] is not None)
        )
        self.occurrence(spec, count, where)

        indexed = isinstance(raw, list) or len(companions) > 1
        for index, value in enumerate(values):
            if value is None:
                continue
            item_path = child_path(path, spec.name, index if indexed else None)
            self.item(spec, spec.type, value, item_path)
        self.companions(companions, path, spec.name, indexed)

    def occurrence(self, spec: Union[FieldSpec, ChoiceGroup], count: int, where: str) -> None:
        if spec.is_required and count == 0:
            self.error("missing_required", where, f"'{spec.name}' is required (min {spec.min})")
        if spec.max is not UNBOUNDED and count > spec.max:
            self.error("cardinality", where, f"'{spec.name}' allows at most {spec.max} value(s), found {count}")

    def choice(self, record: Record, group: ChoiceGroup, path: str) -> None:
        where = child_path(path, group.name)
        stored = record.get(group.stem)
        if stored is not None and not all(isinstance(c, ChoiceValue) for c in as_list(stored)):
            self.error("type_mismatch", where, f"choice '{group.name}' must hold ChoiceValue entries")
            return

        members = [
            c for c in as_list(stored) if c.value is not None or record.companions.get(group.member_name(c.type)) is not None
        ]
        if len(members) > 1:
            keys = ", ".join(group.member_name(c.type) for c in members)
            self.error("ambiguous_choice", where, f"choice '{group.name}' has several members populated: {keys}")
        elif not members and group.is_required:
            self.error("missing_required", where, f"one of {', '.join(group.member_names())} is required")

        for member in members:
            key = group.member_name(member.type)
            if member.type not in group.types:
                allowed = ", ".join(group.types)
                self.error("type_mismatch", child_path(path, key), f"'{member.type}' is not a permitted type for {group.name} ({allowed})")
                continue
            spec = group.member_spec(member.type)
            if member.value is not None:
                self.item(spec, member.type, member.value, child_path(path, key))
            self.companions(as_list(record.companions.get(key)), path, key, False)

    def companions(self, companions: list[Any], path: str, name: str, indexed: bool) -> None:
        element_type = self.registry.get(ELEMENT)
        for index, companion in enumerate(companions):
            if companion is None or element_type is None:
                continue
            where = child_path(path, f"_{name}", index if indexed else None)
            if not isinstance(companion, Record):
                self.error("type_mismatch", where, f"primitive metadata must be an Element record, got {type(companion).__name__}")
                continue
            self.record(companion, element_type, where)

    # -- values ---------------------------------------------------------------

    def item(self, spec: FieldSpec, type_name: str, value: Any, path: str) -> None:
        if primitives.is_primitive(type_name):
            problem = primitives.check(type_name, value)
            if problem is not None:
                self.error("type_mismatch", path, problem)
                return
        elif not self.nested(type_name, value, path):
            return

        if spec.binding is not None:
            self.binding(spec.binding, type_name, value, path)
        if spec.target_profiles and isinstance(value, Record) and self.registry.is_a(value.type_name, "Reference"):
            self.reference(spec, value, path)

    def nested(self, type_name: str, value: Any, path: str) -> bool:
        if not isinstance(value, Record):
            self.error("type_mismatch", path, f"expected a {type_name} record, got {type(value).__name__}")
            return False
        nested_type = self.registry.get(value.type_name)
        if nested_type is None:
            self.error("unknown_type", path, f"Unknown type '{value.type_name}'")
            return False
        if not self.registry.is_a(value.type_name, type_name):
            self.error("type_mismatch", path, f"expected {type_name}, found {value.type_name}")
            return False
        if nested_type.abstract and nested_type.is_resource:
            self.error("type_mismatch", path, f"'{value.type_name}' is abstract and cannot be instantiated")
            return False
        self.record(value, nested_type, path)
        return True

    # -- bindings -------------------------------------------------------------

    def binding(self, binding: CodeBinding, type_name: str, value: Any, path: str) -> None:
        codings = _codings(type_name, value)
        if not codings:
            return
        label = binding.value_set or "the bound value set"
        shown = ", ".join(f"{system}|{code}" if system else code for system, code in codings)

        if any(binding.permits(code, system) for system, code in codings):
            return
        # a listed required binding is closed; the service only widens open or unlisted ones
        consult = self.terminology is not None and (not binding.is_required or not binding.codes)
        if consult and any(self.terminology.is_known_code(s, c) for s, c in codings):
            return

        if binding.is_required and (binding.codes or self.terminology is not None):
            expected = binding.all_codes()
            hint = ""
            if expected and len(expected) <= _LISTED_CODES_LIMIT:
                hint = f"; expected one of: {', '.join(expected)}"
            self.error("invalid_code", path, f"'{shown}' is not in required value set {label}{hint}")
        elif self.terminology is None:
            self.warn(
                "unverified_code",
                path,
                f"cannot verify '{shown}' against {label} ({binding.strength.value} binding): "
                "no terminology service configured",
            )
        else:
            self.warn("unverified_code", path, f"'{shown}' is not a known code in {label} ({binding.strength.value} binding)")

    # -- references -----------------------------------------------------------

    def reference(self, spec: FieldSpec, value: Record, path: str) -> None:
        targets = spec.target_types
        if RESOURCE in targets:
            return
        named = []
        literal = value.get("reference")
        if isinstance(literal, str):
            named.append(reference_target_type(literal))
        declared = value.get("type")
        if isinstance(declared, str):
            named.append(declared.rstrip("/").rsplit("/", 1)[-1])
        for target in named:
            if target is None or any(target == t or self.registry.is_a(target, t) for t in targets):
                continue
            self.error(
                "invalid_reference",
                path,
                f"reference to '{target}' is not allowed here (allowed: {', '.join(targets)})",
            )


def _codings(type_name: str, value: Any) -> list[tuple[Optional[str], str]]:
    """``(system, code)`` pairs carried by a bound value."""
    if isinstance(value, str):
        return [(None, value)]
    if not isinstance(value, Record):
        return []
    if type_name == "Coding":
        code = value.get("code")
        return [(value.get("system"), code)] if isinstance(code, str) else []
    if type_name == "CodeableConcept":
        pairs: list[tuple[Optional[str], str]] = []
        for coding in as_list(value.get("coding")):
            if isinstance(coding, Record) and isinstance(coding.get("code"), str):
                pairs.append((coding.get("system"), coding.get("code")))
        return pairs
    return []


class Validator:
    """Validates records against the registry's RecordTypes.

    Parameters
    ----------
    registry:
        Registry to resolve types against (default: the process registry).
    terminology:
        Optional service consulted for codes outside a binding's local
        tables.  Without one, non-required bindings degrade to "cannot
        verify" warnings.
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        terminology: Optional[TerminologyService] = None,
    ) -> None:
        self.registry = registry if registry is not None else get_registry()
        self.terminology = terminology

    def validate(self, record: Record, record_type: Union[RecordType, str, None] = None) -> ValidationResult:
        """Validate *record* and return every issue found.

        *record_type* defaults to the record's own ``type_name``.  When given,
        the record must be of that type or derive from it.
        """
        if isinstance(record_type, str):
            record_type = self.registry.resolve(record_type)

        run = _Pass(self.registry, self.terminology)
        path = record.type_name
        if record_type is None:
            record_type = self.registry.get(record.type_name)
            if record_type is None:
                run.error("unknown_type", path, f"Unknown type '{record.type_name}'")
        elif record.type_name != record_type.name and not self.registry.is_a(record.type_name, record_type.name):
            run.error("type_mismatch", path, f"expected {record_type.name}, found {record.type_name}")
            record_type = None
        else:
            record_type = self.registry.get(record.type_name) or record_type

        if record_type is not None:
            run.record(record, record_type, path)

        result = ValidationResult(type_name=record.type_name, errors=run.errors, warnings=run.warnings)
        logger.debug(
            "Validated %s: %d error(s), %d warning(s)",
            record.type_name,
            len(result.errors),
            len(result.warnings),
        )
        return result


def validate(
    record: Record,
    record_type: Union[RecordType, str, None] = None,
    *,
    registry: Optional[SchemaRegistry] = None,
    terminology: Optional[TerminologyService] = None,
) -> ValidationResult:
    """Validate *record* with a one-off :class:`Validator`."""
    return Validator(registry, terminology).validate(record, record_type)
