# fhirstruct/schemas/model.py
"""Immutable schema descriptors: RecordType, FieldSpec, ChoiceGroup, CodeBinding.

These describe *shape*, never runtime instances.  They are produced by the
definition loader (or built directly in code) and shared read-only through
the schema registry.

Maximum occurrence is an ``int`` or :data:`UNBOUNDED`; the wire form ``"*"``
is accepted on input and is the only text form ever rendered.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .primitives import is_primitive

__all__ = [
    "Bound",
    "UNBOUNDED",
    "BindingStrength",
    "CodeBinding",
    "FieldSpec",
    "ChoiceGroup",
    "ElementSpec",
    "RecordType",
    "RecordKind",
    "choice_member_name",
]


class Bound(str, Enum):
    """Explicit marker for an unbounded maximum occurrence."""

    UNBOUNDED = "*"


UNBOUNDED = Bound.UNBOUNDED

MaxOccurs = Union[int, Bound]


class BindingStrength(str, Enum):
    REQUIRED = "required"
    EXTENSIBLE = "extensible"
    PREFERRED = "preferred"
    EXAMPLE = "example"


RecordKind = Literal["primitive-type", "complex-type", "resource", "backbone", "logical"]


def _parse_max(value: object) -> object:
    if isinstance(value, str) and value.strip() == "*":
        return UNBOUNDED
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value


def choice_member_name(stem: str, type_name: str) -> str:
    """Return the concrete wire name of a choice member (``value`` + ``dateTime``)."""
    return stem + type_name[:1].upper() + type_name[1:]


class CodeBinding(BaseModel):
    """Permitted codes per code system, plus how strictly they are enforced."""

    model_config = ConfigDict(frozen=True)

    strength: BindingStrength
    value_set: Optional[str] = None
    codes: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    @property
    def is_required(self) -> bool:
        return self.strength is BindingStrength.REQUIRED

    def permits(self, code: str, system: Optional[str] = None) -> bool:
        """True if *code* is listed for *system* (or for any system when absent)."""
        if system is not None and system in self.codes:
            return code in self.codes[system]
        if system is not None and self.codes:
            return False
        return any(code in values for values in self.codes.values())

    def all_codes(self) -> list[str]:
        seen: list[str] = []
        for values in self.codes.values():
            seen.extend(c for c in values if c not in seen)
        return seen


class _Occurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = 0
    max: MaxOccurs = 1

    @field_validator("max", mode="before")
    @classmethod
    def _coerce_max(cls, value: object) -> object:
        return _parse_max(value)

    @field_validator("min")
    @classmethod
    def _check_min(cls, value: int) -> int:
        if value < 0:
            raise ValueError("min must not be negative")
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "_Occurrence":
        if isinstance(self.max, int) and self.max < self.min:
            raise ValueError(f"max ({self.max}) is smaller than min ({self.min})")
        return self

    @property
    def is_list(self) -> bool:
        return self.max is UNBOUNDED or (isinstance(self.max, int) and self.max > 1)

    @property
    def is_required(self) -> bool:
        return self.min >= 1

    @property
    def max_text(self) -> str:
        return "*" if self.max is UNBOUNDED else str(self.max)


class FieldSpec(_Occurrence):
    """One named, typed, cardinality-bounded member of a RecordType."""

    kind: Literal["field"] = "field"
    name: str
    type: str
    path: str = ""
    binding: Optional[CodeBinding] = None
    target_profiles: tuple[str, ...] = ()
    short: Optional[str] = None

    @property
    def is_primitive(self) -> bool:
        return is_primitive(self.type)

    @property
    def target_types(self) -> tuple[str, ...]:
        """Resource type names taken from the last segment of each target profile."""
        return tuple(p.rstrip("/").rsplit("/", 1)[-1] for p in self.target_profiles)


class ChoiceGroup(_Occurrence):
    """A field stem that may be populated with exactly one of several types."""

    kind: Literal["choice"] = "choice"
    stem: str
    types: tuple[str, ...]
    path: str = ""
    binding: Optional[CodeBinding] = None
    target_profiles: tuple[str, ...] = ()
    short: Optional[str] = None

    @field_validator("types")
    @classmethod
    def _check_types(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("a choice group needs at least one member type")
        return value

    @model_validator(mode="after")
    def _check_single(self) -> "ChoiceGroup":
        if self.max != 1:
            raise ValueError(f"choice group '{self.stem}[x]' must have max 1")
        return self

    @property
    def name(self) -> str:
        return f"{self.stem}[x]"

    def member_name(self, type_name: str) -> str:
        return choice_member_name(self.stem, type_name)

    def member_names(self) -> list[str]:
        return [self.member_name(t) for t in self.types]

    def type_for_member(self, member: str) -> Optional[str]:
        for type_name in self.types:
            if self.member_name(type_name) == member:
                return type_name
        return None

    def member_spec(self, type_name: str) -> FieldSpec:
        """A FieldSpec view of one concrete member (used by codec and validator)."""
        return FieldSpec(
            name=self.member_name(type_name),
            type=type_name,
            min=0,
            max=self.max,
            path=self.path,
            binding=self.binding,
            target_profiles=self.target_profiles,
            short=self.short,
        )


ElementSpec = Annotated[Union[FieldSpec, ChoiceGroup], Field(discriminator="kind")]


class RecordType(BaseModel):
    """A named composite shape: ordered elements plus nested sub-structures."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RecordKind = "complex-type"
    url: Optional[str] = None
    base: Optional[str] = None
    abstract: bool = False
    description: Optional[str] = None
    elements: tuple[ElementSpec, ...] = ()
    nested: tuple[str, ...] = ()
    search_params: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_unique_names(self) -> "RecordType":
        seen: set[str] = set()
        for element in self.elements:
            keys = [element.name] if isinstance(element, FieldSpec) else [element.stem, *element.member_names()]
            for key in keys:
                if key in seen:
                    raise ValueError(f"{self.name}: element '{key}' is declared twice")
                seen.add(key)
        return self

    @property
    def is_resource(self) -> bool:
        return self.kind == "resource"

    def element(self, name: str) -> Optional[ElementSpec]:
        """Look up a FieldSpec by name or a ChoiceGroup by stem (or ``stem[x]``)."""
        stem = name[:-3] if name.endswith("[x]") else name
        for element in self.elements:
            if isinstance(element, FieldSpec) and element.name == name:
                return element
            if isinstance(element, ChoiceGroup) and element.stem == stem:
                return element
        return None

    def field(self, name: str) -> Optional[FieldSpec]:
        element = self.element(name)
        return element if isinstance(element, FieldSpec) else None

    def fields(self) -> list[FieldSpec]:
        return [e for e in self.elements if isinstance(e, FieldSpec)]

    def choice_groups(self) -> list[ChoiceGroup]:
        return [e for e in self.elements if isinstance(e, ChoiceGroup)]

    def field_names(self) -> list[str]:
        """Element names in declaration order (choice groups as ``stem[x]``)."""
        return [e.name for e in self.elements]

    def wire_keys(self) -> list[str]:
        """Every key that may appear on the wire for this type."""
        keys: list[str] = []
        for element in self.elements:
            if isinstance(element, FieldSpec):
                keys.append(element.name)
            else:
                keys.extend(element.member_names())
        return keys
