# fhirstruct/errors.py
"""Exception hierarchy for fhirstruct.

Schema errors are raised while definitions are loaded or looked up.
Decode errors are fail-fast: a structurally broken document cannot be
partially decoded.  Validation never raises these while it runs; it
collects :class:`~fhirstruct.validation.models.ValidationIssue` entries
that map back onto the issue classes below via ``to_exception()``.
"""

from __future__ import annotations

from typing import Any, Optional


class FhirstructError(Exception):
    """Base class for every error raised by fhirstruct."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


# ---------------------------------------------------------------------------
# Schema / registry
# ---------------------------------------------------------------------------


class SchemaError(FhirstructError):
    """A definition is malformed or cannot be found."""


class DefinitionError(SchemaError):
    """A YAML definition document could not be turned into a RecordType."""


class UnknownTypeError(SchemaError):
    """A type name does not resolve to a registered RecordType."""

    def __init__(self, type_name: str, *, path: Optional[str] = None) -> None:
        self.type_name = type_name
        super().__init__(f"Unknown type '{type_name}'", path=path)


class DuplicateTypeError(SchemaError):
    """A RecordType with the same name is already registered."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Type '{type_name}' is already registered")


class RegistryFrozenError(SchemaError):
    """The registry no longer accepts new definitions."""


# ---------------------------------------------------------------------------
# Instance-level problems (raised by decode, or surfaced from validation)
# ---------------------------------------------------------------------------


class MissingRequiredFieldError(FhirstructError):
    """A field with minimum occurrence 1 is absent or empty."""


class CardinalityError(FhirstructError):
    """More values were supplied than the field's maximum occurrence."""


class AmbiguousChoiceError(FhirstructError):
    """More than one member of a choice group is populated."""


class InvalidCodeError(FhirstructError):
    """A code is outside the permitted set of a required binding."""


class TypeCoercionError(FhirstructError):
    """A value does not match (or cannot be coerced to) its declared type."""


class InvalidReferenceTargetError(FhirstructError):
    """A reference points at a resource type the field does not allow."""


class UnknownElementError(FhirstructError):
    """A record holds a value under a name its RecordType does not declare."""


class DecodeError(FhirstructError):
    """Wire data is malformed (bad JSON/XML, wrong shape, missing discriminator)."""


class RecordValidationError(FhirstructError):
    """Raised by ``ValidationResult.raise_for_errors`` with every issue attached."""

    def __init__(self, issues: list[Any]) -> None:
        self.issues = list(issues)
        count = len(self.issues)
        first = self.issues[0].message if self.issues else ""
        super().__init__(f"{count} validation error(s); first: {first}")
