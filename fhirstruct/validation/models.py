"""Data models for validation results."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..errors import (
    AmbiguousChoiceError,
    CardinalityError,
    FhirstructError,
    InvalidCodeError,
    InvalidReferenceTargetError,
    MissingRequiredFieldError,
    RecordValidationError,
    TypeCoercionError,
    UnknownElementError,
    UnknownTypeError,
)

IssueKind = Literal[
    "missing_required",
    "cardinality",
    "ambiguous_choice",
    "invalid_code",
    "type_mismatch",
    "unknown_type",
    "unknown_element",
    "invalid_reference",
    "unverified_code",
]

_EXCEPTIONS: dict[str, type[FhirstructError]] = {
    "missing_required": MissingRequiredFieldError,
    "cardinality": CardinalityError,
    "ambiguous_choice": AmbiguousChoiceError,
    "invalid_code": InvalidCodeError,
    "type_mismatch": TypeCoercionError,
    "unknown_element": UnknownElementError,
    "invalid_reference": InvalidReferenceTargetError,
}


class ValidationIssue(BaseModel):
    """One constraint violation (or advisory) found in a record."""

    kind: IssueKind = Field(description="What was violated")
    path: str = Field(description="Dotted path with list indices, e.g. CarePlan.activity[0].detail.status")
    message: str = Field(description="Human-readable description")
    severity: Literal["error", "warning"] = "error"

    def to_exception(self) -> FhirstructError:
        """Return the exception class matching this issue's kind."""
        if self.kind == "unknown_type":
            type_name = self.message.removeprefix("Unknown type ").strip("'")
            return UnknownTypeError(type_name, path=self.path)
        return _EXCEPTIONS.get(self.kind, FhirstructError)(self.message, path=self.path)


class ValidationResult(BaseModel):
    """Every issue found in one validation pass, in traversal order."""

    type_name: str
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise :class:`RecordValidationError` carrying every error, if any."""
        if self.errors:
            raise RecordValidationError(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict for JSON serialization."""
        return {
            "type_name": self.type_name,
            "is_valid": self.is_valid,
            "errors": [i.model_dump() for i in self.errors],
            "warnings": [i.model_dump() for i in self.warnings],
        }
