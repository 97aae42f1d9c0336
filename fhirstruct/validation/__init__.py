"""Record validation against the schema registry."""

from .engine import Validator, reference_target_type, validate
from .models import IssueKind, ValidationIssue, ValidationResult

__all__ = [
    "IssueKind",
    "ValidationIssue",
    "ValidationResult",
    "Validator",
    "reference_target_type",
    "validate",
]
