"""Schema layer: record type descriptors, definition loading and the registry."""

from .loader import BUNDLED_DEFINITIONS_DIR, load_definition_file, load_definitions, parse_definition
from .model import (
    UNBOUNDED,
    BindingStrength,
    Bound,
    ChoiceGroup,
    CodeBinding,
    FieldSpec,
    RecordType,
    choice_member_name,
)
from .registry import SchemaRegistry, describe, get_registry, reset_registry, resolve
from .terminology import InMemoryTerminologyService, TerminologyService

__all__ = [
    "BUNDLED_DEFINITIONS_DIR",
    "UNBOUNDED",
    "BindingStrength",
    "Bound",
    "ChoiceGroup",
    "CodeBinding",
    "FieldSpec",
    "InMemoryTerminologyService",
    "RecordType",
    "SchemaRegistry",
    "TerminologyService",
    "choice_member_name",
    "describe",
    "get_registry",
    "load_definition_file",
    "load_definitions",
    "parse_definition",
    "reset_registry",
    "resolve",
]
