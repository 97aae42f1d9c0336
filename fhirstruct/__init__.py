"""
fhirstruct - schema-driven record engine for the FHIR R4 data model

Record types (resources, datatypes, backbone elements) are declared in YAML
definition tables and held in a frozen schema registry.  One generic engine
validates records against them and round-trips records through the JSON and
XML wire formats.

Main Components:
    - fhirstruct.schemas: record type descriptors, definition loader, registry
    - fhirstruct.codec: JSON / XML encode and decode, choice resolution
    - fhirstruct.validation: constraint checks collected into a ValidationResult
    - fhirstruct.cli: the ``fhirstruct`` command line
"""

__version__ = "0.4.0"

from .codec import decode_json, decode_xml, encode_json, encode_xml, from_dict, to_dict
from .errors import FhirstructError
from .record import ChoiceValue, RawXml, Record
from .schemas import SchemaRegistry, describe, get_registry, resolve
from .validation import ValidationIssue, ValidationResult, Validator, validate

__all__ = [
    "ChoiceValue",
    "FhirstructError",
    "RawXml",
    "Record",
    "SchemaRegistry",
    "ValidationIssue",
    "ValidationResult",
    "Validator",
    "__version__",
    "decode_json",
    "decode_xml",
    "describe",
    "encode_json",
    "encode_xml",
    "from_dict",
    "get_registry",
    "resolve",
    "to_dict",
    "validate",
]
