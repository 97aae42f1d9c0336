# fhirstruct/codec/common.py
"""Pieces shared by the JSON and XML codecs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..config import get_config
from ..errors import DecodeError
from ..record import Record
from ..schemas.model import FieldSpec, RecordType
from ..schemas.registry import SchemaRegistry, get_registry

RESOURCE = "Resource"
ELEMENT = "Element"
EXTENSION = "Extension"


@dataclass(frozen=True)
class DecodeOptions:
    """Per-call decode settings (unset values fall back to the config)."""

    registry: SchemaRegistry
    strict_choice: bool
    preserve_unknown: bool

    @classmethod
    def build(
        cls,
        registry: Optional[SchemaRegistry] = None,
        strict_choice: Optional[bool] = None,
        preserve_unknown: Optional[bool] = None,
    ) -> "DecodeOptions":
        config = get_config()
        return cls(
            registry=registry if registry is not None else get_registry(),
            strict_choice=config.strict_choice if strict_choice is None else strict_choice,
            preserve_unknown=config.preserve_unknown if preserve_unknown is None else preserve_unknown,
        )

    def is_resource_type(self, type_name: str) -> bool:
        return self.registry.is_a(type_name, RESOURCE)


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def child_path(path: str, name: str, index: Optional[int] = None) -> str:
    base = f"{path}.{name}" if path else name
    return base if index is None else f"{base}[{index}]"


class FieldCollector:
    """Gathers ``(value, companion)`` pairs per field while a record is read.

    XML delivers repeated elements one by one and JSON delivers values and
    their ``_field`` companions under separate keys; both end up here and are
    written to the record in one step so list alignment is kept.
    """

    def __init__(self) -> None:
        self._values: dict[str, list[Any]] = {}
        self._companions: dict[str, list[Any]] = {}
        self._specs: dict[str, FieldSpec] = {}

    def add_values(self, spec: FieldSpec, values: list[Any]) -> None:
        self._specs[spec.name] = spec
        self._values.setdefault(spec.name, []).extend(values)

    def add_companions(self, spec: FieldSpec, companions: list[Any]) -> None:
        self._specs[spec.name] = spec
        self._companions.setdefault(spec.name, []).extend(companions)

    def write(self, record: Record) -> None:
        for name, spec in self._specs.items():
            values = self._values.get(name, [])
            companions = self._companions.get(name, [])
            if spec.is_list or len(values) > 1 or len(companions) > 1:
                if values:
                    record.values[name] = values
                if any(c is not None for c in companions):
                    record.companions[name] = companions
                continue
            if values and values[0] is not None:
                record.values[name] = values[0]
            if companions and companions[0] is not None:
                record.companions[name] = companions[0]


def check_resource_type(options: DecodeOptions, actual: str, expected: str, path: str) -> None:
    if not options.registry.is_a(actual, expected):
        raise DecodeError(f"expected a {expected}, found {actual}", path=path)


def undeclared_keys(record: Record, record_type: RecordType) -> list[str]:
    """Value keys that are neither a field name nor a choice stem of *record_type*."""
    declared = {e.name if isinstance(e, FieldSpec) else e.stem for e in record_type.elements}
    return [key for key in record.values if key not in declared]


def warn_undeclared(logger: logging.Logger, record: Record, record_type: RecordType, path: str) -> None:
    for key in undeclared_keys(record, record_type):
        logger.warning("Not encoding undeclared element '%s' at %s", key, path)
