# fhirstruct/codec/json_codec.py
"""JSON wire format.

Encoding walks the RecordType in declaration order:

- ``resourceType`` first (resources only)
- declared elements, absent or empty ones omitted, repeating ones as arrays
- a choice group as its concrete member key (``valueQuantity``), never the stem
- primitive metadata as ``_field`` right after the field
- unknown keys kept from decode, last

Decoding is the inverse and never validates.  Unknown keys are kept in
``Record.extras`` so re-encoding reproduces them.  Decimals are read as
:class:`~decimal.Decimal`.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional, Union

from ..config import get_config
from ..errors import DecodeError, TypeCoercionError
from ..record import RawXml, Record
from ..schemas import primitives
from ..schemas.model import ChoiceGroup, FieldSpec, RecordType
from ..schemas.registry import SchemaRegistry, get_registry
from .choice import check_exclusive, populated_members, resolve_key, store_choice, store_metadata_members
from .common import ELEMENT, DecodeOptions, FieldCollector, as_list, check_resource_type, child_path, warn_undeclared

__all__ = ["to_dict", "from_dict", "encode_json", "decode_json"]

logger = logging.getLogger(__name__)

DISCRIMINATOR = "resourceType"


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def _json_scalar(type_name: str, value: Any, path: str) -> Any:
    if isinstance(value, Decimal) and not value.is_finite():
        raise TypeCoercionError(f"cannot encode non-finite decimal {value}", path=path)
    if value is None or isinstance(value, (bool, int, str, Decimal, float)):
        return value
    raise TypeCoercionError(f"cannot encode {type(value).__name__} as {type_name}", path=path)


def _encode_item(type_name: str, value: Any, registry: SchemaRegistry, path: str) -> Any:
    if primitives.is_primitive(type_name):
        return _json_scalar(type_name, value, path)
    if not isinstance(value, Record):
        raise TypeCoercionError(f"expected a {type_name} record, got {type(value).__name__}", path=path)
    return _encode_record(value, registry, path)


def _encode_companion(companion: Any, registry: SchemaRegistry, path: str) -> Any:
    if isinstance(companion, list):
        return [None if c is None else _encode_record(c, registry, path) for c in companion]
    return _encode_record(companion, registry, path)


def _emit(
    out: dict[str, Any],
    key: str,
    spec: FieldSpec,
    value: Any,
    companion: Any,
    registry: SchemaRegistry,
    path: str,
) -> None:
    where = child_path(path, key)
    if isinstance(value, list):
        if value:
            out[key] = [_encode_item(spec.type, v, registry, child_path(path, key, i)) for i, v in enumerate(value)]
    elif value is not None:
        encoded = _encode_item(spec.type, value, registry, where)
        out[key] = [encoded] if spec.is_list else encoded
    if companion is not None:
        out[f"_{key}"] = _encode_companion(companion, registry, where)


def _encode_record(record: Record, registry: SchemaRegistry, path: str = "") -> dict[str, Any]:
    record_type = registry.resolve(record.type_name)
    path = path or record.type_name
    out: dict[str, Any] = {}
    if record_type.is_resource:
        out[DISCRIMINATOR] = record.type_name

    for element in record_type.elements:
        if isinstance(element, FieldSpec):
            _emit(
                out,
                element.name,
                element,
                record.get(element.name),
                record.companions.get(element.name),
                registry,
                path,
            )
            continue
        for key, choice in populated_members(record, element):
            _emit(
                out,
                key,
                element.member_spec(choice.type),
                choice.value,
                record.companions.get(key),
                registry,
                path,
            )

    warn_undeclared(logger, record, record_type, path)
    for key, raw in record.extras.items():
        if isinstance(raw, RawXml) or (isinstance(raw, list) and any(isinstance(r, RawXml) for r in raw)):
            logger.warning("Skipping XML-only extra '%s' at %s when writing JSON", key, path)
            continue
        out[key] = raw
    return out


def to_dict(record: Record, registry: Optional[SchemaRegistry] = None) -> dict[str, Any]:
    """Encode *record* as a JSON-ready ``dict`` (decimals stay ``Decimal``)."""
    return _encode_record(record, registry if registry is not None else get_registry())


def _decimal_text(value: Decimal) -> str:
    text = str(value)
    # str() switches to scientific notation for small exponents; keep the digits instead
    if "E-" in text:
        return format(value, "f")
    return text


def _dump(value: Any, indent: int, level: int = 0) -> str:
    """Serialise *value* like ``json.dumps`` but write each Decimal verbatim."""
    if isinstance(value, Decimal):
        return _decimal_text(value)
    if isinstance(value, dict):
        colon = ": " if indent else ":"
        items = [
            json.dumps(key, ensure_ascii=False) + colon + _dump(item, indent, level + 1)
            for key, item in value.items()
        ]
    elif isinstance(value, list):
        items = [_dump(item, indent, level + 1) for item in value]
    else:
        return json.dumps(value, ensure_ascii=False)
    opening, closing = ("{", "}") if isinstance(value, dict) else ("[", "]")
    if not items:
        return opening + closing
    if not indent:
        return opening + ",".join(items) + closing
    inner = "\n" + " " * (indent * (level + 1))
    return opening + inner + ("," + inner).join(items) + "\n" + " " * (indent * level) + closing


def encode_json(
    record: Record,
    registry: Optional[SchemaRegistry] = None,
    *,
    indent: Optional[int] = None,
) -> str:
    """Encode *record* as JSON text.

    ``indent`` defaults to ``FHIRSTRUCT_JSON_INDENT``; pass ``0`` for compact
    output.
    """
    if indent is None:
        indent = get_config().json_indent
    return _dump(to_dict(record, registry), indent)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _decode_item(type_name: str, raw: Any, options: DecodeOptions, path: str) -> Any:
    if raw is None:
        return None
    if primitives.is_primitive(type_name):
        return primitives.coerce(type_name, raw, path=path)
    if not isinstance(raw, dict):
        raise DecodeError(f"expected an object for {type_name}, got {type(raw).__name__}", path=path)
    if options.is_resource_type(type_name):
        return _decode_resource(raw, options, path, expected=type_name)
    return _decode_record(raw, options.registry.resolve(type_name), options, path)


def _decode_values(spec: FieldSpec, raw: Any, options: DecodeOptions, path: str) -> list[Any]:
    if isinstance(raw, list):
        return [_decode_item(spec.type, r, options, child_path(path, spec.name, i)) for i, r in enumerate(raw)]
    if spec.is_list:
        raise DecodeError(f"expected an array for repeating element '{spec.name}'", path=path)
    return [_decode_item(spec.type, raw, options, child_path(path, spec.name))]


def _decode_companions(spec: FieldSpec, raw: Any, options: DecodeOptions, path: str) -> list[Any]:
    element_type = options.registry.resolve(ELEMENT)
    where = child_path(path, f"_{spec.name}")
    items = raw if isinstance(raw, list) else [raw]
    companions: list[Any] = []
    for item in items:
        if item is None:
            companions.append(None)
        elif isinstance(item, dict):
            companions.append(_decode_record(item, element_type, options, where))
        else:
            raise DecodeError(f"primitive metadata must be an object, got {type(item).__name__}", path=where)
    return companions


def _lookup(record_type: RecordType, key: str) -> Optional[Union[FieldSpec, tuple[ChoiceGroup, str]]]:
    spec = record_type.field(key)
    if spec is not None:
        return spec
    return resolve_key(record_type, key)


def _decode_record(data: dict[str, Any], record_type: RecordType, options: DecodeOptions, path: str) -> Record:
    record = Record(record_type.name)
    collector = FieldCollector()

    for key, raw in data.items():
        if key == DISCRIMINATOR and record_type.is_resource:
            continue

        companion_of = key[1:] if key.startswith("_") and len(key) > 1 else None
        target = _lookup(record_type, companion_of or key)

        if target is None:
            if options.preserve_unknown:
                record.extras[key] = raw
                logger.debug("Preserving unknown key '%s' at %s", key, path)
            else:
                logger.debug("Dropping unknown key '%s' at %s", key, path)
            continue

        spec = target if isinstance(target, FieldSpec) else target[0].member_spec(target[1])
        if companion_of is not None:
            collector.add_companions(spec, _decode_companions(spec, raw, options, path))
        elif isinstance(target, FieldSpec):
            collector.add_values(spec, _decode_values(spec, raw, options, path))
        else:
            group, type_name = target
            store_choice(record, group, type_name, _decode_item(type_name, raw, options, child_path(path, key)))

    collector.write(record)
    store_metadata_members(record, record_type)
    if options.strict_choice:
        check_exclusive(record, record_type)
    return record


def _decode_resource(data: dict[str, Any], options: DecodeOptions, path: str, expected: Optional[str] = None) -> Record:
    type_name = data.get(DISCRIMINATOR)
    if type_name is None:
        if expected is None or options.is_resource_type(expected):
            raise DecodeError(f"missing '{DISCRIMINATOR}'", path=path or None)
        return _decode_record(data, options.registry.resolve(expected), options, path or expected)
    if not isinstance(type_name, str):
        raise DecodeError(f"'{DISCRIMINATOR}' must be a string", path=path or None)

    record_type = options.registry.resolve(type_name)
    where = path or type_name
    if expected is not None:
        check_resource_type(options, type_name, expected, where)
    if record_type.abstract:
        raise DecodeError(f"'{type_name}' is abstract and cannot be instantiated", path=where)
    return _decode_record(data, record_type, options, where)


def from_dict(
    data: dict[str, Any],
    registry: Optional[SchemaRegistry] = None,
    *,
    type_name: Optional[str] = None,
    strict_choice: Optional[bool] = None,
    preserve_unknown: Optional[bool] = None,
) -> Record:
    """Decode a parsed JSON object into a Record.

    Parameters
    ----------
    data:
        The JSON object.  Resources carry ``resourceType``; datatypes and
        backbones need *type_name*.
    type_name:
        Expected type.  For resources the discriminator must be this type or
        derive from it.
    strict_choice:
        Raise :class:`~fhirstruct.errors.AmbiguousChoiceError` as soon as a
        choice group has two members (default from config).
    preserve_unknown:
        Keep unrecognised keys in ``extras`` (default from config).

    Raises
    ------
    DecodeError, UnknownTypeError, TypeCoercionError
    """
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    options = DecodeOptions.build(registry, strict_choice, preserve_unknown)
    return _decode_resource(data, options, "", expected=type_name)


def decode_json(
    text: Union[str, bytes],
    registry: Optional[SchemaRegistry] = None,
    *,
    type_name: Optional[str] = None,
    strict_choice: Optional[bool] = None,
    preserve_unknown: Optional[bool] = None,
) -> Record:
    """Parse JSON text and decode it (see :func:`from_dict`)."""
    try:
        data = json.loads(text, parse_float=Decimal)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    record = from_dict(
        data,
        registry,
        type_name=type_name,
        strict_choice=strict_choice,
        preserve_unknown=preserve_unknown,
    )
    logger.debug("Decoded %s from JSON", record.type_name)
    return record
