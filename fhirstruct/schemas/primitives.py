# fhirstruct/schemas/primitives.py
"""Primitive types of the standard: lexical rules and wire coercion.

Each primitive carries the JSON representation it uses on the wire and the
regular expression its lexical form must match.  ``coerce`` turns a raw wire
value (JSON scalar or XML attribute text) into the Python value stored on a
:class:`~fhirstruct.record.Record`:

=================  =================  ==========================
Primitive          Python value       Accepted wire forms
=================  =================  ==========================
boolean            ``bool``           ``true`` / ``"true"``
integer family     ``int``            ``5`` / ``"5"``
decimal            ``Decimal``        ``1.50`` / ``"1.50"``
everything else    ``str``            string matching the regex
=================  =================  ==========================

Temporal primitives (``date``, ``dateTime``, ``instant``, ``time``) are kept
as validated strings because partial dates such as ``"2019-04"`` have no
lossless ``datetime`` equivalent.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Optional

from ..errors import TypeCoercionError

__all__ = [
    "PrimitiveInfo",
    "PRIMITIVES",
    "is_primitive",
    "coerce",
    "check",
    "to_text",
]

JsonKind = Literal["string", "boolean", "integer", "decimal"]


@dataclass(frozen=True)
class PrimitiveInfo:
    """Lexical description of one primitive type."""

    name: str
    json_kind: JsonKind
    regex: Optional[str] = None
    minimum: Optional[int] = None

    def matches(self, text: str) -> bool:
        if self.regex is None:
            return True
        return _compiled(self.regex).fullmatch(text) is not None


_DATE = r"([0-9]([0-9]([0-9][1-9]|[1-9]0)|[1-9]00)|[1-9]000)"
_TZ = r"(Z|(\+|-)((0[0-9]|1[0-3]):[0-5][0-9]|14:00))"
_TIME = r"([01][0-9]|2[0-3]):[0-5][0-9]:([0-5][0-9]|60)(\.[0-9]+)?"

PRIMITIVES: dict[str, PrimitiveInfo] = {
    p.name: p
    for p in (
        PrimitiveInfo("base64Binary", "string", r"(\s*([0-9a-zA-Z\+/=]){4}\s*)+"),
        PrimitiveInfo("boolean", "boolean", r"true|false"),
        PrimitiveInfo("canonical", "string", r"\S*"),
        PrimitiveInfo("code", "string", r"[^\s]+(\s[^\s]+)*"),
        PrimitiveInfo("date", "string", _DATE + r"(-(0[1-9]|1[0-2])(-(0[1-9]|[1-2][0-9]|3[0-1]))?)?"),
        PrimitiveInfo(
            "dateTime",
            "string",
            _DATE + r"(-(0[1-9]|1[0-2])(-(0[1-9]|[1-2][0-9]|3[0-1])(T" + _TIME + _TZ + r")?)?)?",
        ),
        PrimitiveInfo("decimal", "decimal", r"-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?"),
        PrimitiveInfo("id", "string", r"[A-Za-z0-9\-\.]{1,64}"),
        PrimitiveInfo(
            "instant",
            "string",
            _DATE + r"-(0[1-9]|1[0-2])-(0[1-9]|[1-2][0-9]|3[0-1])T" + _TIME + _TZ,
        ),
        PrimitiveInfo("integer", "integer", r"-?([0]|([1-9][0-9]*))"),
        PrimitiveInfo("markdown", "string", r"[ \r\n\t\S]+"),
        PrimitiveInfo("oid", "string", r"urn:oid:[0-2](\.(0|[1-9][0-9]*))+"),
        PrimitiveInfo("positiveInt", "integer", r"[1-9][0-9]*", minimum=1),
        PrimitiveInfo("string", "string", r"[ \r\n\t\S]+"),
        PrimitiveInfo("time", "string", _TIME),
        PrimitiveInfo("unsignedInt", "integer", r"[0]|([1-9][0-9]*)", minimum=0),
        PrimitiveInfo("uri", "string", r"\S*"),
        PrimitiveInfo("url", "string", r"\S*"),
        PrimitiveInfo("uuid", "string", r"urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"),
        PrimitiveInfo("xhtml", "string"),
    )
}

_REGEX_CACHE: dict[str, re.Pattern[str]] = {}


def _compiled(expr: str) -> re.Pattern[str]:
    pattern = _REGEX_CACHE.get(expr)
    if pattern is None:
        pattern = _REGEX_CACHE[expr] = re.compile(expr)
    return pattern


def _is_finite(number: Any) -> bool:
    if isinstance(number, Decimal):
        return number.is_finite()
    return not isinstance(number, float) or math.isfinite(number)


def _is_whole(number: Any) -> bool:
    try:
        return number == int(number)
    except (ValueError, OverflowError):
        return False


def is_primitive(type_name: str) -> bool:
    return type_name in PRIMITIVES


def _info(type_name: str) -> PrimitiveInfo:
    try:
        return PRIMITIVES[type_name]
    except KeyError:
        raise TypeCoercionError(f"'{type_name}' is not a primitive type") from None


def coerce(type_name: str, raw: Any, *, path: Optional[str] = None) -> Any:
    """Convert a wire value into the Python value for primitive *type_name*.

    Raises
    ------
    TypeCoercionError
        If *raw* cannot represent a value of the declared type.
    """
    info = _info(type_name)

    if info.json_kind == "boolean":
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw in ("true", "false"):
            return raw == "true"
        raise TypeCoercionError(f"expected boolean, got {raw!r}", path=path)

    if info.json_kind == "integer":
        if isinstance(raw, bool):
            raise TypeCoercionError(f"expected {type_name}, got boolean {raw!r}", path=path)
        if isinstance(raw, int):
            value = raw
        elif isinstance(raw, str) and info.matches(raw.strip()):
            value = int(raw.strip())
        elif isinstance(raw, (float, Decimal)) and _is_whole(raw):
            value = int(raw)
        else:
            raise TypeCoercionError(f"expected {type_name}, got {raw!r}", path=path)
        if info.minimum is not None and value < info.minimum:
            raise TypeCoercionError(f"{type_name} must be >= {info.minimum}, got {value}", path=path)
        return value

    if info.json_kind == "decimal":
        if isinstance(raw, bool):
            raise TypeCoercionError(f"expected decimal, got boolean {raw!r}", path=path)
        if not _is_finite(raw):
            raise TypeCoercionError(f"decimal must be finite, got {raw!r}", path=path)
        if isinstance(raw, Decimal):
            return raw
        if isinstance(raw, int):
            return Decimal(raw)
        if isinstance(raw, float):
            return Decimal(repr(raw))
        if isinstance(raw, str) and info.matches(raw.strip()):
            try:
                return Decimal(raw.strip())
            except InvalidOperation:
                pass
        raise TypeCoercionError(f"expected decimal, got {raw!r}", path=path)

    if not isinstance(raw, str):
        raise TypeCoercionError(f"expected {type_name} string, got {type(raw).__name__} {raw!r}", path=path)
    if not info.matches(raw):
        raise TypeCoercionError(f"{raw!r} is not a valid {type_name}", path=path)
    return raw


def check(type_name: str, value: Any) -> Optional[str]:
    """Return a problem description if *value* is not a valid stored value, else ``None``."""
    info = PRIMITIVES.get(type_name)
    if info is None:
        return f"'{type_name}' is not a primitive type"
    if info.json_kind == "boolean":
        return None if isinstance(value, bool) else f"expected boolean, got {value!r}"
    if info.json_kind == "integer":
        if isinstance(value, bool) or not isinstance(value, int):
            return f"expected {type_name}, got {value!r}"
        if info.minimum is not None and value < info.minimum:
            return f"{type_name} must be >= {info.minimum}, got {value}"
        return None
    if info.json_kind == "decimal":
        if isinstance(value, bool) or not isinstance(value, (int, Decimal, float)):
            return f"expected decimal, got {value!r}"
        if not _is_finite(value):
            return f"decimal must be finite, got {value!r}"
        return None
    if not isinstance(value, str):
        return f"expected {type_name} string, got {type(value).__name__}"
    if not info.matches(value):
        return f"{value!r} is not a valid {type_name}"
    return None


def to_text(type_name: str, value: Any) -> str:
    """Render a stored primitive value as XML attribute text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
