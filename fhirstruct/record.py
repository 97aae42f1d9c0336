# fhirstruct/record.py
"""Runtime instances of a RecordType.

A :class:`Record` is a plain, freely mutable mapping from element name to
value.  It knows the *name* of its RecordType but not the RecordType itself;
the codec and validator look the definition up in the schema registry.

Stored value shapes
-------------------
- single-valued field: the value itself (primitive or nested ``Record``)
- list-valued field: a ``list`` in wire order
- choice group: a :class:`ChoiceValue` stored under the stem (``"value"``);
  a list of several ChoiceValues represents an ambiguous instance as it
  arrived on the wire

Two side channels keep what the declared elements cannot hold:

- ``extras``: unknown wire keys, preserved verbatim for re-encoding
- ``companions``: element metadata attached to primitive values (the JSON
  ``_field`` convention; ``id`` / ``extension`` on an XML primitive element)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

__all__ = ["ChoiceValue", "Record", "RawXml"]


@dataclass(frozen=True)
class ChoiceValue:
    """Tagged union for a choice group: the concrete type plus its value."""

    type: str
    value: Any


class RawXml(str):
    """Verbatim XML fragment kept for an unrecognised element."""

    __slots__ = ()


@dataclass
class Record:
    """One populated instance of a RecordType."""

    type_name: str
    values: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    companions: dict[str, Any] = field(default_factory=dict)

    # -- mapping protocol -------------------------------------------------

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.values[name] = value

    def __delitem__(self, name: str) -> None:
        del self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def items(self):
        return self.values.items()

    # -- convenience --------------------------------------------------------

    def set_choice(self, stem: str, type_name: str, value: Any) -> "Record":
        """Populate choice group *stem* with a value of *type_name*, replacing any other member."""
        self.values[stem] = ChoiceValue(type_name, value)
        return self

    def choice(self, stem: str) -> Optional[ChoiceValue]:
        """Return the single populated member of *stem*, or ``None``."""
        stored = self.values.get(stem)
        if isinstance(stored, ChoiceValue):
            return stored
        return None

    def append(self, name: str, value: Any) -> "Record":
        """Append to a list-valued field, creating the list on first use."""
        current = self.values.get(name)
        if current is None:
            self.values[name] = [value]
        elif isinstance(current, list):
            current.append(value)
        else:
            self.values[name] = [current, value]
        return self

