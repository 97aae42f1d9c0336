# fhirstruct/codec/choice.py
"""Choice resolution: wire member names <-> tagged ChoiceValues.

On the wire a choice group ``value[x]`` appears as one concrete key such as
``valueQuantity``; in memory it is a single :class:`ChoiceValue` stored
under the stem.  These helpers translate between the two views.
"""

from __future__ import annotations

from typing import Any, Optional

from ..errors import AmbiguousChoiceError
from ..record import ChoiceValue, Record
from ..schemas.model import ChoiceGroup, RecordType

__all__ = [
    "resolve_key",
    "populated_members",
    "populated_member",
    "store_choice",
    "store_metadata_members",
    "check_exclusive",
]


def resolve_key(record_type: RecordType, key: str) -> Optional[tuple[ChoiceGroup, str]]:
    """Map a wire key to ``(group, member type)``.

    Only exact member names match: the key must equal the stem followed by
    one declared type with its first letter upper-cased.  A key matching no
    group returns ``None``.
    """
    for group in record_type.choice_groups():
        if not key.startswith(group.stem) or len(key) == len(group.stem):
            continue
        type_name = group.type_for_member(key)
        if type_name is not None:
            return group, type_name
    return None


def _stored_choices(stored: Any) -> list[ChoiceValue]:
    if isinstance(stored, ChoiceValue):
        return [stored]
    if isinstance(stored, list):
        return [item for item in stored if isinstance(item, ChoiceValue)]
    return []


def populated_members(record: Record, group: ChoiceGroup) -> list[tuple[str, ChoiceValue]]:
    """Every populated member of *group* as ``(wire key, ChoiceValue)``, in stored order.

    A member with no value but with primitive metadata (``_valueString``)
    counts as populated.
    """
    members = []
    for choice in _stored_choices(record.get(group.stem)):
        key = group.member_name(choice.type)
        if choice.value is not None or record.companions.get(key) is not None:
            members.append((key, choice))
    return members


def populated_member(record: Record, group: ChoiceGroup) -> Optional[tuple[str, ChoiceValue]]:
    """The single populated member of *group*, or ``None``.

    Raises
    ------
    AmbiguousChoiceError
        If more than one member is populated.
    """
    members = populated_members(record, group)
    if len(members) > 1:
        keys = ", ".join(key for key, _ in members)
        raise AmbiguousChoiceError(f"choice '{group.name}' has several members populated: {keys}", path=group.path)
    return members[0] if members else None


def store_choice(record: Record, group: ChoiceGroup, type_name: str, value: Any) -> None:
    """Add a decoded member to *record*.

    A second member arriving for the same group turns the stored value into a
    list, which is how an ambiguous instance is kept for later validation.
    """
    choice = ChoiceValue(type_name, value)
    current = record.get(group.stem)
    if current is None:
        record[group.stem] = choice
    elif isinstance(current, list):
        current.append(choice)
    else:
        record[group.stem] = [current, choice]


def check_exclusive(record: Record, record_type: RecordType) -> None:
    """Fail fast if any choice group of *record* holds more than one member."""
    for group in record_type.choice_groups():
        populated_member(record, group)


def store_metadata_members(record: Record, record_type: RecordType) -> None:
    """Store an empty member for every choice key that arrived as metadata only.

    JSON carries ``_valueString`` under its own key, so a member with an id or
    extensions but no value has nothing under the stem until this runs.
    """
    for group in record_type.choice_groups():
        stored = {choice.type for choice in _stored_choices(record.get(group.stem))}
        for type_name in group.types:
            if type_name not in stored and record.companions.get(group.member_name(type_name)) is not None:
                store_choice(record, group, type_name, None)
