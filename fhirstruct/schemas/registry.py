"""Schema registry: every RecordType known to the engine, by name.

The default registry is built on first access from the bundled YAML
definitions in ``definitions/`` plus any extra directories named by
``FHIRSTRUCT_DEFINITIONS_DIRS``.  It is frozen once populated, so after
start-up it is read-only and may be shared across threads.

Adding a new record type requires only a new ``.yaml`` file, no Python
changes.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from ..errors import DuplicateTypeError, RegistryFrozenError, UnknownTypeError
from .loader import BUNDLED_DEFINITIONS_DIR, load_definitions, parse_definition
from .model import UNBOUNDED, ChoiceGroup, CodeBinding, FieldSpec, RecordKind, RecordType

__all__ = [
    "SchemaRegistry",
    "get_registry",
    "reset_registry",
    "resolve",
    "describe",
]

logger = logging.getLogger(__name__)


class SchemaRegistry:
    """Name -> RecordType lookup, populated once and then frozen."""

    def __init__(self, types: Iterable[RecordType] = ()) -> None:
        self._types: dict[str, RecordType] = {}
        self._frozen = False
        self.register_all(types)

    # -- population ---------------------------------------------------------

    def register(self, record_type: RecordType) -> RecordType:
        """Add *record_type*.

        Raises
        ------
        DuplicateTypeError
            If a type of the same name is already registered.
        RegistryFrozenError
            If the registry has been frozen.
        """
        if self._frozen:
            raise RegistryFrozenError(f"cannot register '{record_type.name}': registry is frozen")
        if record_type.name in self._types:
            raise DuplicateTypeError(record_type.name)
        self._types[record_type.name] = record_type
        return record_type

    def register_all(self, types: Iterable[RecordType]) -> None:
        for record_type in types:
            self.register(record_type)

    def load_directory(self, *directories: Union[str, Path]) -> list[RecordType]:
        """Compile and register every definition file in *directories*.

        Definitions may inherit from types that are already registered.
        """
        loaded = load_definitions(*directories, known=self._types)
        self.register_all(loaded)
        logger.info(
            "Registered %d record type(s) from %s",
            len(loaded),
            ", ".join(str(d) for d in directories),
        )
        return loaded

    def load_yaml(self, yaml_content: str, *, source: str = "<string>") -> list[RecordType]:
        """Compile and register definitions given as YAML text."""
        loaded = parse_definition(yaml_content, self._types, source=source)
        self.register_all(loaded)
        return loaded

    def freeze(self) -> "SchemaRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- lookup -------------------------------------------------------------

    def resolve(self, type_name: str) -> RecordType:
        """Return the RecordType named *type_name*.

        Raises
        ------
        UnknownTypeError
            If no such type is registered.
        """
        try:
            return self._types[type_name]
        except KeyError:
            raise UnknownTypeError(type_name) from None

    def get(self, type_name: str) -> Optional[RecordType]:
        return self._types.get(type_name)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[RecordType]:
        return iter(self._types.values())

    def names(self, kind: Optional[RecordKind] = None) -> list[str]:
        """Registered type names in registration order, optionally filtered by kind."""
        return [t.name for t in self._types.values() if kind is None or t.kind == kind]

    def resources(self) -> list[RecordType]:
        """Concrete (non-abstract) resource types."""
        return [t for t in self._types.values() if t.is_resource and not t.abstract]

    def ancestors(self, type_name: str) -> list[str]:
        """Base chain of *type_name*, nearest first (excluding the type itself)."""
        chain: list[str] = []
        current = self.get(type_name)
        while current is not None and current.base:
            chain.append(current.base)
            current = self.get(current.base)
        return chain

    def is_a(self, type_name: str, expected: str) -> bool:
        """True if *type_name* is *expected* or derives from it."""
        return type_name == expected or expected in self.ancestors(type_name)

    # -- self-description ---------------------------------------------------

    def describe(self, type_name: str) -> dict[str, dict[str, Any]]:
        """Return the metadata table of *type_name*.

        One entry per wire key, in declaration order.  Choice groups are
        listed member by member, each entry carrying the group's ``[x]``
        path, mirroring how generated classes describe themselves.
        """
        record_type = self.resolve(type_name)
        table: dict[str, dict[str, Any]] = {}
        for element in record_type.elements:
            if isinstance(element, FieldSpec):
                table[element.name] = _describe_entry(element.type, element)
                continue
            for member in element.types:
                table[element.member_name(member)] = _describe_entry(member, element)
        return table


def _describe_entry(type_name: str, element: Union[FieldSpec, ChoiceGroup]) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "type": type_name,
        "path": element.path,
        "min": element.min,
        "max": element.max_text if element.max is UNBOUNDED else element.max,
    }
    if element.target_profiles:
        entry["type_profiles"] = list(element.target_profiles)
    if element.binding is not None:
        entry.update(_describe_binding(element.binding))
    return entry


def _describe_binding(binding: CodeBinding) -> dict[str, Any]:
    described: dict[str, Any] = {"binding": {"strength": binding.strength.value, "uri": binding.value_set}}
    if binding.codes:
        described["valid_codes"] = {system: list(codes) for system, codes in binding.codes.items()}
    return described


# ---------------------------------------------------------------------------
# Default registry
# ---------------------------------------------------------------------------

_default: Optional[SchemaRegistry] = None
_default_lock = threading.Lock()


def _build_default() -> SchemaRegistry:
    from ..config import get_config

    registry = SchemaRegistry()
    registry.load_directory(BUNDLED_DEFINITIONS_DIR)
    extra_dirs = get_config().definitions_dirs
    if extra_dirs:
        registry.load_directory(*extra_dirs)
    return registry.freeze()


def get_registry() -> SchemaRegistry:
    """Return the process-wide registry, building and freezing it on first use."""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = _build_default()
    return _default


def reset_registry() -> None:
    """Drop the default registry so the next access rebuilds it (tests, config changes)."""
    global _default
    with _default_lock:
        _default = None


def resolve(type_name: str) -> RecordType:
    """Resolve *type_name* against the default registry."""
    return get_registry().resolve(type_name)


def describe(type_name: str) -> dict[str, dict[str, Any]]:
    """Metadata table of *type_name* from the default registry."""
    return get_registry().describe(type_name)
