"""YAML definition loader: turns definition tables into RecordTypes.

The generated definition tables live on disk as YAML documents, one type per
document (a file may hold several documents separated by ``---``).  Parsing
goes through small Pydantic descriptors first so malformed tables fail with
a precise message, then each descriptor is compiled into immutable
:class:`~fhirstruct.schemas.model.RecordType` objects.

Document layout::

    name: CarePlan
    kind: resource
    base: DomainResource
    elements:
      - name: status
        type: code
        min: 1
        binding:
          strength: required
          codes:
            http://hl7.org/fhir/request-status: [draft, active]
      - name: subject
        type: Reference
        min: 1
        targets: [Patient, Group]
      - name: activity          # inline backbone -> CarePlan.Activity
        max: "*"
        elements:
          - name: occurrence[x]
            types: [dateTime, Period]

Public API
----------
- :func:`parse_definition` -- compile YAML text into RecordTypes.
- :func:`load_definition_file` -- same, reading from a file.
- :func:`load_definitions` -- compile every ``*.yaml`` file of one or more
  directories, resolving ``base`` references across files.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from ..errors import DefinitionError
from .model import (
    ChoiceGroup,
    CodeBinding,
    ElementSpec,
    FieldSpec,
    RecordKind,
    RecordType,
)

__all__ = [
    "BUNDLED_DEFINITIONS_DIR",
    "BindingDecl",
    "ElementDecl",
    "DefinitionDoc",
    "parse_definition",
    "load_definition_file",
    "load_definitions",
    "compile_documents",
]

logger = logging.getLogger(__name__)

BUNDLED_DEFINITIONS_DIR = Path(__file__).parent / "definitions"

PROFILE_BASE = "http://hl7.org/fhir/StructureDefinition/"


class _DefinitionLoader(yaml.SafeLoader):
    """SafeLoader that reads only true/false as booleans.

    Codes such as ``on``, ``off``, ``yes`` and ``no`` stay strings.
    """


_BOOL_TAG = "tag:yaml.org,2002:bool"
_DefinitionLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_DefinitionLoader.add_implicit_resolver(
    _BOOL_TAG, re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), list("tTfF")
)


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


class BindingDecl(BaseModel):
    """Terminology binding as written in a definition table."""

    strength: str
    value_set: Optional[str] = None
    codes: dict[str, List[str]] = Field(default_factory=dict)


class ElementDecl(BaseModel):
    """One element entry.  Exactly one of ``type``, ``types`` or ``elements`` applies."""

    name: str
    type: Optional[str] = None
    types: Optional[List[str]] = None  # choice members, name must end in [x]
    min: int = 0
    max: Union[int, str] = 1
    short: Optional[str] = None
    binding: Optional[BindingDecl] = None
    targets: Optional[List[str]] = None  # resource names or profile URLs
    elements: Optional[List["ElementDecl"]] = None  # inline backbone
    type_name: Optional[str] = None  # override for the backbone's qualified name
    base: Optional[str] = None  # backbone base, defaults to BackboneElement

    @model_validator(mode="after")
    def _check_shape(self) -> "ElementDecl":
        is_choice = self.name.endswith("[x]")
        if is_choice and not self.types:
            raise ValueError(f"choice element '{self.name}' must list 'types'")
        if not is_choice and self.types:
            raise ValueError(f"element '{self.name}' lists 'types' but is not named '<stem>[x]'")
        if self.elements is not None and (self.type or self.types):
            raise ValueError(f"element '{self.name}' cannot declare both 'elements' and a type")
        if not is_choice and self.type is None and self.elements is None:
            raise ValueError(f"element '{self.name}' needs a 'type' or nested 'elements'")
        return self


class DefinitionDoc(BaseModel):
    """A whole definition document (one record type and its inline backbones)."""

    name: str
    kind: RecordKind = "complex-type"
    base: Optional[str] = None
    url: Optional[str] = None
    abstract: bool = False
    description: Optional[str] = None
    search_params: List[str] = Field(default_factory=list)
    elements: List[ElementDecl] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _read_documents(yaml_content: str, source: str) -> list[DefinitionDoc]:
    try:
        raw_docs = [d for d in yaml.load_all(yaml_content, Loader=_DefinitionLoader) if d is not None]
    except yaml.YAMLError as exc:
        raise DefinitionError(f"{source}: invalid YAML: {exc}") from exc

    docs: list[DefinitionDoc] = []
    for data in raw_docs:
        if not isinstance(data, dict):
            raise DefinitionError(f"{source}: each document must be a mapping, got {type(data).__name__}")
        try:
            docs.append(DefinitionDoc(**data))
        except ValidationError as exc:
            label = data.get("name", "?")
            raise DefinitionError(f"{source}: definition '{label}' is malformed: {exc}") from exc
    return docs


# ---------------------------------------------------------------------------
# Compilation helpers
# ---------------------------------------------------------------------------


def _capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]


def _binding(decl: Optional[BindingDecl], where: str) -> Optional[CodeBinding]:
    if decl is None:
        return None
    try:
        return CodeBinding(
            strength=decl.strength,
            value_set=decl.value_set,
            codes={system: tuple(codes) for system, codes in decl.codes.items()},
        )
    except ValidationError as exc:
        raise DefinitionError(f"{where}: invalid binding: {exc}") from exc


def _profiles(targets: Optional[list[str]]) -> tuple[str, ...]:
    if not targets:
        return ()
    return tuple(t if "/" in t else PROFILE_BASE + t for t in targets)


def _rebase(element: ElementSpec, path_root: str) -> ElementSpec:
    """Copy an inherited element, re-rooting its path at the inheriting type."""
    return element.model_copy(update={"path": f"{path_root}.{element.name}"})


BaseResolver = Callable[[str], Optional[RecordType]]


def _compile_type(
    *,
    name: str,
    kind: RecordKind,
    decls: list[ElementDecl],
    base: Optional[RecordType],
    path_root: str,
    resolve_base: BaseResolver,
    url: Optional[str] = None,
    abstract: bool = False,
    description: Optional[str] = None,
    search_params: Iterable[str] = (),
) -> list[RecordType]:
    """Build *name* plus every inline backbone below it (parent first)."""
    elements: list[ElementSpec] = []
    if base is not None:
        elements.extend(_rebase(e, path_root) for e in base.elements)

    own_nested: list[str] = []
    descendants: list[RecordType] = []

    for decl in decls:
        where = f"{path_root}.{decl.name}"
        try:
            if decl.name.endswith("[x]"):
                elements.append(
                    ChoiceGroup(
                        stem=decl.name[:-3],
                        types=tuple(decl.types or ()),
                        min=decl.min,
                        max=decl.max,
                        path=where,
                        binding=_binding(decl.binding, where),
                        target_profiles=_profiles(decl.targets),
                        short=decl.short,
                    )
                )
                continue

            type_name = decl.type
            if decl.elements is not None:
                type_name = decl.type_name or f"{name}.{_capitalize(decl.name)}"
                backbone_base = resolve_base(decl.base or "BackboneElement")
                if decl.base and backbone_base is None:
                    raise DefinitionError(f"base type '{decl.base}' is not defined", path=where)
                backbone = _compile_type(
                    name=type_name,
                    kind="backbone",
                    decls=decl.elements,
                    base=backbone_base,
                    path_root=where,
                    resolve_base=resolve_base,
                    description=decl.short,
                )
                own_nested.append(type_name)
                descendants.extend(backbone)

            elements.append(
                FieldSpec(
                    name=decl.name,
                    type=type_name,
                    min=decl.min,
                    max=decl.max,
                    path=where,
                    binding=_binding(decl.binding, where),
                    target_profiles=_profiles(decl.targets),
                    short=decl.short,
                )
            )
        except ValidationError as exc:
            raise DefinitionError(f"invalid element: {exc}", path=where) from exc

    try:
        root = RecordType(
            name=name,
            kind=kind,
            url=url,
            base=base.name if base is not None else None,
            abstract=abstract,
            description=description,
            elements=tuple(elements),
            nested=tuple(own_nested),
            search_params=tuple(search_params),
        )
    except ValidationError as exc:
        raise DefinitionError(f"invalid definition: {exc}", path=name) from exc
    return [root, *descendants]


def compile_documents(
    docs: Iterable[DefinitionDoc],
    known: Optional[Mapping[str, RecordType]] = None,
) -> list[RecordType]:
    """Compile descriptors into RecordTypes, resolving ``base`` in dependency order.

    *known* supplies already-compiled types (e.g. the registry's contents)
    that documents may inherit from.
    """
    external = dict(known or {})
    pending: dict[str, DefinitionDoc] = {}
    for doc in docs:
        if doc.name in pending:
            raise DefinitionError(f"definition '{doc.name}' appears twice")
        pending[doc.name] = doc

    compiled: dict[str, RecordType] = {}
    output: list[RecordType] = []
    resolving: list[str] = []

    def build(name: str) -> RecordType:
        if name in compiled:
            return compiled[name]
        if name not in pending:
            if name in external:
                return external[name]
            raise DefinitionError(f"base type '{name}' is not defined")
        if name in resolving:
            chain = " -> ".join([*resolving, name])
            raise DefinitionError(f"circular base chain: {chain}")

        resolving.append(name)
        doc = pending[name]
        base = build(doc.base) if doc.base else None
        types = _compile_type(
            name=doc.name,
            kind=doc.kind,
            decls=doc.elements,
            base=base,
            path_root=doc.name,
            resolve_base=implicit_base,
            url=doc.url or PROFILE_BASE + doc.name,
            abstract=doc.abstract,
            description=doc.description,
            search_params=doc.search_params,
        )
        resolving.pop()
        for record_type in types:
            compiled[record_type.name] = record_type
            output.append(record_type)
        return compiled[name]

    def implicit_base(name: str) -> Optional[RecordType]:
        if name in compiled or name in pending or name in external:
            return build(name)
        return None

    for name in list(pending):
        build(name)
    return output


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_definition(
    yaml_content: str,
    known: Optional[Mapping[str, RecordType]] = None,
    *,
    source: str = "<string>",
) -> list[RecordType]:
    """Compile YAML definition text into RecordTypes.

    Parameters
    ----------
    yaml_content:
        One or more YAML documents in the definition layout.
    known:
        Previously compiled types that ``base`` entries may refer to.

    Returns
    -------
    list[RecordType]
        Every type defined by the text, each parent before its backbones.
    """
    return compile_documents(_read_documents(yaml_content, source), known)


def load_definition_file(
    path: Union[str, Path],
    known: Optional[Mapping[str, RecordType]] = None,
) -> list[RecordType]:
    """Read and compile one YAML definition file."""
    path = Path(path)
    return parse_definition(path.read_text(encoding="utf-8"), known, source=str(path))


def load_definitions(
    *directories: Union[str, Path],
    known: Optional[Mapping[str, RecordType]] = None,
) -> list[RecordType]:
    """Compile every ``*.yaml`` / ``*.yml`` file below the given directories.

    All documents are gathered before compiling so a type may inherit from a
    type defined in another file.
    """
    docs: list[DefinitionDoc] = []
    for directory in directories:
        root = Path(directory)
        if not root.is_dir():
            raise DefinitionError(f"definitions directory not found: {root}")
        files = sorted(root.glob("*.yaml")) + sorted(root.glob("*.yml"))
        for path in files:
            docs.extend(_read_documents(path.read_text(encoding="utf-8"), str(path)))
        logger.debug("Read %d definition file(s) from %s", len(files), root)
    return compile_documents(docs, known)
