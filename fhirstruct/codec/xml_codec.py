# fhirstruct/codec/xml_codec.py
"""XML wire format (namespace ``http://hl7.org/fhir``), built on lxml.

- The root element is named after the resource type.
- Child elements follow declaration order; repeating elements repeat.
- Primitives are written as ``<name value="..."/>``.  Their metadata goes
  in an ``id`` attribute and ``<extension>`` children.
- ``Element.id`` and ``Extension.url`` are attributes.
- ``xhtml`` content (``Narrative.div``) is embedded as XHTML.
- Resource-typed children wrap the resource element:
  ``<contained><Patient>...</Patient></contained>``.
- Unrecognised child elements are kept verbatim as :class:`RawXml` extras
  and written back on encode.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from lxml import etree

from ..config import get_config
from ..errors import DecodeError, TypeCoercionError
from ..record import RawXml, Record
from ..schemas import primitives
from ..schemas.model import FieldSpec, RecordType
from ..schemas.registry import SchemaRegistry, get_registry
from .choice import check_exclusive, populated_members, resolve_key, store_choice
from .common import (
    ELEMENT,
    EXTENSION,
    DecodeOptions,
    FieldCollector,
    as_list,
    check_resource_type,
    child_path,
    warn_undeclared,
)

__all__ = ["to_element", "from_element", "encode_xml", "decode_xml", "XHTML_NAMESPACE"]

logger = logging.getLogger(__name__)

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"


def _namespace() -> str:
    return get_config().xml_namespace


def _parser() -> etree.XMLParser:
    return etree.XMLParser(remove_blank_text=True, resolve_entities=False, no_network=True)


def _is_attribute(record_type: RecordType, spec: FieldSpec, registry: SchemaRegistry) -> bool:
    if spec.name == "id" and not record_type.is_resource:
        return True
    return spec.name == "url" and registry.is_a(record_type.name, EXTENSION)


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


class _Writer:
    def __init__(self, registry: SchemaRegistry, namespace: str) -> None:
        self.registry = registry
        self.ns = namespace

    def tag(self, name: str) -> str:
        return f"{{{self.ns}}}{name}"

    def fill(self, elem: etree._Element, record: Record, path: str) -> None:
        record_type = self.registry.resolve(record.type_name)
        for element in record_type.elements:
            if isinstance(element, FieldSpec):
                value = record.get(element.name)
                if _is_attribute(record_type, element, self.registry):
                    if value is not None:
                        elem.set(element.name, primitives.to_text(element.type, value))
                    continue
                self.write_field(elem, element.name, element, value, record.companions.get(element.name), path)
                continue
            for key, choice in populated_members(record, element):
                spec = element.member_spec(choice.type)
                self.write_field(elem, key, spec, choice.value, record.companions.get(key), path)

        warn_undeclared(logger, record, record_type, path)
        for key, raw in record.extras.items():
            fragments = [r for r in as_list(raw) if isinstance(r, RawXml)]
            if not fragments:
                logger.warning("Skipping JSON-only extra '%s' at %s when writing XML", key, path)
                continue
            for fragment in fragments:
                elem.append(etree.fromstring(fragment, _parser()))

    def write_field(
        self,
        parent: etree._Element,
        name: str,
        spec: FieldSpec,
        value: Any,
        companion: Any,
        path: str,
    ) -> None:
        values = as_list(value)
        companions = as_list(companion)
        count = max(len(values), len(companions))
        for index in range(count):
            item = values[index] if index < len(values) else None
            meta = companions[index] if index < len(companions) else None
            if item is None and meta is None:
                continue
            where = child_path(path, name, index if count > 1 else None)
            self.write_item(parent, name, spec.type, item, meta, where)

    def write_item(
        self,
        parent: etree._Element,
        name: str,
        type_name: str,
        value: Any,
        companion: Optional[Record],
        path: str,
    ) -> None:
        if type_name == "xhtml":
            parent.append(_xhtml_element(value, path))
            return

        child = etree.SubElement(parent, self.tag(name))
        if primitives.is_primitive(type_name):
            if value is not None:
                if isinstance(value, (Record, list, dict)):
                    raise TypeCoercionError(f"cannot write {type(value).__name__} as {type_name}", path=path)
                child.set("value", primitives.to_text(type_name, value))
            if companion is not None:
                self.fill(child, companion, path)
            return

        if not isinstance(value, Record):
            raise TypeCoercionError(f"expected a {type_name} record, got {type(value).__name__}", path=path)
        if self.registry.is_a(type_name, "Resource"):
            child = etree.SubElement(child, self.tag(value.type_name))
        self.fill(child, value, path)


def _xhtml_element(value: Any, path: str) -> etree._Element:
    if not isinstance(value, str):
        raise TypeCoercionError(f"xhtml content must be a string, got {type(value).__name__}", path=path)
    try:
        div = etree.fromstring(value, _parser())
    except etree.XMLSyntaxError as exc:
        raise TypeCoercionError(f"xhtml content is not well-formed: {exc}", path=path) from exc
    if etree.QName(div).namespace is not None:
        return div
    # bare <div>: move the content under an XHTML default namespace
    for node in div.iter():
        if isinstance(node.tag, str) and not node.tag.startswith("{"):
            node.tag = f"{{{XHTML_NAMESPACE}}}{node.tag}"
    root = etree.Element(div.tag, attrib=dict(div.attrib), nsmap={None: XHTML_NAMESPACE})
    root.text = div.text
    root.extend(list(div))
    etree.cleanup_namespaces(root)
    return root


def to_element(record: Record, registry: Optional[SchemaRegistry] = None) -> etree._Element:
    """Build the lxml element tree for *record*."""
    ns = _namespace()
    writer = _Writer(registry if registry is not None else get_registry(), ns)
    root = etree.Element(writer.tag(record.type_name), nsmap={None: ns})
    writer.fill(root, record, record.type_name)
    return root


def encode_xml(
    record: Record,
    registry: Optional[SchemaRegistry] = None,
    *,
    pretty: Optional[bool] = None,
) -> str:
    """Encode *record* as XML text (no declaration)."""
    if pretty is None:
        pretty = get_config().xml_pretty
    return etree.tostring(to_element(record, registry), pretty_print=pretty, encoding="unicode")


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


class _Reader:
    def __init__(self, options: DecodeOptions, namespace: str) -> None:
        self.options = options
        self.registry = options.registry
        self.ns = namespace

    def read(self, elem: etree._Element, record_type: RecordType, path: str) -> Record:
        record = Record(record_type.name)
        collector = FieldCollector()

        for attr, text in elem.attrib.items():
            spec = record_type.field(attr)
            if spec is not None and _is_attribute(record_type, spec, self.registry):
                collector.add_values(spec, [primitives.coerce(spec.type, text, path=child_path(path, attr))])
            else:
                logger.debug("Ignoring attribute '%s' at %s", attr, path)

        for child in elem:
            if not isinstance(child.tag, str):
                continue  # comments, processing instructions
            qname = etree.QName(child)
            name = qname.localname
            where = child_path(path, name)

            spec = record_type.field(name)
            if qname.namespace == XHTML_NAMESPACE and spec is not None and spec.type == "xhtml":
                collector.add_values(spec, [etree.tostring(child, encoding="unicode", with_tail=False)])
                continue

            target = resolve_key(record_type, name) if spec is None else None
            if qname.namespace != self.ns or (spec is None and target is None):
                self.keep_unknown(record, child, name, path)
                continue
            if spec is not None and _is_attribute(record_type, spec, self.registry):
                self.keep_unknown(record, child, name, path)
                continue

            if spec is not None:
                value, meta = self.read_item(child, spec.type, where)
                collector.add_values(spec, [value])
                collector.add_companions(spec, [meta])
            else:
                group, type_name = target
                value, meta = self.read_item(child, type_name, where)
                store_choice(record, group, type_name, value)
                if meta is not None:
                    collector.add_companions(group.member_spec(type_name), [meta])

        collector.write(record)
        if self.options.strict_choice:
            check_exclusive(record, record_type)
        return record

    def keep_unknown(self, record: Record, child: etree._Element, name: str, path: str) -> None:
        if not self.options.preserve_unknown:
            logger.debug("Dropping unknown element '%s' at %s", name, path)
            return
        fragment = RawXml(etree.tostring(child, encoding="unicode", with_tail=False))
        current = record.extras.get(name)
        if current is None:
            record.extras[name] = fragment
        elif isinstance(current, list):
            current.append(fragment)
        else:
            record.extras[name] = [current, fragment]
        logger.debug("Preserving unknown element '%s' at %s", name, path)

    def read_item(self, child: etree._Element, type_name: str, path: str) -> tuple[Any, Optional[Record]]:
        if primitives.is_primitive(type_name):
            raw = child.get("value")
            value = primitives.coerce(type_name, raw, path=path) if raw is not None else None
            meta = self.read_companion(child, path)
            if value is None and meta is None:
                raise DecodeError(f"primitive element '{etree.QName(child).localname}' has no value", path=path)
            return value, meta

        if self.options.is_resource_type(type_name):
            inner = [c for c in child if isinstance(c.tag, str)]
            if len(inner) != 1:
                raise DecodeError(f"expected exactly one resource inside, found {len(inner)}", path=path)
            return self.read_resource(inner[0], path, expected=type_name), None

        return self.read(child, self.registry.resolve(type_name), path), None

    def read_companion(self, child: etree._Element, path: str) -> Optional[Record]:
        has_metadata = child.get("id") is not None or any(isinstance(c.tag, str) for c in child)
        if not has_metadata:
            return None
        return self.read(child, self.registry.resolve(ELEMENT), path)

    def read_resource(self, elem: etree._Element, path: str, expected: Optional[str] = None) -> Record:
        qname = etree.QName(elem)
        if qname.namespace != self.ns:
            raise DecodeError(f"element '{qname.localname}' is not in namespace {self.ns}", path=path or None)
        type_name = qname.localname
        record_type = self.registry.resolve(type_name)
        where = path or type_name
        if expected is not None:
            check_resource_type(self.options, type_name, expected, where)
        if record_type.is_resource and record_type.abstract:
            raise DecodeError(f"'{type_name}' is abstract and cannot be instantiated", path=where)
        return self.read(elem, record_type, where)


def from_element(
    elem: etree._Element,
    registry: Optional[SchemaRegistry] = None,
    *,
    type_name: Optional[str] = None,
    strict_choice: Optional[bool] = None,
    preserve_unknown: Optional[bool] = None,
) -> Record:
    """Decode an lxml element (the resource root) into a Record."""
    options = DecodeOptions.build(registry, strict_choice, preserve_unknown)
    return _Reader(options, _namespace()).read_resource(elem, "", expected=type_name)


def decode_xml(
    text: Union[str, bytes],
    registry: Optional[SchemaRegistry] = None,
    *,
    type_name: Optional[str] = None,
    strict_choice: Optional[bool] = None,
    preserve_unknown: Optional[bool] = None,
) -> Record:
    """Parse XML text and decode it.

    Raises
    ------
    DecodeError
        Malformed XML, a root outside the namespace, or a wrong shape.
    UnknownTypeError
        The root element names no registered type.
    TypeCoercionError
        A ``value`` attribute does not fit its primitive type.
    """
    if isinstance(text, str):
        text = text.encode("utf-8")
    try:
        root = etree.fromstring(text, _parser())
    except etree.XMLSyntaxError as exc:
        raise DecodeError(f"invalid XML: {exc}") from exc
    record = from_element(
        root,
        registry,
        type_name=type_name,
        strict_choice=strict_choice,
        preserve_unknown=preserve_unknown,
    )
    logger.debug("Decoded %s from XML", record.type_name)
    return record
