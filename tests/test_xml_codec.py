# tests/test_xml_codec.py
"""Tests for the XML wire format."""

from decimal import Decimal

import pytest

FHIR_NS = "http://hl7.org/fhir"

IMMUNIZATION_XML = """<Immunization xmlns="http://hl7.org/fhir">
  <id value="imm1"/>
  <text>
    <status value="generated"/>
    <div xmlns="http://www.w3.org/1999/xhtml"><p>Flu shot <b>given</b></p></div>
  </text>
  <contained>
    <Patient>
      <id value="p1"/>
      <gender value="female"/>
    </Patient>
  </contained>
  <status value="completed"/>
  <vaccineCode>
    <coding>
      <system value="http://hl7.org/fhir/sid/cvx"/>
      <code value="140"/>
    </coding>
    <text value="Influenza, seasonal, injectable"/>
  </vaccineCode>
  <patient>
    <reference value="#p1"/>
  </patient>
  <occurrenceDateTime value="2013-01-10"/>
  <primarySource value="true"/>
  <lotNumber id="lot" value="AAJN11K">
    <extension url="http://example.org/lot-source">
      <valueString value="pharmacy"/>
    </extension>
  </lotNumber>
  <doseQuantity>
    <value value="5.0"/>
    <system value="http://unitsofmeasure.org"/>
    <code value="mg"/>
  </doseQuantity>
  <protocolApplied>
    <doseNumberPositiveInt value="1"/>
  </protocolApplied>
</Immunization>"""


class TestDecode:

    def test_fields_and_types(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml
        from fhirstruct.record import ChoiceValue

        rec = decode_xml(IMMUNIZATION_XML, bundled_registry)
        assert rec.type_name == "Immunization"
        assert rec["id"] == "imm1"
        assert rec["status"] == "completed"
        assert rec["primarySource"] is True
        assert rec["occurrence"] == ChoiceValue("dateTime", "2013-01-10")
        assert rec["vaccineCode"]["coding"][0]["code"] == "140"
        assert rec["doseQuantity"]["value"] == Decimal("5.0")
        assert rec["protocolApplied"][0]["doseNumber"] == ChoiceValue("positiveInt", 1)

    def test_contained_resource(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml

        rec = decode_xml(IMMUNIZATION_XML, bundled_registry)
        patient = rec["contained"][0]
        assert patient.type_name == "Patient"
        assert patient["gender"] == "female"

    def test_narrative_div_kept_as_xhtml(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml

        div = decode_xml(IMMUNIZATION_XML, bundled_registry)["text"]["div"]
        assert div.startswith('<div xmlns="http://www.w3.org/1999/xhtml">')
        assert "<b>given</b>" in div

    def test_primitive_id_and_extension(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml

        rec = decode_xml(IMMUNIZATION_XML, bundled_registry)
        assert rec["lotNumber"] == "AAJN11K"
        companion = rec.companions["lotNumber"]
        assert companion["id"] == "lot"
        extension = companion["extension"][0]
        assert extension["url"] == "http://example.org/lot-source"
        assert extension.choice("value").value == "pharmacy"

    def test_unknown_elements_kept_raw(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml
        from fhirstruct.record import RawXml

        text = IMMUNIZATION_XML.replace(
            "<status value=\"completed\"/>",
            "<status value=\"completed\"/><futureThing value=\"1\"/><futureThing value=\"2\"/>",
        )
        rec = decode_xml(text, bundled_registry)
        kept = rec.extras["futureThing"]
        assert len(kept) == 2
        assert all(isinstance(k, RawXml) for k in kept)
        assert 'value="2"' in kept[1]

    def test_comments_ignored(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml

        rec = decode_xml('<Coding xmlns="http://hl7.org/fhir"><!-- note --><code value="x"/></Coding>', bundled_registry)
        assert rec.values == {"code": "x"}

    def test_bytes_input(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml

        rec = decode_xml(IMMUNIZATION_XML.encode("utf-8"), bundled_registry)
        assert rec["id"] == "imm1"


class TestDecodeErrors:

    @pytest.mark.parametrize(
        "text, message",
        [
            ("<Immunization xmlns='http://hl7.org/fhir'>", "invalid XML"),
            ("<Immunization/>", "not in namespace"),
            ("<DomainResource xmlns='http://hl7.org/fhir'/>", "abstract"),
            ("<CarePlan xmlns='http://hl7.org/fhir'><title/></CarePlan>", "has no value"),
            (
                "<CarePlan xmlns='http://hl7.org/fhir'><contained/></CarePlan>",
                "exactly one resource",
            ),
        ],
    )
    def test_decode_errors(self, bundled_registry, text, message):
        from fhirstruct.codec.xml_codec import decode_xml
        from fhirstruct.errors import DecodeError

        with pytest.raises(DecodeError, match=message):
            decode_xml(text, bundled_registry)

    def test_unknown_root(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml
        from fhirstruct.errors import UnknownTypeError

        with pytest.raises(UnknownTypeError):
            decode_xml("<Observation xmlns='http://hl7.org/fhir'/>", bundled_registry)

    def test_bad_value_attribute(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml
        from fhirstruct.errors import TypeCoercionError

        with pytest.raises(TypeCoercionError) as exc_info:
            decode_xml("<Patient xmlns='http://hl7.org/fhir'><active value='yes'/></Patient>", bundled_registry)
        assert exc_info.value.path == "Patient.active"


class TestEncode:

    def test_structure(self, bundled_registry):
        from lxml import etree

        from fhirstruct.codec.xml_codec import to_element
        from fhirstruct.record import Record

        rec = Record(
            "CarePlan",
            {
                "id": "cp1",
                "status": "draft",
                "intent": "plan",
                "subject": Record("Reference", {"reference": "Patient/1"}),
                "instantiatesUri": ["http://a", "http://b"],
            },
        )
        root = to_element(rec, bundled_registry)
        assert root.tag == f"{{{FHIR_NS}}}CarePlan"
        names = [etree.QName(c).localname for c in root]
        assert names == ["id", "instantiatesUri", "instantiatesUri", "status", "intent", "subject"]
        assert root[0].get("value") == "cp1"
        assert root[5][0].get("value") == "Patient/1"

    def test_attribute_elements(self, bundled_registry):
        from fhirstruct.codec.xml_codec import encode_xml
        from fhirstruct.record import Record

        ext = Record("Extension", {"url": "http://example.org/x"}).set_choice("value", "boolean", False)
        coding = Record("Coding", {"id": "c1", "extension": [ext], "code": "a"})
        text = encode_xml(coding, bundled_registry, pretty=False)
        assert text == (
            '<Coding xmlns="http://hl7.org/fhir" id="c1">'
            '<extension url="http://example.org/x"><valueBoolean value="false"/></extension>'
            '<code value="a"/></Coding>'
        )

    def test_bare_div_gets_xhtml_namespace(self, bundled_registry):
        from fhirstruct.codec.xml_codec import encode_xml
        from fhirstruct.record import Record

        narrative = Record("Narrative", {"status": "generated", "div": "<div><p>hi</p></div>"})
        text = encode_xml(narrative, bundled_registry, pretty=False)
        assert '<div xmlns="http://www.w3.org/1999/xhtml"><p>hi</p></div>' in text

    def test_malformed_div(self, bundled_registry):
        from fhirstruct.codec.xml_codec import encode_xml
        from fhirstruct.errors import TypeCoercionError
        from fhirstruct.record import Record

        with pytest.raises(TypeCoercionError, match="not well-formed"):
            encode_xml(Record("Narrative", {"status": "generated", "div": "<div>"}), bundled_registry)

    def test_json_extras_skipped(self, bundled_registry):
        from fhirstruct.codec.xml_codec import encode_xml
        from fhirstruct.record import Record

        rec = Record("Coding", {"code": "a"}, extras={"future": {"x": 1}})
        assert encode_xml(rec, bundled_registry, pretty=False) == '<Coding xmlns="http://hl7.org/fhir"><code value="a"/></Coding>'

    def test_pretty_from_config(self, bundled_registry, monkeypatch):
        from fhirstruct.codec.xml_codec import encode_xml
        from fhirstruct.config import get_config
        from fhirstruct.record import Record

        monkeypatch.setenv("FHIRSTRUCT_XML_PRETTY", "false")
        get_config.cache_clear()
        assert "\n" not in encode_xml(Record("Coding", {"code": "a"}), bundled_registry)


class TestRoundTrip:

    def test_xml_round_trip(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml, encode_xml

        rec = decode_xml(IMMUNIZATION_XML, bundled_registry)
        again = decode_xml(encode_xml(rec, bundled_registry), bundled_registry)
        assert again == rec

    def test_unknown_elements_reproduced(self, bundled_registry):
        from fhirstruct.codec.xml_codec import decode_xml, encode_xml

        text = '<Coding xmlns="http://hl7.org/fhir"><code value="a"/><future value="1"/></Coding>'
        rec = decode_xml(text, bundled_registry)
        assert encode_xml(rec, bundled_registry, pretty=False) == text

    def test_json_to_xml_and_back(self, bundled_registry):
        from fhirstruct.codec.json_codec import from_dict
        from fhirstruct.codec.xml_codec import decode_xml, encode_xml

        data = {
            "resourceType": "Patient",
            "id": "p1",
            "active": True,
            "name": [{"family": "Chalmers", "given": ["Peter", "James"]}],
            "gender": "male",
            "birthDate": "1974-12-25",
            "_birthDate": {"extension": [{"url": "http://example.org/t", "valueDateTime": "1974-12-25T14:35:45-05:00"}]},
            "deceasedBoolean": False,
        }
        rec = from_dict(data, bundled_registry)
        assert decode_xml(encode_xml(rec, bundled_registry), bundled_registry) == rec

    def test_metadata_only_choice_member(self, sample_registry):
        from fhirstruct.codec.xml_codec import decode_xml, encode_xml

        text = '<Sample xmlns="http://hl7.org/fhir"><status value="draft"/><valueString id="a1"/></Sample>'
        rec = decode_xml(text, sample_registry)
        assert encode_xml(rec, sample_registry, pretty=False) == text
