# tests/test_cli.py
"""Tests for the fhirstruct command line."""

import json

import pytest
from click.testing import CliRunner

CAREPLAN = {
    "resourceType": "CarePlan",
    "id": "cp1",
    "status": "active",
    "intent": "plan",
    "subject": {"reference": "Patient/1"},
}

IMMUNIZATION = {
    "resourceType": "Immunization",
    "status": "completed",
    "vaccineCode": {"text": "Influenza"},
    "patient": {"reference": "Patient/1"},
    "occurrenceDateTime": "2013-01-10",
    "site": {"coding": [{"system": "http://terminology.hl7.org/CodeSystem/v3-ActSite", "code": "XX"}]},
}


def _write(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


class TestCLISkeleton:

    def test_cli_group_exists(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("types", "describe", "validate", "convert", "config"):
            assert command in result.output

    def test_no_command_shows_help(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Usage" in result.output

    def test_version_flag(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.4.0" in result.output


class TestTypesAndDescribe:

    def test_types_filtered_by_kind(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["types", "--kind", "resource"])
        assert result.exit_code == 0
        assert "CarePlan" in result.output
        assert "CodeableConcept" not in result.output
        assert "type(s)" in result.output

    def test_describe_json(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["describe", "CarePlan", "--json-output"])
        assert result.exit_code == 0
        table = json.loads(result.output)
        assert table["status"]["min"] == 1
        assert table["status"]["binding"]["strength"] == "required"

    def test_describe_table(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["describe", "Immunization"])
        assert result.exit_code == 0
        assert "occurrenceDateTime" in result.output

    def test_describe_unknown_type(self):
        from fhirstruct.cli import cli
        runner = CliRunner()
        result = runner.invoke(cli, ["describe", "Nope"])
        assert result.exit_code != 0
        assert "Unknown type 'Nope'" in result.output


class TestValidateCommand:

    def test_valid_file(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "careplan.json", CAREPLAN)
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_invalid_file_exits_nonzero(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "careplan.json", {**CAREPLAN, "status": "paused"})
        result = CliRunner().invoke(cli, ["validate", str(path), "--json-output"])
        assert result.exit_code == 1
        report = json.loads(result.output)
        assert report["is_valid"] is False
        assert report["errors"][0]["path"] == "CarePlan.status"
        assert report["errors"][0]["kind"] == "invalid_code"

    def test_xml_detected_from_content(self, tmp_path):
        from fhirstruct.cli import cli
        xml = (
            '<CarePlan xmlns="http://hl7.org/fhir"><status value="active"/><intent value="plan"/>'
            '<subject><reference value="Patient/1"/></subject></CarePlan>'
        )
        path = _write(tmp_path, "careplan.txt", xml)
        result = CliRunner().invoke(cli, ["validate", str(path), "--json-output"])
        assert result.exit_code == 0
        assert json.loads(result.output)["type_name"] == "CarePlan"

    def test_terminology_file(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "imm.json", IMMUNIZATION)
        runner = CliRunner()

        result = runner.invoke(cli, ["validate", str(path), "--json-output"])
        assert result.exit_code == 0
        assert [w["kind"] for w in json.loads(result.output)["warnings"]] == ["unverified_code"]

        codes = _write(tmp_path, "codes.yaml", "http://terminology.hl7.org/CodeSystem/v3-ActSite: [XX]\n")
        result = runner.invoke(cli, ["validate", str(path), "--terminology", str(codes), "--json-output"])
        assert result.exit_code == 0
        assert json.loads(result.output)["warnings"] == []

    def test_bad_terminology_file(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "imm.json", IMMUNIZATION)
        codes = _write(tmp_path, "codes.yaml", "- just\n- a list\n")
        result = CliRunner().invoke(cli, ["validate", str(path), "--terminology", str(codes)])
        assert result.exit_code == 1
        assert "must map code systems" in result.output

    def test_malformed_document(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "broken.json", "{not json")
        result = CliRunner().invoke(cli, ["validate", str(path)])
        assert result.exit_code == 1
        assert "broken.json" in result.output

    def test_strict_choice_flag(self, tmp_path):
        from fhirstruct.cli import cli
        data = {**IMMUNIZATION, "occurrenceString": "last week"}
        path = _write(tmp_path, "imm.json", data)
        runner = CliRunner()

        lenient = runner.invoke(cli, ["validate", str(path), "--json-output"])
        assert lenient.exit_code == 1
        assert json.loads(lenient.output)["errors"][0]["kind"] == "ambiguous_choice"

        strict = runner.invoke(cli, ["validate", str(path), "--strict-choice"])
        assert strict.exit_code == 1
        assert "occurrence" in strict.output


class TestConvertCommand:

    def test_json_to_xml_stdout(self, tmp_path):
        from fhirstruct.cli import cli
        path = _write(tmp_path, "careplan.json", CAREPLAN)
        result = CliRunner().invoke(cli, ["convert", str(path), "--to", "xml"])
        assert result.exit_code == 0
        assert '<CarePlan xmlns="http://hl7.org/fhir">' in result.output
        assert '<status value="active"/>' in result.output

    def test_xml_to_json_file(self, tmp_path):
        from fhirstruct.cli import cli
        source = _write(tmp_path, "careplan.json", CAREPLAN)
        runner = CliRunner()
        as_xml = runner.invoke(cli, ["convert", str(source), "--to", "xml", "-o", str(tmp_path / "out" / "careplan.xml")])
        assert as_xml.exit_code == 0

        result = runner.invoke(cli, ["convert", str(tmp_path / "out" / "careplan.xml"), "--to", "json", "-o", "back.json"])
        assert result.exit_code == 0
        assert "Wrote CarePlan" in result.output
        assert json.loads((tmp_path / "back.json").read_text(encoding="utf-8")) == CAREPLAN


class TestConfigCommand:

    def test_shows_effective_values(self, monkeypatch):
        from fhirstruct.cli import cli
        from fhirstruct.config import get_config

        monkeypatch.setenv("FHIRSTRUCT_JSON_INDENT", "7")
        get_config.cache_clear()
        result = CliRunner().invoke(cli, ["config"])
        assert result.exit_code == 0
        assert "4.0.1" in result.output
        assert "json_indent" in result.output
        assert "7" in result.output
        assert "bundled only" in result.output


@pytest.mark.parametrize("command", ["types", "describe", "validate", "convert", "config"])
def test_command_help(command):
    from fhirstruct.cli import cli
    result = CliRunner().invoke(cli, [command, "--help"])
    assert result.exit_code == 0
    assert "Examples" in result.output
