# tests/test_config.py
"""Tests for FhirstructConfig — Pydantic Settings single source of truth."""

from pathlib import Path


class TestFhirstructConfig:
    """Test FhirstructConfig defaults and overrides."""

    def test_default_values(self, monkeypatch):
        """Config should have sensible defaults without any env vars."""
        from fhirstruct.config import FhirstructConfig

        monkeypatch.delenv("FHIRSTRUCT_HOME_DIR", raising=False)
        cfg = FhirstructConfig()
        assert cfg.fhir_version == "4.0.1"
        assert cfg.xml_namespace == "http://hl7.org/fhir"
        assert cfg.definitions_dirs == []
        assert cfg.preserve_unknown is True
        assert cfg.strict_choice is False
        assert cfg.json_indent == 2
        assert cfg.xml_pretty is True
        assert cfg.home_dir == Path.home() / ".fhirstruct"

    def test_env_override(self, monkeypatch):
        """Environment variables with FHIRSTRUCT_ prefix override defaults."""
        from fhirstruct.config import FhirstructConfig

        monkeypatch.setenv("FHIRSTRUCT_STRICT_CHOICE", "true")
        monkeypatch.setenv("FHIRSTRUCT_JSON_INDENT", "4")
        cfg = FhirstructConfig()
        assert cfg.strict_choice is True
        assert cfg.json_indent == 4

    def test_definitions_dirs_json_list(self, monkeypatch, tmp_path):
        from fhirstruct.config import FhirstructConfig

        monkeypatch.setenv("FHIRSTRUCT_DEFINITIONS_DIRS", f'["{tmp_path}/a", "{tmp_path}/b"]')
        cfg = FhirstructConfig()
        assert cfg.definitions_dirs == [tmp_path / "a", tmp_path / "b"]

    def test_dotenv_file(self, tmp_path):
        """A .env file in the working directory is read."""
        from fhirstruct.config import FhirstructConfig

        (tmp_path / ".env").write_text("FHIRSTRUCT_PRESERVE_UNKNOWN=false\n", encoding="utf-8")
        assert FhirstructConfig().preserve_unknown is False

    def test_derived_paths(self):
        """log_dir derives from home_dir."""
        from fhirstruct.config import FhirstructConfig

        cfg = FhirstructConfig()
        assert cfg.log_dir == cfg.home_dir / "logs"

    def test_get_config_singleton(self):
        """get_config() returns the same instance."""
        from fhirstruct.config import get_config

        c1 = get_config()
        c2 = get_config()
        assert c1 is c2
