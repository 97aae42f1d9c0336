# tests/conftest.py
"""Shared fixtures: isolated config and registries built from the bundled definitions."""

from __future__ import annotations

import pytest

SAMPLE_YAML = """
name: Sample
kind: resource
elements:
  - {name: id, type: string}
  - name: status
    type: code
    min: 1
    binding:
      strength: required
      value_set: http://example.org/ValueSet/sample-status
      codes:
        http://example.org/sample-status: [draft, final]
  - name: value[x]
    types: [Quantity, string]
"""


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Keep FHIRSTRUCT_* settings and the default registry from leaking between tests."""
    from fhirstruct.config import get_config
    from fhirstruct.schemas.registry import reset_registry

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FHIRSTRUCT_HOME_DIR", str(tmp_path / "home"))
    get_config.cache_clear()
    yield
    get_config.cache_clear()
    reset_registry()


@pytest.fixture(scope="session")
def bundled_registry():
    """Frozen registry of the bundled definitions, shared by the whole session."""
    from fhirstruct.schemas import BUNDLED_DEFINITIONS_DIR, SchemaRegistry

    registry = SchemaRegistry()
    registry.load_directory(BUNDLED_DEFINITIONS_DIR)
    return registry.freeze()


@pytest.fixture()
def sample_registry():
    """Bundled definitions plus the small ``Sample`` resource used in scenario tests."""
    from fhirstruct.schemas import BUNDLED_DEFINITIONS_DIR, SchemaRegistry

    registry = SchemaRegistry()
    registry.load_directory(BUNDLED_DEFINITIONS_DIR)
    registry.load_yaml(SAMPLE_YAML, source="sample.yaml")
    return registry.freeze()
