# fhirstruct/config.py
"""
fhirstruct Configuration — Single source of truth via Pydantic Settings.

Resolution order: CLI flags > env vars (FHIRSTRUCT_*) > .env file > defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FhirstructConfig(BaseSettings):
    """Central configuration for fhirstruct."""

    model_config = SettingsConfigDict(
        env_prefix="FHIRSTRUCT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Standard ---
    fhir_version: str = "4.0.1"
    xml_namespace: str = "http://hl7.org/fhir"

    # --- Definitions ---
    # Extra YAML directories loaded after the bundled ones (JSON list in the env var).
    definitions_dirs: list[Path] = Field(default_factory=list)

    # --- Codec ---
    preserve_unknown: bool = True
    strict_choice: bool = False
    json_indent: int = 2
    xml_pretty: bool = True

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".fhirstruct")

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"


@lru_cache(maxsize=1)
def get_config() -> FhirstructConfig:
    """Return the global config singleton."""
    return FhirstructConfig()
