# fhirstruct/cli.py
"""
fhirstruct CLI -- Click commands with rich terminal output.

Provides the ``fhirstruct`` console entry-point declared in pyproject.toml as
``fhirstruct.cli:cli``.  Commands call straight into the library:

- types:     list registered record types
- describe:  metadata table of one type
- validate:  decode a JSON/XML file and validate it
- convert:   re-encode a file between JSON and XML
- config:    show the effective configuration
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .codec import decode_json, decode_xml, encode_json, encode_xml
from .config import get_config
from .errors import FhirstructError
from .record import Record
from .schemas import InMemoryTerminologyService, SchemaRegistry, get_registry
from .utils.logging import get_logger, log_decode_complete, log_decode_start, log_document, log_validation_summary, setup_logging
from .validation import ValidationIssue, Validator

console = Console()
logger = get_logger(__name__)

FORMATS = ("json", "xml")


def _print_version(
    ctx: click.Context,
    _param: click.Parameter,
    value: bool,
) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _registry() -> SchemaRegistry:
    try:
        return get_registry()
    except FhirstructError as exc:
        raise click.ClickException(f"Could not load definitions: {exc}") from exc


def _detect_format(path: Path, text: str) -> str:
    suffix = path.suffix.lower()
    if suffix in (".json", ".xml"):
        return suffix[1:]
    return "xml" if text.lstrip().startswith("<") else "json"


def _read_record(path: Path, wire_format: Optional[str], strict_choice: Optional[bool] = None) -> tuple[Record, str]:
    text = path.read_text(encoding="utf-8")
    wire_format = wire_format or _detect_format(path, text)
    log_decode_start(logger, str(path), wire_format, size=len(text.encode("utf-8")))
    decode = decode_xml if wire_format == "xml" else decode_json
    try:
        record = decode(text, _registry(), strict_choice=strict_choice)
    except FhirstructError as exc:
        raise click.ClickException(f"{path.name}: {exc}") from exc
    log_decode_complete(logger, record.type_name, unknown_keys=len(record.extras))
    return record, wire_format


def _load_terminology(path: Path) -> InMemoryTerminologyService:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid terminology file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException(f"Terminology file {path} must map code systems to lists of codes")
    return InMemoryTerminologyService({str(system): [str(c) for c in codes or []] for system, codes in data.items()})


def _issue_rows(issues: list[ValidationIssue]) -> list[tuple[str, str, str]]:
    return [(i.path, i.kind, i.message) for i in issues]


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Write a session log file under the configured log directory.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """fhirstruct -- schema-driven FHIR R4 validation and JSON/XML codecs."""
    if log_level:
        setup_logging(level=log_level, log_dir=get_config().log_dir)
    if ctx.invoked_subcommand is None:
        theme.print_banner(__version__, console, fhir_version=get_config().fhir_version)
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# types
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--kind",
    type=click.Choice(["resource", "complex-type", "backbone", "logical"]),
    default=None,
    help="Only list types of this kind.",
)
def types(kind: Optional[str]) -> None:
    """List registered record types.

    \b
    Examples:
      fhirstruct types
      fhirstruct types --kind resource
    """
    registry = _registry()
    t = theme.make_table()
    t.add_column("Type", style=f"bold {theme.FLAME}", no_wrap=True)
    t.add_column("Kind")
    t.add_column("Base", style=theme.MUTED)
    t.add_column("Elements", justify="right")
    count = 0
    for record_type in registry:
        if kind is not None and record_type.kind != kind:
            continue
        name = record_type.name + (" (abstract)" if record_type.abstract else "")
        t.add_row(name, record_type.kind, record_type.base or "", str(len(record_type.elements)))
        count += 1
    theme.section("Record Types", console, "01")
    console.print(t)
    console.print(theme.info(f"{count} type(s)"))


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("type_name")
@click.option("--json-output", "json_output", is_flag=True, default=False, help="Print the metadata table as JSON.")
def describe(type_name: str, json_output: bool) -> None:
    """Show the metadata table of a record type.

    \b
    Examples:
      fhirstruct describe CarePlan
      fhirstruct describe CarePlan.Activity --json-output
    """
    registry = _registry()
    try:
        record_type = registry.resolve(type_name)
        table = registry.describe(type_name)
    except FhirstructError as exc:
        raise click.ClickException(str(exc)) from exc

    if json_output:
        click.echo(json.dumps(table, indent=2, ensure_ascii=False))
        return

    theme.section(record_type.name, console, "01", uppercase=False)
    kv = theme.make_kv_table()
    kv.add_row("kind", record_type.kind)
    kv.add_row("base", record_type.base or "-")
    if record_type.url:
        kv.add_row("url", record_type.url)
    if record_type.description:
        kv.add_row("description", _esc(record_type.description))
    if record_type.nested:
        kv.add_row("nested", ", ".join(record_type.nested))
    if record_type.search_params:
        kv.add_row("search", ", ".join(record_type.search_params))
    console.print(kv)

    theme.section("Elements", console, "02")
    t = theme.make_table()
    t.add_column("Element", style=f"bold {theme.FLAME}", no_wrap=True)
    t.add_column("Type")
    t.add_column("Card.", justify="center")
    t.add_column("Binding")
    t.add_column("Targets", style=theme.MUTED)
    for key, entry in table.items():
        binding = entry.get("binding")
        binding_text = ""
        if binding:
            binding_text = theme.badge(binding["strength"], binding["strength"])
            if binding.get("uri"):
                binding_text += f" [{theme.MUTED}]{_esc(binding['uri'])}[/{theme.MUTED}]"
        targets = ", ".join(p.rsplit("/", 1)[-1] for p in entry.get("type_profiles", []))
        t.add_row(key, entry["type"], f"{entry['min']}..{entry['max']}", binding_text, targets)
    console.print(t)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "wire_format", type=click.Choice(FORMATS), default=None, help="Wire format (default: from extension or content).")
@click.option("--strict-choice", is_flag=True, default=False, help="Fail while decoding if a choice group has several members.")
@click.option(
    "--terminology",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file mapping code systems to known codes.",
)
@click.option("--json-output", "json_output", is_flag=True, default=False, help="Print the result as JSON.")
@click.pass_context
def validate(
    ctx: click.Context,
    file: Path,
    wire_format: Optional[str],
    strict_choice: bool,
    terminology: Optional[Path],
    json_output: bool,
) -> None:
    """Decode FILE and validate it against its record type.

    Exits with status 1 when the record has errors.

    \b
    Examples:
      fhirstruct validate careplan.json
      fhirstruct validate immunization.xml --terminology codes.yaml
    """
    record, wire_format = _read_record(file, wire_format, strict_choice=True if strict_choice else None)
    service = _load_terminology(terminology) if terminology else None
    result = Validator(_registry(), service).validate(record)
    log_validation_summary(logger, record.type_name, len(result.errors), len(result.warnings))

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        _render_result(file, wire_format, record, result.errors, result.warnings)

    if not result.is_valid:
        ctx.exit(1)


def _render_result(
    file: Path,
    wire_format: str,
    record: Record,
    errors: list[ValidationIssue],
    warnings: list[ValidationIssue],
) -> None:
    theme.section("Validation", console, "01")
    kv = theme.make_kv_table()
    kv.add_row("file", _esc(str(file)))
    kv.add_row("format", wire_format)
    kv.add_row("type", record.type_name)
    if record.extras:
        kv.add_row("preserved", ", ".join(record.extras))
    console.print(kv)

    for number, (title, issues, line) in enumerate(
        (("Errors", errors, theme.err), ("Warnings", warnings, theme.warn)), start=2
    ):
        if not issues:
            continue
        theme.section(title, console, f"{number:02d}")
        for path, kind, message in _issue_rows(issues):
            console.print(line(f"[bold]{_esc(path)}[/bold] [{theme.MUTED}]{kind}[/{theme.MUTED}] {_esc(message)}"))

    console.print()
    if errors:
        console.print(theme.err(f"{record.type_name} is invalid: {len(errors)} error(s), {len(warnings)} warning(s)"))
    else:
        console.print(theme.ok(f"{record.type_name} is valid ({len(warnings)} warning(s))"))


# ---------------------------------------------------------------------------
# convert
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--to", "target", type=click.Choice(FORMATS), required=True, help="Output wire format.")
@click.option("--format", "wire_format", type=click.Choice(FORMATS), default=None, help="Input wire format (default: detected).")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write to this file instead of stdout.")
def convert(file: Path, target: str, wire_format: Optional[str], output: Optional[Path]) -> None:
    """Re-encode FILE as JSON or XML.

    Unknown elements are carried over only when source and target formats
    match.

    \b
    Examples:
      fhirstruct convert careplan.json --to xml
      fhirstruct convert immunization.xml --to json -o immunization.json
    """
    record, _ = _read_record(file, wire_format)
    encode: Any = encode_xml if target == "xml" else encode_json
    try:
        text = encode(record, _registry())
    except FhirstructError as exc:
        raise click.ClickException(str(exc)) from exc
    log_document(logger, f"{record.type_name} as {target}", text)

    if output is None:
        click.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")
    console.print(theme.ok(f"Wrote {record.type_name} as {target.upper()} to {output}"))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command("config")
def config_show() -> None:
    """Show the effective configuration.

    \b
    Examples:
      fhirstruct config
      FHIRSTRUCT_STRICT_CHOICE=true fhirstruct config
    """
    cfg = get_config()
    dump = cfg.model_dump()

    theme.section("Standard", console, "01")
    t = theme.make_kv_table()
    t.add_row("fhir_version", dump["fhir_version"])
    t.add_row("xml_namespace", dump["xml_namespace"])
    console.print(t)

    theme.section("Codec", console, "02")
    t = theme.make_kv_table()
    t.add_row("preserve_unknown", str(dump["preserve_unknown"]))
    t.add_row("strict_choice", str(dump["strict_choice"]))
    t.add_row("json_indent", str(dump["json_indent"]))
    t.add_row("xml_pretty", str(dump["xml_pretty"]))
    console.print(t)

    theme.section("Paths", console, "03")
    t = theme.make_kv_table()
    t.add_row("home_dir", str(dump["home_dir"]))
    t.add_row("log_dir", str(cfg.log_dir))
    dirs = dump["definitions_dirs"]
    t.add_row("definitions_dirs", ", ".join(str(d) for d in dirs) if dirs else "[dim]bundled only[/dim]")
    console.print(t)


if __name__ == "__main__":
    cli()
