# fhirstruct/cli_theme.py
"""Terminal theme for the fhirstruct CLI.

Flame & slate palette:
  - Plain text banner with tagline and version
  - Numbered section headers ("01 · SECTION NAME")
  - Rounded panels with slate borders
  - Status badges with reverse styling
  - Works in both light and dark terminal modes
"""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

# ── Brand ─────────────────────────────────────────────────────────

BRAND = "F H I R S T R U C T"
TAGLINE = "Schema-driven validation and wire codecs for FHIR R4 records"

# ── Palette ───────────────────────────────────────────────────────

FLAME = "#E4572E"
SLATE = "#8D99AE"
MUTED = "dim"


# ── Banner ────────────────────────────────────────────────────────


def print_banner(version: str, console: Console, fhir_version: str = "") -> None:
    """Print the brand line, tagline and version strip."""
    console.print(f"\n  [bold {FLAME}]{BRAND}[/bold {FLAME}]\n")
    console.print(f"  [{SLATE}]{TAGLINE}[/{SLATE}]")
    strip = f"v{version}"
    if fhir_version:
        strip += f" · FHIR {fhir_version}"
    console.print(f"  [{MUTED}]{strip}[/{MUTED}]")
    console.print()


def print_version(version: str, console: Console) -> None:
    """Print a compact branded version line."""
    t = Text()
    t.append(BRAND, style=f"bold {FLAME}")
    t.append(f"  v{version}", style=MUTED)
    console.print(t)


# ── Section headers ──────────────────────────────────────────────


def section(
    title: str,
    console: Console,
    number: str | None = None,
    uppercase: bool = True,
) -> None:
    """Print a numbered section header."""
    console.print()
    t = Text()
    if number:
        t.append(f"  {number}", style=f"bold {FLAME}")
        t.append(" · ", style=MUTED)
    else:
        t.append("  ", style="")
    display = title.upper() if uppercase else title
    t.append(display, style="bold")
    console.print(t)
    rule = "─" * len(TAGLINE)
    console.print(f"  {rule}", style=SLATE)


# ── Tables ───────────────────────────────────────────────────────


def make_table(title: str | None = None, **kwargs: object) -> Table:
    """Create a table with rounded slate borders."""
    return Table(
        title=title,
        box=box.ROUNDED,
        border_style=SLATE,
        title_style=f"bold {FLAME}",
        header_style="bold",
        padding=(0, 1),
        **kwargs,
    )


def make_kv_table() -> Table:
    """Create a headerless two-column key–value table."""
    t = make_table(show_header=False)
    t.add_column("Key", style=f"bold {FLAME}", no_wrap=True)
    t.add_column("Value")
    return t


# ── Inline badges ───────────────────────────────────────────────


def badge(label: str, variant: str = "default") -> str:
    """Return Rich markup for a filled status badge."""
    colors = {
        "default": FLAME,
        "required": "red",
        "extensible": "yellow",
        "preferred": SLATE,
        "example": MUTED,
        "error": "red",
        "ok": "green",
    }
    c = colors.get(variant, FLAME)
    return f"[reverse {c}] {label} [/reverse {c}]"


# ── Status lines ─────────────────────────────────────────────────


def info(msg: str) -> str:
    """Info-level status line (flame arrow, dim text)."""
    return f"  [{FLAME}]›[/{FLAME}] [{MUTED}]{msg}[/{MUTED}]"


def ok(msg: str) -> str:
    """Success status line (green check)."""
    return f"  [bold green]✓[/bold green] {msg}"


def warn(msg: str) -> str:
    """Warning status line (yellow bang)."""
    return f"  [bold yellow]![/bold yellow] [yellow]{msg}[/yellow]"


def err(msg: str) -> str:
    """Error status line (red cross)."""
    return f"  [bold red]✗[/bold red] {msg}"
