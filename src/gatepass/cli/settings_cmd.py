"""CLI commands for inspecting and validating gatepass settings."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from gatepass.settings.config import Settings

settings_app = typer.Typer(help="Inspect and validate gatepass configuration.")
console = Console()

WAIT_UNTIL_STATES = frozenset({"commit", "domcontentloaded", "load", "networkidle"})

# Resource types Playwright reports on intercepted requests.
RESOURCE_TYPES = frozenset(
    {
        "document",
        "stylesheet",
        "image",
        "media",
        "font",
        "script",
        "texttrack",
        "xhr",
        "fetch",
        "eventsource",
        "websocket",
        "manifest",
        "other",
    }
)


def check_settings(settings: Settings) -> list[str]:
    """Return human-readable problems with *settings*; empty when usable."""
    problems: list[str] = []

    if settings.detection.wait_until not in WAIT_UNTIL_STATES:
        problems.append(
            f"detection.wait_until={settings.detection.wait_until!r} is not one of {sorted(WAIT_UNTIL_STATES)}"
        )
    if 0 < settings.detection.wait_ms < settings.detection.poll_interval_ms:
        problems.append("detection.poll_interval_ms exceeds detection.wait_ms; set wait_ms=0 for a single probe")

    unknown = sorted(set(settings.gatekeeper.blocked_resource_types) - RESOURCE_TYPES)
    if unknown:
        problems.append(f"gatekeeper.blocked_resource_types has unknown types: {', '.join(unknown)}")
    if {"document", "script"} & set(settings.gatekeeper.blocked_resource_types):
        problems.append("gatekeeper blocks document or script requests; the Turnstile loader would never arrive")

    try:
        re.compile(settings.acquisition.field_pattern)
    except re.error as e:
        problems.append(f"acquisition.field_pattern does not compile: {e}")

    if not settings.page.default_user_agent.strip():
        problems.append("page.default_user_agent is empty")
    if settings.page.viewport_width <= 0 or settings.page.viewport_height <= 0:
        problems.append("page viewport dimensions must be positive")

    if settings.api.max_concurrent_sessions < 1:
        problems.append("api.max_concurrent_sessions must be at least 1")
    if settings.api.default_timeout_ms <= 0:
        problems.append("api.default_timeout_ms must be positive")

    bad_args = [arg for arg in settings.browser.extra_args if not arg.startswith("--")]
    if bad_args:
        problems.append(f"browser.extra_args must be Chromium switches (--name): {bad_args}")
    return problems


@settings_app.command("show")
def show_settings(
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Only show one section (e.g. detection)."),
) -> None:
    """Display the currently resolved settings."""
    from gatepass.settings import get_settings

    data = get_settings().model_dump(mode="json")
    if section:
        if section not in data:
            console.print(f"[red]✗[/red] Unknown section {section!r}")
            raise typer.Exit(code=2)
        data = data[section]
    console.print_json(json.dumps(data, indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from gatepass.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings failed to load: {e}")
        raise typer.Exit(code=1)

    problems = check_settings(settings)
    if problems:
        for problem in problems:
            console.print(f"[red]✗[/red] {problem}")
        raise typer.Exit(code=1)

    table = Table(title=f"gatepass settings ({settings.env})", show_header=False)
    table.add_row("Navigation", f"wait_until={settings.detection.wait_until}")
    table.add_row(
        "Detection window", f"{settings.detection.wait_ms}ms (poll {settings.detection.poll_interval_ms}ms)"
    )
    table.add_row("Blocked resources", ", ".join(settings.gatekeeper.blocked_resource_types) or "none")
    table.add_row("Concurrent sessions", str(settings.api.max_concurrent_sessions))
    console.print(table)
    console.print("[green]✓[/green] Settings are valid.")
