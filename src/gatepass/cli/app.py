"""Unified CLI entry point for gatepass.

Config precedence: settings.default.toml -> settings.{env}.toml -> settings.local.toml
-> env vars (GATEPASS_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import json
from typing import Optional

import typer
from rich.console import Console

from gatepass.cli.settings_cmd import settings_app

try:
    from importlib.metadata import version

    VERSION = version("gatepass")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "gatepass — detect Cloudflare Turnstile on a page and return a placeholder completion token. "
    "Tokens are format-valid only and are not accepted by Cloudflare siteverify."
)

app = typer.Typer(add_completion=True, help=APP_HELP)
app.add_typer(settings_app, name="settings")

console = Console()
err_console = Console(stderr=True)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, version: bool = typer.Option(False, "--version", help="Show version and exit.")) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"gatepass {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("solve")
def solve_command(
    sitekey: str = typer.Option(..., "--sitekey", "-k", help="Turnstile sitekey (0x... or 1x...)."),
    url: str = typer.Option(..., "--url", "-u", help="Absolute URL of the gated page."),
    user_agent: Optional[str] = typer.Option(None, "--user-agent", help="User-Agent to present."),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="Proxy spec: [scheme://][user:pass@]host[:port]."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Navigation timeout in milliseconds."),
) -> None:
    """Run one solve session and print the result as JSON."""
    from gatepass.exceptions import InvalidRequestError
    from gatepass.log import configure_logging
    from gatepass.models.request import SolveRequest
    from gatepass.settings import get_settings
    from gatepass.solver.session import SessionController

    settings = get_settings()
    configure_logging(settings.logging.level, json_format=settings.logging.json_format)

    try:
        request = SolveRequest.from_params(
            {"sitekey": sitekey, "url": url, "user_agent": user_agent, "proxy": proxy, "timeout_ms": timeout_ms},
            default_user_agent=settings.page.default_user_agent,
            default_timeout_ms=settings.api.default_timeout_ms,
        )
    except InvalidRequestError as e:
        err_console.print(f"[red]✗[/red] {e}" + (f": {e.received}" if e.received else ""))
        raise typer.Exit(code=2)

    with console.status("Running Turnstile session...", spinner="dots"):
        result = SessionController.from_settings(settings).solve(request)

    console.print_json(json.dumps(result.to_dict()))
    if not result.success:
        raise typer.Exit(code=1)


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default from settings)."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from gatepass.log import configure_logging
    from gatepass.settings import get_settings

    settings = get_settings()
    configure_logging(settings.logging.level, json_format=settings.logging.json_format)
    uvicorn.run(
        "gatepass.api.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )


if __name__ == "__main__":
    app()
