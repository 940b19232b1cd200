"""config command — show the effective configuration."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from adolens_core.config import get_provider_config

console = Console()

_SECRET_KEYS = {"api_key", "anthropic_api_key", "openai_api_key", "ado_pat"}


def _mask(value) -> str:
    if not value:
        return "[dim]not set[/dim]"
    text = str(value)
    return f"{text[:4]}…{text[-2:]}" if len(text) > 8 else "****"


@click.command("config")
@click.pass_context
def config_cmd(ctx):
    """Show the configuration a review would run with.

    Values are merged from defaults, .adolens.yml, environment variables and
    the settings saved by `adolens init`. Secrets are masked.
    """
    config = ctx.obj["config"]
    store = ctx.obj["store"]

    table = Table(title="adolens configuration", show_header=True, header_style="bold cyan")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key in sorted(config):
        value = config[key]
        shown = _mask(value) if key in _SECRET_KEYS else ("[dim]default[/dim]" if value is None else str(value))
        table.add_row(key, shown)
    table.add_row("stored PAT", _mask(store.get_pat()))
    console.print(table)

    provider_config = get_provider_config(config)
    if provider_config is None:
        console.print(f"[yellow]Provider {config.get('provider')!r} is missing an API key.[/yellow]")
    else:
        console.print(f"Reviews will use [bold]{provider_config.provider}[/bold] / [bold]{provider_config.model}[/bold].")
