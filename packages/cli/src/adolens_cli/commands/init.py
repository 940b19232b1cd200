"""init command — interactive setup wizard.

Saves the organization URL, a validated PAT and the AI provider settings in
the settings store so that later `adolens review` runs need no flags, and
optionally writes a starter .adolens.yml for the repository.
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from rich.console import Console

from adolens_cli.auth import check_pat, validate_pat_format
from adolens_core.config import DEFAULT_BASE_URLS, DEFAULT_MODELS
from adolens_store.models import ProviderSettings

console = Console()

_PROVIDERS = ["anthropic", "openai", "ollama", "external"]


@click.command("init")
@click.option("--org-url", default=None, help="Azure DevOps organization URL, e.g. https://dev.azure.com/contoso.")
@click.option("--provider", type=click.Choice(_PROVIDERS), default=None, help="AI provider.")
@click.option("--model", default=None, help="Model name (provider default when omitted).")
@click.option("--skip-pat-check", is_flag=True, help="Save the PAT without testing it against Azure DevOps.")
@click.pass_context
def init_cmd(ctx, org_url: str | None, provider: str | None, model: str | None, skip_pat_check: bool):
    """Set up adolens: Azure DevOps access and the AI provider."""
    store = ctx.obj["store"]
    console.print("\n[bold cyan]adolens init[/bold cyan] — setup wizard\n")

    # --- Organization ---
    if org_url is None:
        org_url = click.prompt("Azure DevOps organization URL", default=store.get_org_url() or None)
    org_url = org_url.rstrip("/")
    if not org_url.startswith("https://"):
        raise click.UsageError("The organization URL must start with https://")
    store.set_org_url(org_url)

    # --- Personal access token ---
    console.print("\n[dim]Leave the PAT empty to use an `az login` session or the ADO_PAT variable instead.[/dim]")
    pat = click.prompt("Personal access token (Code: Read & Write)", default="", hide_input=True, show_default=False)
    if pat:
        error = validate_pat_format(pat)
        if error is None and not skip_pat_check:
            error = check_pat(pat, org_url)
        if error:
            raise click.ClickException(error)
        store.set_pat(pat)
        console.print("[green]PAT verified and saved.[/green]")
    elif store.get_pat():
        store.clear_pat()
        console.print("[dim]Removed the previously stored PAT.[/dim]")

    # --- AI provider ---
    if provider is None:
        current = store.get_provider_settings()
        provider = click.prompt(
            "AI provider",
            type=click.Choice(_PROVIDERS),
            default=current.provider if current else "anthropic",
        )
    if model is None:
        model = click.prompt("Model", default=DEFAULT_MODELS[provider])

    base_url = None
    if provider in DEFAULT_BASE_URLS:
        base_url = click.prompt("OpenAI-compatible endpoint", default=DEFAULT_BASE_URLS[provider])
        api_key = click.prompt("API key (optional)", default="", hide_input=True, show_default=False)
    else:
        env_var = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENAI_API_KEY"
        console.print(f"[dim]Leave empty to read {env_var} from the environment at review time.[/dim]")
        api_key = click.prompt("API key", default="", hide_input=True, show_default=False)

    store.set_provider_settings(ProviderSettings(provider=provider, model=model, api_key=api_key, base_url=base_url))
    console.print(f"[green]Saved provider settings ({provider}, {model}).[/green]")

    # --- Repository config ---
    config_path = ctx.obj.get("config_path", ".adolens.yml")
    if not Path(config_path).exists() and click.confirm(f"\nCreate {config_path} with default review settings?", default=False):
        _write_config(config_path, {"max_chars_per_file": 20000, "max_retries": 2, "exclude": []})
        console.print(f"[green]Created {config_path}[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Run a review with: [bold]adolens review <pull request URL>[/bold]")


def _write_config(config_path: str, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    path = Path(config_path)
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))
