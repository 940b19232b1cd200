"""CLI entry point for adolens.

Commands:
  review   — run AI review on an Azure DevOps pull request
  init     — interactive setup wizard (org, PAT, AI provider)
  config   — show the effective configuration
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from adolens_cli.commands.config import config_cmd
from adolens_cli.commands.init import init_cmd
from adolens_cli.commands.review import review_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured settings store from .adolens.yml settings.

    Store selection hierarchy:
      store: sqlite → SQLiteStore (store_path or .adolens.db)
      store: memory → MemoryStore (nothing persisted; CI)

    This factory lives in cli.py so neither adolens_core nor adolens_store
    know about the CLI config format.
    """
    store_type = config.get("store", "sqlite")

    if store_type == "memory":
        from adolens_store.memory import MemoryStore

        return MemoryStore()

    if store_type != "sqlite":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to sqlite.[/yellow]")

    from adolens_store.sqlite import SQLiteStore

    return SQLiteStore(db_path=config.get("store_path") or ".adolens.db")


def apply_stored_settings(config: dict, store) -> dict:
    """Overlay settings saved by `adolens init` on top of file/env config."""
    settings = store.get_provider_settings()
    if settings is not None:
        config["provider"] = settings.provider
        config["model"] = settings.model or None
        if settings.api_key:
            config["api_key"] = settings.api_key
        if settings.base_url:
            config["base_url"] = settings.base_url

    org_url = store.get_org_url()
    if org_url:
        config["org_url"] = org_url
    return config


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("adolens"),
    prog_name="adolens",
)
@click.option(
    "--config",
    "config_path",
    default=".adolens.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="ADOLENS_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI-powered Azure DevOps PR code reviewer."""
    from adolens_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    store = _build_store(config)
    apply_stored_settings(config, store)

    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(init_cmd)
main.add_command(config_cmd)
