"""Typer CLI for running and inspecting the proxy."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer

from ..logging_utils import configure_logging
from .config_loader import (
    list_env_overrides,
    load_file_config,
    load_proxy_config,
    write_config,
)
from .config import ProxyConfig

app = typer.Typer(help="OpenAI-compatible proxy for the fal OpenRouter router")


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Python logging level (default from config)"
    ),
):  # noqa: D401 - CLI
    """Run the proxy under uvicorn."""
    import uvicorn

    cfg = load_proxy_config()
    level = (log_level or cfg.log_level).upper()
    log_path = configure_logging("falbridge", level=level)
    typer.echo(f"[falbridge] logging to {log_path}")
    typer.echo(f"[falbridge] base URL: http://{host or cfg.host}:{port or cfg.port}/v1")
    uvicorn.run(
        "falbridge.chat_proxy.app:app",
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=level.lower(),
        # Keep the handlers configure_logging installed
        log_config=None,
    )


@app.command("show-config")
def cmd_show_config():
    """Print file values, the effective configuration and env overrides."""
    runtime = asdict(load_proxy_config())
    file_values = load_file_config()
    for view in (runtime, file_values):
        if view.get("default_api_key"):
            view["default_api_key"] = "***"
    payload = {
        "file": file_values,
        "runtime": runtime,
        "env_overrides": list_env_overrides(),
    }
    typer.echo(json.dumps(payload, indent=2))


@app.command("init-config")
def cmd_init_config(
    path: Optional[Path] = typer.Argument(None, help="Target TOML file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a configuration file populated with the built-in defaults."""
    target = path or Path("configs/falbridge.toml")
    if target.exists() and not force:
        typer.echo(f"{target} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(code=1)
    written = write_config(ProxyConfig(), target)
    typer.echo(f"Wrote {written}")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
