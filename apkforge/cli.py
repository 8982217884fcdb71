"""
apkforge CLI.

Command-line interface for running the build service and one-off builds.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.config import get_config
from .core.logging import setup_logging

app = typer.Typer(
    name="apkforge",
    help="Rebrand, sign and publish APKs from a prebuilt template",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from . import __version__
        console.print(f"apkforge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """apkforge: template APK build service."""
    pass


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listen port (default from config)"),
) -> None:
    """Run the HTTP service."""
    import uvicorn

    from .api import create_app

    cfg = get_config()
    setup_logging(cfg)
    if host:
        cfg.server.host = host
    if port:
        cfg.server.port = port

    console.print(Panel.fit(
        "[bold blue]apkforge[/bold blue]\n"
        f"Listening on {cfg.server.host}:{cfg.server.port}",
        border_style="blue",
    ))
    uvicorn.run(create_app(cfg), host=cfg.server.host, port=cfg.server.port, log_config=None)


@app.command()
def build(
    app_name: Optional[str] = typer.Option(None, "--name", "-n", help="Launcher label for the generated app"),
    icon: Optional[Path] = typer.Option(
        None,
        "--icon",
        "-i",
        help="Source image for launcher icons",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    job_id: Optional[str] = typer.Option(None, "--uuid", help="Job identifier (random if omitted)"),
    hide_app: bool = typer.Option(False, "--hide", help="Hide the launcher entry after first run"),
    web_link: str = typer.Option("", "--web-link", help="Auxiliary link handed to the app"),
    sms: bool = typer.Option(False, "--sms", help="Declare READ_SMS"),
    contacts: bool = typer.Option(False, "--contacts", help="Declare READ_CONTACTS"),
    callback_url: Optional[str] = typer.Option(None, "--callback", help="Progress callback URL"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """Run one build job locally and print where the APK was delivered."""
    from .models.job import Job
    from .orchestration import BuildOrchestrator

    cfg = get_config()
    if verbose:
        cfg.log_level = "DEBUG"
    setup_logging(cfg)

    job = Job(
        job_id=job_id or uuid.uuid4().hex,
        app_name=app_name,
        hide_app=hide_app,
        web_link=web_link,
        callback_url=callback_url,
        enable_sms_permission=sms,
        enable_contacts_permission=contacts,
        icon=icon.read_bytes() if icon else None,
    )

    async def run_async():
        async with httpx.AsyncClient(follow_redirects=True) as client:
            orchestrator = BuildOrchestrator.from_config(cfg, client)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                task = progress.add_task(f"Building {job.download_filename(cfg.template.default_file_stem)}...", total=None)
                record = await orchestrator.run(job)
                progress.update(task, completed=True)
        return record

    record = asyncio.run(run_async())

    if record.error_message is None:
        console.print("\n[bold green]✓ Build completed![/bold green]\n")
    else:
        console.print("\n[bold red]✗ Build failed![/bold red]")
        console.print(f"Error: {record.error_message}")

    table = Table(title="Build Result")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Job ID", record.job_id)
    table.add_row("State", record.state.value)
    table.add_row("Duration", f"{record.duration_seconds:.1f}s")
    table.add_row("Filename", record.filename or "-")
    table.add_row("Delivered via", record.strategy or "-")
    table.add_row("URL", record.download_url or "-")
    console.print(table)

    for warning in record.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")

    if record.error_message is not None:
        raise typer.Exit(1)


@app.command()
def warm() -> None:
    """Pre-decode the template so the first job can skip decoding."""
    from .services.template_cache import TemplateCache
    from .services.toolchain import ApktoolToolchain, CommandRunner
    from .storage import ScratchArea

    cfg = get_config()
    setup_logging(cfg)

    scratch = ScratchArea(cfg.scratch.root)
    scratch.ensure_layout()
    cache = TemplateCache(cfg.scratch.base_apk, scratch, ApktoolToolchain(CommandRunner(), cfg.tools))

    if asyncio.run(cache.ensure_ready()):
        console.print(f"[bold green]✓ Template ready:[/bold green] {cache.cache_dir}")
    else:
        console.print(f"[red]Template could not be decoded from {cfg.scratch.base_apk}[/red]")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Show current configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", cfg.log_level)
    table.add_row("Listen", f"{cfg.server.host}:{cfg.server.port}")
    table.add_row("Public URL", cfg.server.public_url or "(from request)")
    table.add_row("Scratch Root", str(cfg.scratch.root))
    table.add_row("Template APK", str(cfg.scratch.base_apk))
    table.add_row("Stock Package", cfg.template.stock_package)
    table.add_row("Default Keystore", str(cfg.signing.default_keystore))
    table.add_row("Webhook Relay", "configured" if cfg.delivery.webhook_url else "off")
    table.add_row("Object Storage", cfg.delivery.cloudinary_cloud_name or "off")
    table.add_row("Max Concurrent Jobs", str(cfg.pipeline.max_concurrent_jobs or "unbounded"))
    table.add_row("Keep Failed Artifacts", str(cfg.pipeline.keep_failed_artifacts))
    table.add_row("Job Record Retention", f"{cfg.pipeline.record_ttl_seconds:.0f}s, max {cfg.pipeline.max_records}")

    console.print(table)

    console.print("\n[dim]Configure via environment variables:[/dim]")
    console.print("  PORT, PUBLIC_URL, APKFORGE_SCRATCH_DIR, APKFORGE_BASE_APK")
    console.print("  DISCORD_WEBHOOK_URL, CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
