"""Sync command: bring a profile up to the published pack version."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from packsync.core.collaborators import (
    CommandExtensionInstaller,
    CommandToolchainInstaller,
    CurseForgeLookup,
    ExtensionInstaller,
    ModMetadataLookup,
    PassthroughToolchainInstaller,
    ToolchainInstaller,
)
from packsync.core.config import AppConfig
from packsync.core.errors import PackSyncError, SyncCancelled
from packsync.core.http import HTTPClient
from packsync.core.orchestrator import SyncOrchestrator, SyncResult
from packsync.core.progress import CancellationToken, ProgressReporter

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    return config, console, verbose


def apply_overrides(
    config: AppConfig, pack_url: str | None, profile: Path | None
) -> AppConfig:
    """Return a copy of config with command-line overrides applied."""
    update: dict[str, object] = {}
    if pack_url:
        update["pack_url"] = pack_url.rstrip("/")
    if profile:
        update["profile_path"] = profile
    return config.model_copy(update=update) if update else config


def build_toolchain(config: AppConfig) -> ToolchainInstaller:
    if config.toolchain_command:
        return CommandToolchainInstaller(config.toolchain_command)
    return PassthroughToolchainInstaller()


def build_extension_installer(config: AppConfig) -> ExtensionInstaller | None:
    if config.extension_command:
        return CommandExtensionInstaller(config.extension_command)
    return None


def build_mod_lookup(config: AppConfig, http: HTTPClient) -> ModMetadataLookup | None:
    if config.curseforge_api_key:
        return CurseForgeLookup(http, config.curseforge_api_key)
    return None


def _print_result(result: SyncResult, config: AppConfig, console: Console) -> None:
    if config.output_format == "json":
        data = {
            "version": result.state.version,
            "rebuilt": result.plan.rebuild_base,
            "rebuild_reasons": [reason.value for reason in result.plan.rebuild_reasons],
            "patches": result.plan.versions,
            "persisted": result.persisted,
        }
        print(json.dumps(data, indent=2))
        return

    if result.plan.is_noop:
        console.print(f"[green]Instance is up to date at version {result.state.version}[/green]")
        return

    if result.plan.rebuild_base:
        reasons = ", ".join(reason.value for reason in result.plan.rebuild_reasons)
        console.print(f"Rebuilt base pack ({reasons})")
    for patch_result in result.patch_results:
        console.print(
            f"  {patch_result.version}: "
            f"{patch_result.mods_installed} mods installed, "
            f"{patch_result.mods_removed} files removed, "
            f"{patch_result.configs_updated} configs updated, "
            f"{patch_result.extra_files} extra files"
        )
    console.print(f"[green]Instance synchronized to version {result.state.version}[/green]")


@click.command()
@click.option("--pack-url", "-u", help="Pack base URL (overrides configuration)")
@click.option(
    "--profile",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Profile directory (overrides configuration)",
)
@click.option("--force", "-f", is_flag=True, help="Rebuild the instance from scratch")
@click.option("--canary/--stable", default=None, help="Track the canary or stable version")
@click.pass_context
def sync(
    ctx: click.Context,
    pack_url: str | None,
    profile: Path | None,
    force: bool,
    canary: bool | None,
) -> None:
    """Synchronize the profile with the published pack."""
    config, console, verbose = _get_context_objects(ctx)
    config = apply_overrides(config, pack_url, profile)

    if not config.pack_url:
        console.print("[red]No pack URL configured (use --pack-url)[/red]")
        sys.exit(2)

    token = CancellationToken()

    with HTTPClient(config.http) as http:
        show_progress = config.output_format == "rich"
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
            disable=not show_progress,
        ) as progress:
            task = progress.add_task("Starting...", total=None)

            def sink(fraction: float | None, label: str | None) -> None:
                description = (label or "").splitlines()[-1] if label else ""
                if fraction is None:
                    progress.update(task, description=description, total=None)
                else:
                    progress.update(task, description=description, total=1.0, completed=fraction)

            orchestrator = SyncOrchestrator(
                config,
                http,
                toolchain=build_toolchain(config),
                mod_lookup=build_mod_lookup(config, http),
                extension_installer=build_extension_installer(config),
                progress=ProgressReporter(sink),
                token=token,
            )

            try:
                result = orchestrator.run(force=force, use_canary=canary)
            except KeyboardInterrupt:
                token.cancel()
                console.print("[yellow]Sync cancelled; instance state unchanged[/yellow]")
                sys.exit(130)
            except SyncCancelled:
                console.print("[yellow]Sync cancelled; instance state unchanged[/yellow]")
                sys.exit(130)
            except PackSyncError as e:
                console.print(f"[red]Sync failed: {e}[/red]")
                if verbose:
                    logger.exception("sync_failed")
                sys.exit(1)

    _print_result(result, config, console)
