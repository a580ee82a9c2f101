"""Plan command: show what a sync run would do without changing anything."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from packsync.commands.sync import apply_overrides
from packsync.core.config import AppConfig
from packsync.core.errors import PackSyncError
from packsync.core.http import HTTPClient
from packsync.core.instance_state import InstanceStateStore
from packsync.core.integrity import fetch_remote_checksum
from packsync.core.manifest import ManifestFetcher
from packsync.core.planner import SyncPlan, build_sync_plan

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    return config, console


def plan_to_dict(plan: SyncPlan) -> dict[str, object]:
    return {
        "current_version": plan.current_version,
        "target_version": plan.target_version,
        "rebuild_base": plan.rebuild_base,
        "rebuild_reasons": [reason.value for reason in plan.rebuild_reasons],
        "setup_toolchain": plan.setup_toolchain,
        "patches": [
            {
                "version": planned.version,
                "mods": sorted(planned.effective_mods()),
                "suppressed_mods": sorted(planned.suppressed_mods),
                "config_files": sorted(planned.patch.config_replacements or {}),
                "extra_files": sorted(planned.patch.extra_files or {}),
            }
            for planned in plan.patches
        ],
    }


@click.command()
@click.option("--pack-url", "-u", help="Pack base URL (overrides configuration)")
@click.option(
    "--profile",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Profile directory (overrides configuration)",
)
@click.option("--force", "-f", is_flag=True, help="Plan a rebuild from scratch")
@click.option("--canary/--stable", default=None, help="Track the canary or stable version")
@click.pass_context
def plan(
    ctx: click.Context,
    pack_url: str | None,
    profile: Path | None,
    force: bool,
    canary: bool | None,
) -> None:
    """Show the patches the next sync would apply."""
    config, console = _get_context_objects(ctx)
    config = apply_overrides(config, pack_url, profile)
    use_canary = config.use_canary if canary is None else canary

    if not config.pack_url:
        console.print("[red]No pack URL configured (use --pack-url)[/red]")
        sys.exit(2)

    try:
        with HTTPClient(config.http) as http:
            manifest = ManifestFetcher(http).fetch_for_pack(config.pack_url)
            state = None if force else InstanceStateStore(config.profile_path).load()

            remote_checksum = None
            if manifest.verify_server_pack_md5 and state is not None:
                remote_checksum = fetch_remote_checksum(http, manifest.server_pack)

            sync_plan = build_sync_plan(state, manifest, force, use_canary, remote_checksum)
    except PackSyncError as e:
        console.print(f"[red]Planning failed: {e}[/red]")
        sys.exit(1)

    if config.output_format == "json":
        print(json.dumps(plan_to_dict(sync_plan), indent=2))
        return

    console.print(
        f"Current version: [cyan]{sync_plan.current_version}[/cyan]  "
        f"Target version: [cyan]{sync_plan.target_version}[/cyan]"
    )
    if sync_plan.rebuild_base:
        reasons = ", ".join(reason.value for reason in sync_plan.rebuild_reasons)
        console.print(f"[yellow]Base pack will be rebuilt ({reasons})[/yellow]")

    if not sync_plan.patches:
        console.print("No version patches to apply")
        return

    table = Table(title="Version patches")
    table.add_column("Version", style="cyan")
    table.add_column("Mods", style="magenta")
    table.add_column("Superseded", style="dim")
    table.add_column("Configs", justify="right")
    table.add_column("Extra files", justify="right")

    for planned in sync_plan.patches:
        table.add_row(
            planned.version,
            ", ".join(planned.effective_mods()) or "-",
            ", ".join(sorted(planned.suppressed_mods)) or "-",
            str(len(planned.patch.config_replacements or {})),
            str(len(planned.patch.extra_files or {})),
        )

    console.print(table)
