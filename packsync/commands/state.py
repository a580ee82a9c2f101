"""State command: show the recorded instance state."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from packsync.core.config import AppConfig
from packsync.core.instance_state import InstanceStateStore


@click.command()
@click.option(
    "--profile",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    help="Profile directory (overrides configuration)",
)
@click.pass_context
def state(ctx: click.Context, profile: Path | None) -> None:
    """Show the recorded state of the profile."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]

    store = InstanceStateStore(profile or config.profile_path)
    instance_state = store.load()

    if config.output_format == "json":
        data = instance_state.model_dump(mode="json", by_alias=True) if instance_state else None
        print(json.dumps(data, indent=2))
        return

    if instance_state is None:
        console.print(f"No usable state recorded at {store.state_file_path}")
        return

    table = Table(title="Instance State")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("State file", str(store.state_file_path))
    table.add_row("File version", str(instance_state.file_version))
    table.add_row("Pack version", instance_state.version)
    table.add_row("Base pack", instance_state.built_from_server_pack or "N/A")
    table.add_row("Base pack MD5", instance_state.built_from_server_pack_md5 or "N/A")
    table.add_row("Client pack", instance_state.built_from_client_pack or "N/A")
    table.add_row("Game version", instance_state.current_minecraft_version or "N/A")
    table.add_row("Loader version", instance_state.current_forge_version or "N/A")
    table.add_row("Launch version", instance_state.current_launch_version or "N/A")
    if instance_state.vr_launch_version or instance_state.non_vr_launch_version:
        table.add_row("VR launch version", instance_state.vr_launch_version or "N/A")
        table.add_row("Non-VR launch version", instance_state.non_vr_launch_version or "N/A")

    console.print(table)
