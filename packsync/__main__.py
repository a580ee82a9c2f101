"""Main entry point for packsync CLI."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
import structlog
from rich.console import Console

from packsync.commands.plan import plan
from packsync.commands.state import state
from packsync.commands.sync import sync
from packsync.core.config import AppConfig

VERSION = "0.1.0"


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # Resolved per call so a replaced sys.stderr is always honoured.
    return structlog.PrintLogger(sys.stderr)


def configure_logging(level: str = "WARNING", colors: bool = False) -> None:
    """Send structured logs at or above level to standard error."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


configure_logging()
logger = structlog.get_logger()


@click.group()
@click.version_option(version=VERSION, prog_name="packsync")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Log progress details")
@click.option("--debug", "-d", is_flag=True, help="Log everything, including HTTP traffic")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Keep a modpack instance in sync with its published pack."""
    ctx.ensure_object(dict)
    output = output.lower()

    try:
        app_config = AppConfig.load(config)
    except Exception as e:
        logger.error("config_load_failed", path=str(config), error=str(e))
        sys.exit(1)

    if debug:
        app_config.log_level = "DEBUG"
    elif verbose:
        app_config.log_level = "INFO"
    app_config.output_format = output

    configure_logging(app_config.log_level, colors=output == "rich")

    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    ctx.obj["config"] = app_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", config=app_config.model_dump(mode="json"))


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]
    config: AppConfig = ctx.obj["config"]

    if config.output_format == "json":
        info = {
            "name": "packsync",
            "version": VERSION,
            "python_version": sys.version.replace("\n", " "),
            "platform": sys.platform,
        }
        print(json.dumps(info, indent=2))
        return

    console.print(f"packsync {VERSION}")
    if ctx.obj["verbose"]:
        console.print(f"Python {sys.version}")
        console.print(f"Platform: {sys.platform}")


main.add_command(plan)
main.add_command(state)
main.add_command(sync)


if __name__ == "__main__":
    main()
