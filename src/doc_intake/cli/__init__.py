"""CLI module for doc-intake."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer

from doc_intake import __version__
from doc_intake.config import ConfigurationError, LogFormat, load_settings
from doc_intake.observability import LogLevel, configure_logging, get_logger
from doc_intake.pipeline import MalformedDocumentError, PageSplitter, StageName


if TYPE_CHECKING:
    from doc_intake.config import Settings


app = typer.Typer(
    name="doc-intake",
    help="PDF intake pipeline: split, classify and OCR uploaded documents.",
    no_args_is_help=True,
)

_REDACTED = "********"
_SECRET_FIELDS = frozenset({"api_key", "secret_access_key", "access_key_id", "dsn"})


def version_callback(value: bool) -> None:  # noqa: FBT001
    """Print version and exit."""
    if value:
        typer.echo(f"doc-intake version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--verbose",
        "-V",
        help="Enable verbose (debug) logging.",
    ),
    quiet: bool = typer.Option(  # noqa: FBT001
        False,  # noqa: FBT003
        "--quiet",
        "-q",
        help="Only show warnings and errors.",
    ),
) -> None:
    """doc-intake CLI."""
    del version  # Handled by callback

    if verbose and quiet:
        typer.echo("Error: --verbose and --quiet are mutually exclusive.", err=True)
        raise typer.Exit(1)

    level: LogLevel | None = None
    if verbose:
        level = LogLevel.DEBUG
    elif quiet:
        level = LogLevel.WARNING

    ctx.obj = {"log_level": level}
    configure_logging(level=level or LogLevel.INFO)


def _load(ctx: typer.Context, config_file: str | None) -> Settings:
    """Load settings and apply the configured log level unless a flag set one."""
    try:
        settings = load_settings(config_file, require_config_file=config_file is not None)
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(1) from exc

    logging_config = settings.observability.logging
    flag_level = (ctx.obj or {}).get("log_level")
    configure_logging(
        level=flag_level or logging_config.level.value.lower(),
        force_colors=False if logging_config.format == LogFormat.JSON else None,
    )
    return settings


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
    )


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _REDACTED if key in _SECRET_FIELDS and item else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


@app.command()
def run(
    ctx: typer.Context,
    config_file: str | None = _config_option(),
) -> None:
    """Start the pipeline and poll trigger locations until interrupted."""
    from doc_intake.runtime import PipelineRuntime

    settings = _load(ctx, config_file)
    logger = get_logger(__name__)

    async def _run() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        async with PipelineRuntime(settings) as runtime:
            await runtime.run(stop)

    try:
        asyncio.run(_run())
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(1) from exc
    logger.info("pipeline_shutdown")


@app.command()
def submit(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload."),
    key: str | None = typer.Option(None, "--key", "-k", help="Object key to store as."),
    config_file: str | None = _config_option(),
) -> None:
    """Upload a local file into the input location."""
    from doc_intake.runtime import PipelineRuntime

    settings = _load(ctx, config_file)

    async def _submit() -> str:
        async with PipelineRuntime(settings) as runtime:
            return await runtime.submit(file, key=key)

    stored = asyncio.run(_submit())
    typer.echo(f"Submitted {file} as {settings.locations.input}/{stored}")


@app.command()
def invoke(
    ctx: typer.Context,
    stage: StageName = typer.Argument(..., help="Stage to run."),
    key: str = typer.Argument(..., help="Object key to run the stage for."),
    location: str | None = typer.Option(
        None,
        "--location",
        "-l",
        help="Trigger location (default: the stage's own location).",
    ),
    config_file: str | None = _config_option(),
) -> None:
    """Run one stage once for a key."""
    from doc_intake.runtime import PipelineRuntime

    settings = _load(ctx, config_file)

    async def _invoke() -> dict[str, Any]:
        async with PipelineRuntime(settings) as runtime:
            result = await runtime.invoke(stage, key, location=location)
            return result.to_dict()

    try:
        outcome = asyncio.run(_invoke())
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(1) from exc

    typer.echo(json.dumps(outcome, indent=2, default=str))
    if outcome["outcome"] == "failed":
        raise typer.Exit(1)


@app.command()
def split(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="PDF to split."),
    output: Path = typer.Option(
        Path(),
        "--output",
        "-o",
        file_okay=False,
        help="Directory to write page PDFs to.",
    ),
) -> None:
    """Split a local PDF into single-page PDFs."""
    try:
        pages = PageSplitter().split_file(file)
    except MalformedDocumentError as exc:
        typer.echo(f"Cannot split {file}: {exc}", err=True)
        raise typer.Exit(1) from exc

    output.mkdir(parents=True, exist_ok=True)
    for page in pages:
        (output / page.file_name).write_bytes(page.data)
        typer.echo(page.file_name)


@app.command()
def config(
    ctx: typer.Context,
    config_file: str | None = _config_option(),
) -> None:
    """Validate configuration and print it with secrets redacted."""
    settings = _load(ctx, config_file)
    summary = _redact(settings.model_dump(mode="json"))
    typer.echo(json.dumps(summary, indent=2))
    typer.echo("Configuration is valid.", err=True)


__all__ = ["app"]
