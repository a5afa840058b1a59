"""Typer CLI for resumable uploads and validated downloads."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from blobstream import __version__
from blobstream.client import Client
from blobstream.config import ConfigFileError, ConfigManager
from blobstream.exceptions import TransferError
from blobstream.logging_utils import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False, help="Resumable, integrity-checked object transfers."
)


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        dir_okay=False,
        help="Configuration file (defaults to ~/.blobstream/config.yaml).",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log every chunk at DEBUG level."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Emit logs as one JSON object per line."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the blobstream version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Configure logging and the configuration source for every command."""
    configure_logging(
        level=logging.DEBUG if verbose else logging.INFO, json_lines=json_logs
    )
    ctx.obj = {"config_path": config}


def _build_client(ctx: typer.Context) -> Client:
    config_path = (ctx.obj or {}).get("config_path")
    try:
        config = ConfigManager(config_path).resolve_effective_config()
    except (ConfigFileError, ValueError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=2) from exc
    return Client(config=config)


def _write_session_file(session_file: Path | None, session_id: str) -> None:
    if session_file is None:
        return
    session_file.write_text(session_id + "\n", encoding="utf-8")
    logger.info("Session id saved to %s", session_file)


@app.command("upload")
def upload(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    bucket: str = typer.Argument(..., help="Destination bucket."),
    object_name: str = typer.Argument(..., help="Destination object name."),
    if_generation_match: int | None = typer.Option(
        None,
        "--if-generation-match",
        help="Only write if the live generation matches; 0 to only create.",
    ),
    content_type: str = typer.Option(
        "application/octet-stream", "--content-type", help="Object MIME type."
    ),
    session_file: Path | None = typer.Option(
        None,
        "--session-file",
        dir_okay=False,
        help="Write the resumable session id here so the upload can be resumed.",
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
) -> None:
    """Upload a file through a new resumable session."""
    client = _build_client(ctx)
    try:
        metadata = client.upload_file(
            file,
            bucket,
            object_name,
            if_generation_match=if_generation_match,
            content_type=content_type,
            on_session=lambda session_id: _write_session_file(
                session_file, session_id
            ),
            progress=progress,
        )
    except TransferError as exc:
        logger.error("Upload failed: %s", exc.status)
        raise typer.Exit(code=1) from exc
    if metadata is not None:
        typer.echo(
            f"gs://{metadata.bucket}/{metadata.name} "
            f"generation={metadata.generation} size={metadata.size}"
        )


@app.command("resume")
def resume(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id of the upload."),
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File being uploaded."
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
) -> None:
    """Resume an interrupted upload from the byte the service confirmed."""
    client = _build_client(ctx)
    try:
        metadata = client.upload_file(
            file, "", "", resumable_session_id=session_id, progress=progress
        )
    except TransferError as exc:
        logger.error("Resume failed: %s", exc.status)
        raise typer.Exit(code=1) from exc
    if metadata is not None:
        typer.echo(
            f"gs://{metadata.bucket}/{metadata.name} "
            f"generation={metadata.generation} size={metadata.size}"
        )


@app.command("download")
def download(
    ctx: typer.Context,
    bucket: str = typer.Argument(..., help="Source bucket."),
    object_name: str = typer.Argument(..., help="Source object name."),
    destination: Path = typer.Argument(..., dir_okay=False, help="Local file."),
    offset: int = typer.Option(
        0, "--offset", min=0, help="Resume a partial download at this byte."
    ),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
) -> None:
    """Download an object, validating its digest."""
    client = _build_client(ctx)
    try:
        written = client.download_file(
            bucket, object_name, destination, offset=offset, progress=progress
        )
    except TransferError as exc:
        logger.error("Download failed: %s", exc.status)
        raise typer.Exit(code=1) from exc
    typer.echo(f"{written} bytes written to {destination}")


@app.command("status")
def status(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session id of the upload."),
) -> None:
    """Show how many bytes of an upload the service has persisted."""
    client = _build_client(ctx)
    try:
        session = client.restore_resumable_session(session_id)
    except TransferError as exc:
        logger.error("Status query failed: %s", exc.status)
        raise typer.Exit(code=1) from exc
    if session.done:
        metadata = session.final_metadata
        size = metadata.size if metadata is not None else session.next_expected_byte
        typer.echo(f"done size={size}")
    else:
        typer.echo(f"active next_expected_byte={session.next_expected_byte}")


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
