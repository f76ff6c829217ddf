import asyncio
import json
import mimetypes
from pathlib import Path

import typer
import uvicorn

from receiptlens.api import create_app
from receiptlens.config import load_settings
from receiptlens.extraction.errors import ConfigurationError
from receiptlens.models import ExtractionOptions, UploadedImage
from receiptlens.service import ReceiptExtractionError, build_service
from receiptlens.storage.records import SqlRecordStore

app = typer.Typer(no_args_is_help=True)


@app.callback(invoke_without_command=True)
def callback(ctx: typer.Context):
    """ReceiptLens CLI tool."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def read_upload(path: Path) -> UploadedImage:
    """Load an image file the way the HTTP endpoint would receive it."""
    content_type, _ = mimetypes.guess_type(path.name)
    return UploadedImage(
        filename=path.name,
        content_type=content_type or "application/octet-stream",
        content=path.read_bytes(),
    )


@app.command()
def extract(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Receipt image"),
    custom_id: str | None = typer.Option(
        None, "--custom-id", "-i", help="Extraction ID to use instead of a UUID"
    ),
    save_image: bool = typer.Option(
        True, "--save-image/--no-save-image", help="Keep a copy of the image"
    ),
    metadata: bool = typer.Option(
        False, "--metadata", "-m", help="Include extraction metadata in the output"
    ),
    language_hint: str | None = typer.Option(
        None, "--language", "-l", help="Language the receipt is written in"
    ),
):
    """Extract structured data from a receipt image and print it as JSON."""
    settings = load_settings()
    try:
        service = build_service(settings)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    options = ExtractionOptions(
        custom_id=custom_id,
        save_image=save_image,
        include_metadata=metadata,
        language_hint=language_hint,
    )
    try:
        record = asyncio.run(service.extract_receipt_details(read_upload(image), options))
    except ReceiptExtractionError as e:
        typer.echo(e.response.model_dump_json(indent=2), err=True)
        raise typer.Exit(code=1) from e

    typer.echo(record.model_dump_json(indent=2))


@app.command()
def history(extraction_id: str = typer.Argument(..., help="Extraction ID to look up")):
    """Show a previously saved extraction."""
    store = SqlRecordStore(load_settings().database_url)
    record = store.get_by_extraction_id(extraction_id)
    if record is None:
        typer.echo(f"Extraction {extraction_id} not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(record.model_dump_json(indent=2))


@app.command()
def receipts(
    limit: int = typer.Option(50, "--limit", min=1, max=100, help="Page size"),
    offset: int = typer.Option(0, "--offset", min=0, help="Records to skip"),
):
    """List saved extractions, newest first."""
    store = SqlRecordStore(load_settings().database_url)
    page = store.list_page(limit=limit, offset=offset)
    typer.echo(json.dumps([record.model_dump(mode="json") for record in page], indent=2))


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Run the HTTP API."""
    settings = load_settings()
    try:
        api = create_app(settings=settings)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    uvicorn.run(api, host=host or settings.host, port=port or settings.port)


def main():
    app()


if __name__ == "__main__":
    main()
