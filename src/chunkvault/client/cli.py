"""Command-line interface for the chunked file store."""

import sys
import click
import structlog

from chunkvault.common.config import StorageConfig
from chunkvault.common.logging import configure_logging
from chunkvault.client.downloader import FileDownloader
from chunkvault.client.uploader import FileUploader
from chunkvault.service.file_service import FileService

logger = structlog.get_logger(__name__)


@click.group()
@click.option('--log-level', default=None, help='Logging level (overrides CHUNKVAULT_LOG_LEVEL)')
@click.pass_context
def cli(ctx, log_level):
    """Chunked file upload and download store."""
    ctx.ensure_object(dict)
    config = StorageConfig()
    configure_logging(log_level or config.log_level)
    ctx.obj['config'] = config


def _service(ctx) -> FileService:
    if 'service' not in ctx.obj:
        ctx.obj['service'] = FileService(ctx.obj['config'])
    return ctx.obj['service']


def _print_metadata(record) -> None:
    click.echo(f"ID: {record.id}")
    click.echo(f"File name: {record.file_name}")
    click.echo(f"File size: {record.file_size} bytes")
    click.echo(f"File type: {record.file_type}")
    click.echo(f"Storage path: {record.storage_path}")
    click.echo(f"Student ID: {record.student_id}")
    click.echo(f"Submission ID: {record.submission_id}")
    click.echo(f"Created at: {record.created_at.isoformat()}")
    click.echo(f"Last update: {record.last_update.isoformat()}")


@cli.command()
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--file-id', '-i', type=int, required=True, help='Identifier to store the file under')
@click.option('--student-id', '-s', type=int, required=True, help='Uploading student ID')
@click.option('--submission-id', '-b', type=int, required=True, help='Owning submission ID')
@click.option('--file-type', '-t', help='Declared file type (defaults to the extension)')
@click.option('--chunk-size', '-c', type=click.IntRange(min=1), help='Fragment size in bytes')
@click.pass_context
def upload(ctx, file_path, file_id, student_id, submission_id, file_type, chunk_size):
    """Upload a file in chunks."""
    try:
        service = _service(ctx)
        uploader = FileUploader(service, chunk_size or service.config.download_chunk_size)

        click.echo(f"Uploading file: {file_path}")
        record = uploader.upload_file(
            file_path=file_path,
            file_id=file_id,
            student_id=student_id,
            submission_id=submission_id,
            file_type=file_type
        )
        click.echo("File uploaded successfully.")
        _print_metadata(record)

    except Exception as e:
        logger.error("Error uploading file", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('file_id', type=int)
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--student-id', '-s', type=int, required=True, help='Uploading student ID')
@click.option('--submission-id', '-b', type=int, required=True, help='Owning submission ID')
@click.option('--file-type', '-t', help='Declared file type (defaults to the extension)')
@click.option('--chunk-size', '-c', type=click.IntRange(min=1), help='Fragment size in bytes')
@click.pass_context
def replace(ctx, file_id, file_path, student_id, submission_id, file_type, chunk_size):
    """Replace a stored file (delete, then upload again under the same ID)."""
    try:
        service = _service(ctx)
        uploader = FileUploader(service, chunk_size or service.config.download_chunk_size)

        click.echo(f"Replacing file ID {file_id} with: {file_path}")
        record = uploader.replace_file(
            file_path=file_path,
            file_id=file_id,
            student_id=student_id,
            submission_id=submission_id,
            file_type=file_type
        )
        click.echo("File replaced successfully.")
        _print_metadata(record)

    except Exception as e:
        logger.error("Error replacing file", file_id=file_id, error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('file_id', type=int)
@click.option('--output', '-o', type=click.Path(dir_okay=False), required=True, help='Output file')
@click.option('--chunk-size', '-c', type=click.IntRange(min=1), help='Fragment size in bytes')
@click.pass_context
def download(ctx, file_id, output, chunk_size):
    """Download a stored file in chunks."""
    try:
        downloader = FileDownloader(_service(ctx))

        def progress_callback(state):
            if state.total_chunks > 1:
                progress = state.received_chunks / state.total_chunks * 100
                click.echo(f"Download progress: {progress:.1f}%")

        written = downloader.download(file_id, output, chunk_size, callback=progress_callback)
        click.echo(f"Downloaded {written} bytes to: {output}")

    except Exception as e:
        logger.error("Error downloading file", file_id=file_id, error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('file_id', type=int)
@click.pass_context
def info(ctx, file_id):
    """Show the metadata of a stored file."""
    record = _service(ctx).get_file_metadata(file_id)
    if record is None:
        click.echo(f"Error: File metadata not found for ID: {file_id}", err=True)
        sys.exit(1)
    _print_metadata(record)


@cli.command(name='list')
@click.pass_context
def list_files(ctx):
    """List stored files."""
    records = _service(ctx).list_file_metadata()
    if not records:
        click.echo("No files stored.")
        return
    for record in records:
        click.echo(f"{record.id}\t{record.file_size}\t{record.file_name}")


@cli.command()
@click.argument('file_id', type=int)
@click.pass_context
def delete(ctx, file_id):
    """Delete a stored file."""
    try:
        artifact_removed = _service(ctx).delete_file(file_id)
        click.echo("File deleted successfully.")
        if not artifact_removed:
            click.echo("Warning: the stored artifact could not be removed from disk.", err=True)

    except Exception as e:
        logger.error("Error deleting file", file_id=file_id, error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
