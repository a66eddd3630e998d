"""
CLI entry points for gdupload.

Provides the ``gdupload`` and ``gddownload`` commands using Click.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import click

from gdupload import __version__
from gdupload.archive import extract_archive
from gdupload.auth import GoogleAuth
from gdupload.config import (
    collect_excludes,
    load_config,
    load_config_with_sources,
    resolve_destination,
    resolve_setting,
    show_config as display_config,
)
from gdupload.drive import ExportFormat, validate_byte_range
from gdupload.excludes import show_ignored_files
from gdupload.exceptions import ConfigurationError, GDUploadError, LocalIOError
from gdupload.models import CompressionMode
from gdupload.orchestrator import Uploader
from gdupload.utils import display_comment, format_elapsed, format_size

# The discovery cache warns on every run when file_cache is unavailable
logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def version_callback(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Callback to display version and exit."""
    if value and not ctx.resilient_parsing:
        click.echo(f"gdupload version {__version__}")
        ctx.exit()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def auth_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the credential, token, port and timeout options shared by both commands."""
    options = [
        click.option(
            "--creds",
            "credentials_file",
            type=click.Path(path_type=Path),
            default=None,
            help="Path to the Google API OAuth client credentials file [default: credentials.json]",
        ),
        click.option(
            "--token",
            "token_file",
            type=click.Path(path_type=Path),
            default=None,
            help="Path to the saved Google Drive token file [default: token.json]",
        ),
        click.option(
            "--port",
            type=int,
            default=None,
            help="Local port receiving the OAuth redirect [default: 8888]",
        ),
        click.option(
            "--auth-timeout",
            type=float,
            default=None,
            help="Seconds to wait for browser authorization [default: 120]",
        ),
        click.option("--verbose", is_flag=True, help="Log every lookup, upload and skip."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_auth(
    config: dict,
    binding: Optional[dict],
    credentials_file: Optional[Path],
    token_file: Optional[Path],
    port: Optional[int],
    auth_timeout: Optional[float],
) -> GoogleAuth:
    return GoogleAuth(
        credentials_file=Path(resolve_setting("credentials_file", credentials_file, config, binding)),
        token_file=Path(resolve_setting("token_file", token_file, config, binding)),
        port=int(resolve_setting("port", port, config, binding)),
        timeout=float(resolve_setting("auth_timeout", auth_timeout, config, binding)),
    )


def fail(error: Exception) -> None:
    click.echo(click.style(f"Error: {error}", fg="red"), err=True)
    sys.exit(1)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--version",
    "-v",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@auth_options
@click.option("--gzip", "use_gzip", is_flag=True, help="Compress as .tar.gz before upload.")
@click.option("--zip", "use_zip", is_flag=True, help="Compress as .zip before upload.")
@click.option(
    "--show-config",
    is_flag=True,
    help="Display the merged configuration with source file annotations and exit.",
)
@click.option(
    "--show-ignored",
    is_flag=True,
    help="List the files and directories under the given paths that exclude patterns skip, and exit.",
)
@click.argument("destination", required=False)
@click.argument("paths", nargs=-1, required=False, type=click.Path(path_type=Path))
def main(
    credentials_file: Optional[Path],
    token_file: Optional[Path],
    port: Optional[int],
    auth_timeout: Optional[float],
    verbose: bool,
    use_gzip: bool,
    use_zip: bool,
    show_config: bool,
    show_ignored: bool,
    destination: Optional[str],
    paths: Tuple[Path, ...],
) -> None:
    """
    Upload files and directories to Google Drive.

    DESTINATION is the id of the Drive folder to upload into, or the alias of a
    binding from your .gdupload.json configuration. Each of PATHS is a local
    file or directory. Directories are recreated folder by folder; files that
    already exist under the same name are skipped.

    \b
    With --gzip or --zip a single file is compressed on its own, and a
    directory is uploaded as one archive named after it. Zip archives store
    base names only, so directory structure is lost.

    \b
    Examples:
      gdupload 1pwmMXssnt1I5AORDJcNkHWVeVurTacx15 ~/Documents
      gdupload --gzip 1pwmMXssnt1I5AORDJcNkHWVeVurTacx15 ~/Pictures notes.txt
      gdupload --creds creds.json --token token.json --port 8080 backups ~/work

    \b
    Setup:
      Enable the Google Drive API:
        https://console.cloud.google.com/flows/enableapi?apiid=drive.googleapis.com
      Create OAuth client credentials (credentials.json):
        https://console.cloud.google.com/apis/credentials
    """
    configure_logging(verbose)
    ctx = click.get_current_context()

    if show_config:
        merged_config, source_map = load_config_with_sources()
        display_config(merged_config, source_map)
        ctx.exit(0)

    if not destination or not paths:
        click.echo(ctx.get_help(), err=True)
        click.echo("\nError: A destination folder and at least one local path are required.", err=True)
        ctx.exit(1)

    if use_gzip and use_zip:
        raise click.UsageError("--gzip and --zip are mutually exclusive.")

    try:
        config = load_config()
        folder_id, binding = resolve_destination(config, destination)

        if "comments" in config:
            display_comment(config["comments"])
        if binding is not None:
            click.echo(f"📌 Binding in use: {destination}")
            if "comments" in binding:
                display_comment(binding["comments"], prefix="📝")

        excludes = collect_excludes(config, binding)
        if show_ignored:
            for path in paths:
                if path.is_dir():
                    show_ignored_files(path.resolve(), excludes)
            ctx.exit(0)

        cli_compression = "gzip" if use_gzip else "zip" if use_zip else None
        try:
            compression = CompressionMode.parse(
                resolve_setting("compression", cli_compression, config, binding)
            )
        except ValueError as e:
            raise ConfigurationError("read compression setting", e) from e

        auth = build_auth(config, binding, credentials_file, token_file, port, auth_timeout)
        drive = auth.build_drive_service()

        start_time = time.time()
        uploader = Uploader(drive, compression=compression, excludes=excludes)
        results = uploader.upload_paths(list(paths), folder_id)
    except GDUploadError as e:
        fail(e)
        return

    uploaded = [r for r in results if not r.reused]
    reused = len(results) - len(uploaded)
    sent = sum(r.bytes_written for r in uploaded)

    click.echo()
    click.echo(
        f"📦 {len(uploaded)} file(s) uploaded ({format_size(sent)}), {reused} already in Drive"
    )
    click.echo(f"⏱️  Upload completed in {format_elapsed(time.time() - start_time)}")


def _export_mime_type(value: str) -> str:
    if "/" in value:
        return value
    try:
        return ExportFormat[value.upper()].value
    except KeyError:
        names = ", ".join(f.name.lower() for f in ExportFormat)
        raise click.BadParameter(f"unknown format '{value}' (use a MIME type or one of: {names})")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--version",
    "-v",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@auth_options
@click.option(
    "--range",
    "byte_range",
    nargs=2,
    type=int,
    default=None,
    help="Download only bytes START..END (inclusive, 0-based).",
)
@click.option(
    "--export",
    "export_format",
    default=None,
    help="Export a Google Docs/Sheets/Slides document as this format (e.g. pdf, docx, or a MIME type).",
)
@click.option("--extract", is_flag=True, help="Unpack a downloaded .tar.gz or .zip next to DEST.")
@click.argument("file_id")
@click.argument("dest", type=click.Path(path_type=Path))
def download_main(
    credentials_file: Optional[Path],
    token_file: Optional[Path],
    port: Optional[int],
    auth_timeout: Optional[float],
    verbose: bool,
    byte_range: Optional[Tuple[int, int]],
    export_format: Optional[str],
    extract: bool,
    file_id: str,
    dest: Path,
) -> None:
    """
    Download a file from Google Drive.

    FILE_ID is the Drive id of the file; DEST is the local file to write.

    \b
    Examples:
      gddownload 1AbC... report.pdf
      gddownload --range 0 1023 1AbC... head.bin
      gddownload --export pdf 1XyZ... slides.pdf
      gddownload --extract 1QrS... backup.tar.gz
    """
    configure_logging(verbose)

    if byte_range is not None and export_format is not None:
        raise click.UsageError("--range and --export cannot be combined.")

    try:
        if byte_range is not None:
            validate_byte_range(*byte_range)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--range")

    mime_type = _export_mime_type(export_format) if export_format else None

    try:
        config = load_config()
        auth = build_auth(config, None, credentials_file, token_file, port, auth_timeout)
        drive = auth.build_drive_service()

        if byte_range is not None:
            start, end = byte_range
            try:
                with open(dest, "wb") as fh:
                    written = drive.download_range(file_id, start, end, fh)
            except OSError as e:
                raise LocalIOError(f"write {dest}", e) from e
        elif mime_type is not None:
            written = drive.export_to_file(file_id, dest, mime_type)
        else:
            if drive.is_workspace_document(file_id):
                raise ConfigurationError(
                    f"{file_id} is a Google Workspace document; use --export to choose a format"
                )
            written = drive.download(file_id, dest)

        click.echo(f"✅ {file_id} → {dest} ({format_size(written)})")

        if extract:
            extracted = extract_archive(dest, dest.parent)
            click.echo(f"📂 Extracted {len(extracted)} file(s) into {dest.parent}")
    except GDUploadError as e:
        fail(e)


if __name__ == "__main__":
    main()
