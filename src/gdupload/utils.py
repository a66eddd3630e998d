"""
Utility functions for gdupload.

Helpers for remote path calculation and console display.
"""

from pathlib import Path

import click


def display_comment(comment: str, prefix: str = "💬") -> None:
    """
    Display a configuration comment with appropriate styling.

    Args:
        comment: Comment text to display.
        prefix: Emoji prefix for the comment.
    """
    if comment:
        click.echo(click.style(f"{prefix} {comment}", fg="cyan"))


def relative_remote_dir(local_file: Path, root: Path) -> str:
    """
    Calculate the remote directory of a file inside an uploaded directory.

    The root directory's own name is the first segment, so uploading
    ``/home/u/docs`` recreates ``docs`` under the destination folder.

    Args:
        local_file: File inside ``root``.
        root: Directory being uploaded.

    Returns:
        Slash-separated relative directory, e.g. ``docs/sub``.

    Raises:
        ValueError: If ``local_file`` is not inside ``root``.
    """
    rel_parent = local_file.parent.relative_to(root).as_posix()
    if rel_parent == ".":
        return root.name
    return f"{root.name}/{rel_parent}"


def format_elapsed(elapsed: float) -> str:
    """Format a duration in seconds as ``1d 2h 3m 4.50s``, omitting leading zero units."""
    days = int(elapsed // 86400)
    hours = int((elapsed % 86400) // 3600)
    minutes = int((elapsed % 3600) // 60)
    seconds = elapsed % 60

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0 or days > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or hours > 0 or days > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds:.2f}s")
    return " ".join(parts)


def format_size(size_bytes: float) -> str:
    """Format a byte count in human-readable form."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}" if unit != "B" else f"{int(size_bytes)} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"
