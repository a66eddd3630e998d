"""
Local file enumeration for gdupload.

Walks a directory tree in a stable order, honouring exclude patterns from the
configuration and from ``.gdupload_ignore`` files.
"""

import fnmatch
from pathlib import Path
from typing import List, Tuple

import click

IGNORE_FILENAME = ".gdupload_ignore"


def load_ignore_file(path: Path) -> List[str]:
    """
    Read exclude patterns from an ignore file.

    Blank lines and lines starting with ``#`` are skipped. A missing or
    unreadable file yields no patterns.
    """
    try:
        lines = path.read_text().splitlines()
    except OSError:
        return []
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


def _own_ignore_patterns(directory: Path, base: Path) -> List[str]:
    """Patterns from the ignore file in ``directory`` alone, anchored to it."""
    patterns: List[str] = []
    for pattern in load_ignore_file(directory / IGNORE_FILENAME):
        if "/" not in pattern.rstrip("/"):
            patterns.append(pattern)
            continue
        try:
            rel_dir = directory.relative_to(base).as_posix()
        except ValueError:
            rel_dir = "."
        anchored = pattern.lstrip("/")
        if rel_dir == ".":
            patterns.append("/" + anchored)
        else:
            patterns.append(f"/{rel_dir}/{anchored}")
    return patterns


def collect_ignore_patterns(directory: Path, base: Path) -> List[str]:
    """
    Gather patterns from every ignore file between ``directory`` and ``base``.

    Patterns containing a slash are anchored to the directory holding the
    ignore file, so ``build/*.o`` in ``src/.gdupload_ignore`` becomes
    ``/src/build/*.o``. Plain name patterns apply anywhere.

    Args:
        directory: Directory being walked.
        base: Upload root; the search stops there.

    Returns:
        Combined patterns, innermost ignore file first.
    """
    patterns: List[str] = []
    current = directory

    while True:
        patterns.extend(_own_ignore_patterns(current, base))

        try:
            if current.resolve() == base.resolve():
                break
        except OSError:
            break
        if current.parent == current:
            break
        current = current.parent

    return patterns


def is_excluded(path: Path, excludes: List[str], base: Path) -> bool:
    """
    Check whether ``path`` matches any exclude pattern.

    Supported forms: ``*.log`` (name anywhere), ``node_modules/`` (directory
    name anywhere), ``/build`` or ``src/*.tmp`` (anchored at ``base``).
    """
    try:
        rooted = Path("/") / path.relative_to(base)
    except ValueError:
        return False

    for pattern in excludes:
        dir_only = pattern.endswith("/")
        pattern = pattern.rstrip("/")
        if not pattern or (dir_only and not path.is_dir()):
            continue

        if "/" not in pattern:
            if fnmatch.fnmatch(path.name, pattern):
                return True
        elif rooted.match("/" + pattern.lstrip("/")):
            return True

    return False


def walk_directory(directory: Path, excludes: List[str], base: Path) -> List[Path]:
    """
    List the files below ``directory`` that are not excluded.

    Entries are visited in sorted order, so the result is deterministic for a
    given tree. Excluded directories are not descended into, and unreadable
    directories are skipped.

    Args:
        directory: Directory to walk.
        excludes: Exclude patterns.
        base: Upload root that anchored patterns are relative to.

    Returns:
        File paths.
    """
    return _walk(directory, excludes + collect_ignore_patterns(directory, base), base)


def _walk(directory: Path, active: List[str], base: Path) -> List[Path]:
    # ``active`` already holds the patterns of every ignore file above ``directory``
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []

    files: List[Path] = []
    for entry in entries:
        if entry.name == IGNORE_FILENAME or is_excluded(entry, active, base):
            continue
        if entry.is_file():
            files.append(entry)
        elif entry.is_dir():
            files.extend(_walk(entry, active + _own_ignore_patterns(entry, base), base))

    return files


def show_ignored_files(base: Path, excludes: List[str]) -> None:
    """Print the files and directories below ``base`` that an upload would skip."""
    click.echo(click.style("\n🚫 Ignored Files and Directories:", fg="cyan", bold=True))
    click.echo(f"Scanning from: {base}\n")

    ignored: List[Tuple[str, str, int]] = []
    scanned = 0

    def scan(directory: Path, depth: int, active: List[str]) -> None:
        nonlocal scanned
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            return
        for entry in entries:
            scanned += 1
            if entry.name == IGNORE_FILENAME or is_excluded(entry, active, base):
                icon = "📁" if entry.is_dir() else "📄"
                ignored.append((entry.relative_to(base).as_posix(), icon, depth))
                continue
            if entry.is_dir():
                scan(entry, depth + 1, active + _own_ignore_patterns(entry, base))

    scan(base, 0, list(excludes) + collect_ignore_patterns(base, base))

    if not ignored:
        click.echo(click.style("No ignored files or directories found.", fg="green"))
    else:
        click.echo(click.style(f"Found {len(ignored)} ignored items:", fg="red", bold=True))
        click.echo()
        for rel_path, icon, depth in ignored:
            click.echo(f"{'  ' * depth}{icon} {click.style(rel_path, fg='bright_red')}")

    click.echo(f"\n{click.style('Total items scanned:', fg='cyan')} {scanned}")

