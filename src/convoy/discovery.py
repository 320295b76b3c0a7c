"""Discovery of media files to convert."""

from pathlib import Path
from typing import Iterable

from .utils import MEDIA_EXTENSIONS, console


def is_media_file(path: Path) -> bool:
    return (
        path.is_file()
        and not path.name.startswith(".")
        and path.suffix.lower() in MEDIA_EXTENSIONS
    )


def find_media_files(directory: Path, recursive: bool = False) -> list[Path]:
    """Find media files in a directory, top level only unless recursive."""
    files = []
    candidates = directory.rglob("*") if recursive else directory.iterdir()
    try:
        for f in candidates:
            if is_media_file(f):
                files.append(f)
    except PermissionError:
        console.print(f"[yellow]Warning: Cannot read directory {directory}[/yellow]")
    return sorted(files)


def discover_media_files(paths: Iterable[Path], recursive: bool = False) -> list[Path]:
    """
    Expand the paths given on the command line into media files.

    Files are taken as given (even with an unknown extension, ffprobe decides);
    directories are scanned for known media extensions. Duplicates are dropped
    while keeping the first occurrence.

    Args:
        paths: Files and directories
        recursive: Descend into subdirectories

    Returns:
        List of existing files in command-line order
    """
    found: list[Path] = []
    seen: set[Path] = set()

    for path in paths:
        path = Path(path).expanduser()
        if path.is_dir():
            candidates = find_media_files(path, recursive=recursive)
        elif path.is_file():
            candidates = [path]
        else:
            console.print(f"[yellow]Warning: No such file or directory: {path}[/yellow]")
            continue

        for candidate in candidates:
            key = candidate.resolve()
            if key not in seen:
                seen.add(key)
                found.append(candidate)

    return found
