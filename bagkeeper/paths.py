"""Keep paths read from manifests and tag files inside the bag root.

Manifest and tag file content may come from anywhere, so every path taken from
it goes through `resolve` before the filesystem entry is opened or written.
"""

import re

from pathlib import Path

from bagkeeper.errors import BagIOError, PathTraversalError


WINDOWS_DRIVE = re.compile(r'^[A-Za-z]:')


def split_relative_path(relative_path: str) -> tuple[str, ...]:
    """Split a POSIX style bag path into its segments, rejecting unsafe ones.

    Only looks at the string, the filesystem is never consulted.
    """
    if not relative_path:
        raise PathTraversalError(relative_path, "path is empty")
    if relative_path.startswith(("/", "\\")) or WINDOWS_DRIVE.match(relative_path):
        raise PathTraversalError(relative_path, "path is absolute")
    if "\x00" in relative_path:
        raise PathTraversalError(relative_path, "path contains a NUL byte")

    segments = tuple(relative_path.split("/"))
    for segment in segments:
        if not segment:
            raise PathTraversalError(relative_path, "path has an empty segment")
        if segment in (".", ".."):
            raise PathTraversalError(relative_path, f"path has a '{segment}' segment")
        if segment.startswith("\\"):
            raise PathTraversalError(relative_path, f"segment '{segment}' looks absolute")
    return segments


def resolve(bag_root: Path, relative_path: str) -> Path:
    """Resolve `relative_path` against the bag root, following symlinks.

    Raises `PathTraversalError` if the canonical result is not inside the
    canonical bag root.
    """
    segments = split_relative_path(relative_path)
    try:
        root = Path(bag_root).resolve()
        candidate = root.joinpath(*segments).resolve()
    except (OSError, RuntimeError) as error:
        # RuntimeError is raised for symlink loops on older interpreters
        raise BagIOError(bag_root, f"Cannot resolve '{relative_path}' in '{bag_root}': {error}") from error

    if candidate != root and root not in candidate.parents:
        raise PathTraversalError(relative_path, f"resolves to '{candidate}', outside '{root}'")
    return candidate


def is_inside(bag_root: Path, path: Path) -> bool:
    """Check if an already resolved path is the bag root or below it."""
    root = Path(bag_root).resolve()
    return path == root or root in path.parents
