"""Manifest files: one ``<hex digest>  <relative path>`` record per line.

The algorithm label is not part of the file content, it lives in the file name
(``manifest-<label>.txt`` or ``tagmanifest-<label>.txt``).
"""

import re

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

from bagkeeper.errors import DuplicateEntryError, ParseError
from bagkeeper.utils import read_text, split_lines, write_text


MANIFEST_PREFIX = "manifest-"
TAGMANIFEST_PREFIX = "tagmanifest-"

MANIFEST_LINE = re.compile(r'^([0-9A-Fa-f]+)[ \t]+(\S.*)$')

# RFC 8493 2.1.3: CR, LF and % in file paths are percent-encoded
_PERCENT_DECODE = re.compile(r'%(0[AaDd]|25)')
_DECODED = {"0a": "\n", "0d": "\r", "25": "%"}
_ENCODE = str.maketrans({"%": "%25", "\n": "%0A", "\r": "%0D"})


def decode_path(path: str) -> str:
    return _PERCENT_DECODE.sub(lambda match: _DECODED[match.group(1).lower()], path)


def encode_path(path: str) -> str:
    return path.translate(_ENCODE)


@dataclass(frozen=True)
class PayloadEntry:
    """A file listed in a manifest.

    `length` is only known for entries measured by the builder or a validation
    pass, not for entries parsed from a manifest.
    """
    path: str
    digest: str
    length: Optional[int] = None


class Manifest:
    """Checksums of a set of files under a single algorithm label."""

    def __init__(self, label: str, entries: Iterable[PayloadEntry] = ()):
        self.label = label
        self._entries: dict[str, PayloadEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: PayloadEntry):
        if entry.path in self._entries:
            raise DuplicateEntryError(f"duplicate entry for '{entry.path}'", source=self.filename())
        self._entries[entry.path] = entry

    def get(self, path: str) -> Optional[PayloadEntry]:
        return self._entries.get(path)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[PayloadEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self.label == other.label and self.sorted_entries() == other.sorted_entries()

    def __repr__(self) -> str:
        return f"Manifest({self.label!r}, {len(self)} entries)"

    def sorted_entries(self) -> list[PayloadEntry]:
        return sorted(self._entries.values(), key=lambda entry: entry.path)

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.sorted_entries()]

    @property
    def total_bytes(self) -> int:
        """Sum of the known entry lengths."""
        return sum(entry.length or 0 for entry in self._entries.values())

    def filename(self, tag: bool = False) -> str:
        return manifest_filename(self.label, tag=tag)


def manifest_filename(label: str, tag: bool = False) -> str:
    """File name for the manifest of `label`.

    Raises `ValueError` if the label would not give a plain file name.
    """
    if not label or any(char in label for char in ("/", "\\", "\x00")):
        raise ValueError(f"Algorithm label {label!r} cannot be used in a manifest file name")
    prefix = TAGMANIFEST_PREFIX if tag else MANIFEST_PREFIX
    return f"{prefix}{label}.txt"


def label_from_filename(filename: str, tag: bool = False) -> Optional[str]:
    """Get the algorithm label out of a manifest file name, or None if it is not one."""
    prefix = TAGMANIFEST_PREFIX if tag else MANIFEST_PREFIX
    if not (filename.startswith(prefix) and filename.endswith(".txt")):
        return None
    label = filename[len(prefix):-len(".txt")]
    return label or None


def parse_manifest(text: str, label: str, source: Optional[str] = None) -> Manifest:
    """Parse manifest content.

    Blank lines are skipped. Raises `ParseError` on a malformed line and
    `DuplicateEntryError` when a path is listed twice.
    """
    manifest = Manifest(label)
    for line_number, line in enumerate(split_lines(text), start=1):
        if not line.strip():
            continue
        match = MANIFEST_LINE.match(line)
        if not match:
            raise ParseError(f"expected '<digest> <path>', got {line!r}", source=source, line_number=line_number)
        digest, path = match.groups()
        path = decode_path(path)
        if path in manifest:
            raise DuplicateEntryError(f"duplicate entry for '{path}'", source=source, line_number=line_number)
        manifest.add(PayloadEntry(path, digest.lower()))
    return manifest


def serialize_manifest(manifest: Manifest) -> str:
    return "".join(f"{entry.digest}  {encode_path(entry.path)}\n" for entry in manifest.sorted_entries())


def read_manifest(path: Path, label: Optional[str] = None) -> Manifest:
    """Read a manifest file, taking the label from its name unless given."""
    path = Path(path)
    if label is None:
        label = label_from_filename(path.name) or label_from_filename(path.name, tag=True)
        if label is None:
            raise ParseError("cannot tell the algorithm from the file name", source=path.name)
    return parse_manifest(read_text(path), label, source=path.name)


def write_manifest(manifest: Manifest, directory: Path, tag: bool = False) -> Path:
    path = Path(directory) / manifest.filename(tag=tag)
    write_text(path, serialize_manifest(manifest))
    return path
