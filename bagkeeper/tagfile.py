"""Tag files: ordered ``Key: value`` lines where keys may repeat."""

from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from bagkeeper.errors import ParseError
from bagkeeper.utils import read_text, split_lines, write_text


TagValue = Union[str, list[str]]


def check_tag(key: str, value: str):
    """Raise `ValueError` for a tag that could not be written back as one line."""
    if not isinstance(key, str) or not key.strip():
        raise ValueError("Tag key must be a non-empty string")
    if ":" in key:
        raise ValueError(f"Tag key '{key}' must not contain ':'")
    if not isinstance(value, str):
        raise ValueError(f"Value of tag '{key}' must be a string, got {type(value).__name__}")
    for text in (key, value):
        if "\n" in text or "\r" in text:
            raise ValueError(f"Tag '{key}' must not contain line breaks")


class TagFile:
    """Ordered list of ``(key, value)`` pairs, duplicate keys kept in order."""

    def __init__(self, entries: Iterable[tuple[str, str]] = ()):
        self._entries: list[tuple[str, str]] = []
        for key, value in entries:
            self.add(key, value)

    def add(self, key: str, value: str):
        check_tag(key, value)
        self._entries.append((key.strip(), value.strip()))

    def set(self, key: str, value: TagValue):
        """Replace every value of `key`, keeping the position of the first one.

        A list value becomes one entry per item.
        """
        values = value if isinstance(value, list) else [value]
        for item in values:
            check_tag(key, item)
        new = [(key.strip(), item.strip()) for item in values]

        key = key.strip()
        positions = [i for i, (k, _) in enumerate(self._entries) if k == key]
        if not positions:
            self._entries.extend(new)
            return
        kept = [entry for entry in self._entries if entry[0] != key]
        first = positions[0]
        self._entries = kept[:first] + new + kept[first:]

    def remove(self, key: str):
        self._entries = [entry for entry in self._entries if entry[0] != key]

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of `key`."""
        for k, value in self._entries:
            if k == key:
                return value
        return default

    def get_all(self, key: str) -> list[str]:
        return [value for k, value in self._entries if k == key]

    def keys(self) -> list[str]:
        return list(dict.fromkeys(k for k, _ in self._entries))

    def copy(self) -> "TagFile":
        return TagFile(self._entries)

    def __contains__(self, key: str) -> bool:
        return any(k == key for k, _ in self._entries)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TagFile):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"TagFile({self._entries!r})"


def parse_tag_file(text: str, source: Optional[str] = None) -> TagFile:
    """Parse tag file content, splitting each non-blank line at the first ':'."""
    tags = TagFile()
    for line_number, line in enumerate(split_lines(text), start=1):
        if not line.strip():
            continue
        key, separator, value = line.partition(":")
        if not separator:
            raise ParseError(f"expected 'Key: value', got {line!r}", source=source, line_number=line_number)
        if not key.strip():
            raise ParseError(f"empty tag key in {line!r}", source=source, line_number=line_number)
        tags.add(key, value)
    return tags


def serialize_tag_file(tags: TagFile) -> str:
    return "".join(f"{key}: {value}\n" for key, value in tags)


def read_tag_file(path: Path) -> TagFile:
    path = Path(path)
    return parse_tag_file(read_text(path), source=path.name)


def write_tag_file(tags: TagFile, path: Path) -> Path:
    write_text(path, serialize_tag_file(tags))
    return Path(path)
