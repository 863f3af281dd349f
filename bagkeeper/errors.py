"""Exceptions raised by bagkeeper."""

from typing import Optional


class BagError(Exception):
    """Base class for every error raised while building or reading a bag."""


class PathTraversalError(BagError):
    """A relative path would resolve outside the bag root."""

    def __init__(self, path: str, reason: str = "escapes the bag root"):
        self.path = path
        self.reason = reason
        super().__init__(f"Unsafe path '{path}': {reason}")


class BagIOError(BagError):
    """Opening, reading or writing a file failed."""

    def __init__(self, path, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"Failed to read '{path}'")


class ParseError(BagError):
    """A manifest or tag file does not follow the expected line format."""

    def __init__(self, message: str, source: Optional[str] = None, line_number: Optional[int] = None):
        self.source = source
        self.line_number = line_number
        location = ""
        if source:
            location = f"{source}:{line_number}: " if line_number else f"{source}: "
        elif line_number:
            location = f"line {line_number}: "
        super().__init__(location + message)


class DuplicateEntryError(ParseError):
    """The same relative path appears twice in one manifest."""


class MissingRequiredTagError(BagError):
    """A required tag file, tag or manifest is absent."""


class InvalidStateError(BagError):
    """A builder operation was called out of order."""


class UnsupportedFeatureError(BagError):
    """The bag uses a feature this engine deliberately does not implement."""
