"""Helpers too generic to be in other modules."""
import os
import re

from datetime import date as Date, datetime as Datetime
from pathlib import Path
from typing import Iterator

from bagkeeper.errors import BagIOError, ParseError


DATE_FORMAT = "%Y-%m-%d"

BAGIT_TXT = "bagit.txt"
BAG_INFO_TXT = "bag-info.txt"
FETCH_TXT = "fetch.txt"
PAYLOAD_DIR = "data"


def is_bag(bag_directory: Path) -> bool:
    """Check if directory is a BagIt archive."""
    return (Path(bag_directory) / BAGIT_TXT).is_file()


def create_dir_if_not_exist(dir: Path):
    try:
        os.makedirs(dir, exist_ok=True)
    except OSError as error:
        raise BagIOError(dir, f"Failed to create directory '{dir}': {error.strerror or error}") from error


def format_date(date: Date) -> str:
    return date.strftime(DATE_FORMAT)


def parse_date(date_str: str) -> Date:
    """Parse an ISO-8601 date, or the date part of an ISO-8601 datetime.

    Raises `ValueError` for anything else, including trailing text after a date.
    """
    try:
        return Datetime.strptime(date_str, DATE_FORMAT).date()
    except ValueError:
        pass
    # fromisoformat only takes a trailing "Z" from Python 3.11 on
    if date_str.endswith("Z"):
        date_str = date_str[:-1] + "+00:00"
    return Datetime.fromisoformat(date_str).date()


def iter_files(directory: Path) -> Iterator[Path]:
    """Yield every regular file below `directory` in a stable, sorted order."""
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.is_file():
                yield path


def read_text(path: Path) -> str:
    """Read a UTF-8 tag file or manifest, dropping a byte order mark if present."""
    try:
        data = Path(path).read_bytes()
    except OSError as error:
        raise BagIOError(path, f"Failed to read '{path}': {error.strerror or error}") from error
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as error:
        raise ParseError(f"not valid UTF-8 ({error.reason} at byte {error.start})", source=Path(path).name) from error


def write_text(path: Path, text: str):
    try:
        with open(path, "w", encoding="utf-8", newline="\n") as fp:
            fp.write(text)
    except OSError as error:
        raise BagIOError(path, f"Failed to write '{path}': {error.strerror or error}") from error


def split_lines(text: str) -> list[str]:
    """Split on CRLF, LF or CR only, unlike `str.splitlines`."""
    return re.split(r'\r\n|\n|\r', text)
