"""Bag metadata: the recognized BagIt tags and where bag-info values come from."""

import json
import logging
import os
import re

from pathlib import Path
from typing import Mapping, NamedTuple, Optional

from bagkeeper.errors import MissingRequiredTagError, ParseError, UnsupportedFeatureError
from bagkeeper.tagfile import TagFile, TagValue
from bagkeeper.utils import BAG_INFO_TXT, BAGIT_TXT, parse_date


logger = logging.getLogger(__name__)

BAGIT_VERSION = "1.0"
ENCODING = "UTF-8"

KEY_VERSION = "BagIt-Version"
KEY_ENCODING = "Tag-File-Character-Encoding"
KEY_DATE = "Bagging-Date"
KEY_OXUM = "Payload-Oxum"

DECLARATION_KEYS = (KEY_VERSION, KEY_ENCODING)
RECOGNIZED_KEYS = DECLARATION_KEYS + (KEY_DATE, KEY_OXUM)

ENV_CONFIG_ITEMS = ["Bag-Group-Identifier", "Contact-Email", "Contact-Name",
                    "Contact-Phone", "Organization-Address", "Source-Organization"]

VERSION_PATTERN = re.compile(r'^(\d+)\.(\d+)$')
OXUM_PATTERN = re.compile(r'^(\d+)\.(\d+)$')


class Oxum(NamedTuple):
    """Payload-Oxum: total payload bytes and number of payload files."""
    octets: int
    streams: int

    def __str__(self) -> str:
        return f"{self.octets}.{self.streams}"

    @classmethod
    def parse(cls, value: str) -> "Oxum":
        match = OXUM_PATTERN.match(value)
        if not match:
            raise ParseError(f"{KEY_OXUM} must be '<bytes>.<file count>', got {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))


def parse_version(value: str) -> tuple[int, int]:
    match = VERSION_PATTERN.match(value)
    if not match:
        raise ParseError(f"{KEY_VERSION} must be '<major>.<minor>', got {value!r}", source=BAGIT_TXT)
    return int(match.group(1)), int(match.group(2))


def bag_declaration(version: str = BAGIT_VERSION) -> TagFile:
    """Content of `bagit.txt` for a new bag."""
    parse_version(version)
    return TagFile([(KEY_VERSION, version), (KEY_ENCODING, ENCODING)])


class Metadata:
    """Typed view over `bagit.txt` and the optional `bag-info.txt`.

    Accessors read through to the tag files; tags other than the recognized
    ones are exposed untouched by `custom_tags`.
    """

    def __init__(self, declaration: TagFile, info: Optional[TagFile] = None):
        self.declaration = declaration
        self.info = info

    def _lookup(self, key: str) -> Optional[str]:
        value = self.declaration.get(key)
        if value is None and self.info is not None:
            value = self.info.get(key)
        return value

    @property
    def version(self) -> Optional[tuple[int, int]]:
        value = self._lookup(KEY_VERSION)
        return parse_version(value) if value is not None else None

    @property
    def encoding(self) -> Optional[str]:
        return self._lookup(KEY_ENCODING)

    @property
    def bagging_date(self):
        value = self._lookup(KEY_DATE)
        if value is None:
            return None
        try:
            return parse_date(value)
        except ValueError as error:
            raise ParseError(f"{KEY_DATE} is not an ISO-8601 date: {value!r}", source=BAG_INFO_TXT) from error

    @property
    def payload_oxum(self) -> Optional[Oxum]:
        value = self._lookup(KEY_OXUM)
        return Oxum.parse(value) if value is not None else None

    @property
    def custom_tags(self) -> list[tuple[str, str]]:
        tags = [(key, value) for key, value in self.declaration if key not in RECOGNIZED_KEYS]
        if self.info is not None:
            tags.extend((key, value) for key, value in self.info if key not in RECOGNIZED_KEYS)
        return tags

    def validate(self):
        """Check the required tags are there and the recognized ones parse."""
        for key in DECLARATION_KEYS:
            if key not in self.declaration:
                raise MissingRequiredTagError(f"'{BAGIT_TXT}' has no {key} tag")
        parse_version(self.declaration.get(KEY_VERSION))
        if self.encoding != ENCODING:
            raise UnsupportedFeatureError(
                f"Only {ENCODING} tag files are supported, bag declares {KEY_ENCODING}: {self.encoding}"
            )
        # malformed optional tags fail here rather than on first access
        _ = (self.bagging_date, self.payload_oxum)


def config_metadata_from_env(environ: Optional[Mapping[str, str]] = None) -> dict[str, TagValue]:
    """Get bag-info metadata from environment variables.

    `Contact-Phone` is read from variables starting with `BAGIT_CONTACT_PHONE`;
    several matching variables give a list of values.
    """
    if environ is None:
        environ = os.environ

    config_metadata = {}
    env_keys = sorted(environ)

    for item in ENV_CONFIG_ITEMS:
        var_name = "BAGIT_" + item.upper().replace("-", "_")
        r = re.compile(f'^{var_name}')

        vars_from_env = list(filter(r.match, env_keys))
        if len(vars_from_env) < 1:
            logger.warning("%s not set, leaving %s out of %s", var_name, item, BAG_INFO_TXT)
            continue
        elif len(vars_from_env) == 1:
            from_env = environ[vars_from_env[0]]
        else:
            from_env = [environ[v] for v in vars_from_env]

        config_metadata[item] = from_env

    return config_metadata


def load_metadata_json(path: Path) -> dict[str, TagValue]:
    """Read bag-info metadata from a JSON object of strings or lists of strings.

    Blank values are left out.
    """
    with open(path, "r", encoding="utf-8") as fp:
        try:
            loaded = json.load(fp)
        except json.JSONDecodeError as error:
            raise ValueError(f"'{path}' is not valid JSON: {error}") from error

    if not isinstance(loaded, dict):
        raise ValueError(f"'{path}' must contain a JSON object of tags")

    bag_metadata = {}
    for key, value in loaded.items():
        if isinstance(value, list):
            value = [str(v) for v in value if str(v).strip()]
        elif value is not None:
            value = str(value).strip()
        if value:
            bag_metadata[key] = value
    return bag_metadata
