"""Create new bags: copy payload in, then write manifests and tag files once."""

import enum
import logging
import shutil

from datetime import date as Date
from pathlib import Path, PurePath
from typing import Optional, Union

from bagkeeper.checksum import DEFAULT_CHUNK_SIZE, DigestFactory, compute_digest
from bagkeeper.errors import BagIOError, DuplicateEntryError, InvalidStateError
from bagkeeper.manifest import Manifest, PayloadEntry, manifest_filename, write_manifest
from bagkeeper.metadata import (
    BAGIT_VERSION,
    DECLARATION_KEYS,
    KEY_DATE,
    KEY_OXUM,
    Metadata,
    Oxum,
    bag_declaration,
)
from bagkeeper.paths import resolve
from bagkeeper.reader import Bag
from bagkeeper.tagfile import TagFile, TagValue, write_tag_file
from bagkeeper.utils import (
    BAG_INFO_TXT,
    BAGIT_TXT,
    PAYLOAD_DIR,
    create_dir_if_not_exist,
    format_date,
    is_bag,
)


logger = logging.getLogger(__name__)


class BuilderState(enum.Enum):
    EMPTY = "empty"
    POPULATING = "populating"
    FINALIZED = "finalized"


class BagBuilder:
    """Build a bag in `root`, one payload file at a time.

    The builder moves from EMPTY to POPULATING on the first `add_payload` and
    to FINALIZED on `finalize`; nothing can be added afterwards.
    """

    def __init__(
        self,
        root: Path,
        digest_factory: DigestFactory,
        bagit_version: str = BAGIT_VERSION,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.root = Path(root)
        if is_bag(self.root):
            raise InvalidStateError(f"'{self.root}' already contains a bag")
        self.digest_factory = digest_factory
        self.label = digest_factory().algorithm_label()
        # the label becomes part of the manifest file names
        manifest_filename(self.label)
        self.declaration = bag_declaration(bagit_version)
        self.chunk_size = chunk_size
        self.state = BuilderState.EMPTY
        self.manifest = Manifest(self.label)
        self.info = TagFile()

    def _check_not_finalized(self, action: str):
        if self.state is BuilderState.FINALIZED:
            raise InvalidStateError(f"Cannot {action}, bag '{self.root}' is already finalized")

    def add_payload(self, source: Path, relative_dest: Optional[Union[str, PurePath]] = None) -> PayloadEntry:
        """Copy `source` to `data/<relative_dest>` and record its checksum.

        `relative_dest` defaults to the source file name.
        """
        self._check_not_finalized("add payload")
        source = Path(source)
        if relative_dest is None:
            relative_dest = source.name
        elif isinstance(relative_dest, PurePath):
            relative_dest = relative_dest.as_posix()
        bag_path = f"{PAYLOAD_DIR}/{relative_dest}"

        destination = resolve(self.root, bag_path)
        if bag_path in self.manifest:
            raise DuplicateEntryError(f"'{bag_path}' was already added", source=self.manifest.filename())
        if not source.is_file():
            raise BagIOError(source, f"Payload source '{source}' is not a file")

        create_dir_if_not_exist(destination.parent)
        try:
            shutil.copyfile(source, destination)
        except OSError as error:
            raise BagIOError(source, f"Failed to copy '{source}' to '{destination}': {error.strerror or error}") from error

        digest, length = compute_digest(destination, self.digest_factory(), self.chunk_size)
        entry = PayloadEntry(bag_path, digest, length)
        self.manifest.add(entry)
        self.state = BuilderState.POPULATING
        logger.debug("Added '%s' (%d bytes) to '%s'", bag_path, length, self.root)
        return entry

    def set_tag(self, key: str, value: TagValue):
        """Set a bag-info tag, replacing earlier values of `key`.

        A list value is written as one line per item.
        """
        self._check_not_finalized("set tag")
        self._check_key(key)
        self.info.set(key, value)

    def add_tag(self, key: str, value: str):
        """Add one more value for `key` to bag-info."""
        self._check_not_finalized("add tag")
        self._check_key(key)
        self.info.add(key, value)

    @staticmethod
    def _check_key(key: str):
        if isinstance(key, str) and key.strip() in DECLARATION_KEYS:
            raise ValueError(f"{key} is written to {BAGIT_TXT} by the builder and cannot be set")

    def finalize(self) -> Bag:
        """Write bagit.txt, bag-info.txt, the manifest and the tag manifest."""
        self._check_not_finalized("finalize")
        create_dir_if_not_exist(self.root / PAYLOAD_DIR)

        info = self.info.copy()
        if KEY_DATE not in info:
            info.add(KEY_DATE, format_date(Date.today()))
        info.set(KEY_OXUM, str(Oxum(self.manifest.total_bytes, len(self.manifest))))

        written = [
            write_tag_file(self.declaration, self.root / BAGIT_TXT),
            write_tag_file(info, self.root / BAG_INFO_TXT),
            write_manifest(self.manifest, self.root),
        ]

        tag_manifest = Manifest(self.label)
        for path in written:
            digest, length = compute_digest(path, self.digest_factory(), self.chunk_size)
            tag_manifest.add(PayloadEntry(path.name, digest, length))
        write_manifest(tag_manifest, self.root, tag=True)

        self.state = BuilderState.FINALIZED
        logger.info(
            "Created bag '%s': %d file(s), %d bytes, %s",
            self.root, len(self.manifest), self.manifest.total_bytes, self.label,
        )
        return Bag(
            self.root,
            Metadata(self.declaration, info),
            {self.label: self.manifest},
            {self.label: tag_manifest},
        )
