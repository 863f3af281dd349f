"""Open existing bags and check them against their manifests."""

import enum
import logging

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from bagkeeper.checksum import (
    ChecksumJob,
    ChecksumPool,
    ChecksumResult,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_WORKERS,
    DigestFactory,
)
from bagkeeper.errors import (
    BagIOError,
    MissingRequiredTagError,
    ParseError,
    UnsupportedFeatureError,
)
from bagkeeper.manifest import Manifest, label_from_filename, manifest_filename, read_manifest
from bagkeeper.metadata import Metadata, Oxum
from bagkeeper.paths import resolve, split_relative_path
from bagkeeper.tagfile import read_tag_file
from bagkeeper.utils import BAG_INFO_TXT, BAGIT_TXT, FETCH_TXT, PAYLOAD_DIR, iter_files


logger = logging.getLogger(__name__)

# preferred manifest when no algorithm is requested
ALGORITHM_RANK = ["sha512", "sha256", "sha1", "md5"]


class EntryStatus(enum.Enum):
    VERIFIED = "verified"
    MISSING = "missing"
    MISMATCH = "mismatch"
    UNKNOWN_FILE = "unknown file"


@dataclass(frozen=True)
class EntryOutcome:
    path: str
    status: EntryStatus
    expected: str
    found: Optional[str] = None
    detail: Optional[str] = None

    def __str__(self) -> str:
        if self.status is EntryStatus.MISMATCH:
            return f'{self.path} validation failed: expected="{self.expected}" found="{self.found}"'
        if self.detail:
            return f"{self.path} {self.status.value}: {self.detail}"
        return f"{self.path} {self.status.value}"


@dataclass
class ValidationReport:
    """Outcome of one validation pass over a bag."""
    label: str
    payload: dict[str, EntryOutcome]
    tags: dict[str, EntryOutcome] = field(default_factory=dict)
    declared_oxum: Optional[Oxum] = None
    measured_oxum: Optional[Oxum] = None
    tag_manifest_flags: list[str] = field(default_factory=list)
    # informational only, does not affect `is_valid`
    unexpected_files: list[str] = field(default_factory=list)

    @property
    def oxum_mismatch(self) -> bool:
        return self.declared_oxum is not None and self.declared_oxum != self.measured_oxum

    @property
    def outcomes(self) -> list[EntryOutcome]:
        return list(self.payload.values()) + list(self.tags.values())

    @property
    def failures(self) -> list[EntryOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is not EntryStatus.VERIFIED]

    @property
    def is_valid(self) -> bool:
        return not self.failures and not self.oxum_mismatch and not self.tag_manifest_flags

    def problems(self) -> list[str]:
        """Human readable list of everything that makes the bag invalid."""
        problems = [str(outcome) for outcome in self.failures]
        if self.oxum_mismatch:
            problems.append(f"Payload-Oxum mismatch: declared {self.declared_oxum}, found {self.measured_oxum}")
        problems.extend(self.tag_manifest_flags)
        return problems


@dataclass
class Bag:
    """A bag on disk, as parsed when it was opened or finalized."""
    root: Path
    metadata: Metadata
    manifests: dict[str, Manifest]
    tag_manifests: dict[str, Manifest] = field(default_factory=dict)
    # features found in the bag that are detected but not processed
    unsupported: list[UnsupportedFeatureError] = field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return sorted(self.manifests)

    def preferred_label(self) -> str:
        for label in ALGORITHM_RANK:
            if label in self.manifests:
                return label
        return self.labels[0]


def _read_manifests(root: Path, tag: bool) -> dict[str, Manifest]:
    manifests = {}
    for path in sorted(root.iterdir()):
        label = label_from_filename(path.name, tag=tag)
        if label is None or not path.is_file():
            continue
        manifests[label] = read_manifest(path, label)
    return manifests


def _select_manifest(manifests: dict[str, Manifest], label: str) -> Manifest:
    """Pick the manifest for `label`; a lone manifest is used whatever its label."""
    if label in manifests:
        return manifests[label]
    if len(manifests) == 1:
        return next(iter(manifests.values()))
    raise UnsupportedFeatureError(
        f"No manifest for algorithm '{label}' (bag has {', '.join(sorted(manifests))})"
    )


def _codec_problem(path: Path, name: str) -> Optional[str]:
    """Try parsing a tag file with the codec its name calls for."""
    try:
        if name in (BAGIT_TXT, BAG_INFO_TXT):
            read_tag_file(path)
        elif label_from_filename(name) or label_from_filename(name, tag=True):
            read_manifest(path)
    except (BagIOError, ParseError) as error:
        return str(error)
    return None


class BagReader:
    """Read-only access to an existing bag.

    Everything is parsed by `open`; `validate` only reads files and can be
    called any number of times.
    """

    def __init__(self, bag: Bag):
        self.bag = bag

    @classmethod
    def open(cls, root: Path) -> "BagReader":
        root = Path(root)
        if not root.is_dir():
            raise BagIOError(root, f"Bag path '{root}' is not a directory")

        bagit_path = root / BAGIT_TXT
        if not bagit_path.is_file():
            raise MissingRequiredTagError(f"Missing '{BAGIT_TXT}' in '{root}'")
        declaration = read_tag_file(bagit_path)

        info_path = root / BAG_INFO_TXT
        info = read_tag_file(info_path) if info_path.is_file() else None

        metadata = Metadata(declaration, info)
        metadata.validate()

        manifests = _read_manifests(root, tag=False)
        if not manifests:
            raise MissingRequiredTagError(f"No {manifest_filename('<algorithm>')} in '{root}'")
        tag_manifests = _read_manifests(root, tag=True)

        # unsafe paths fail here, before any payload file is read
        for manifest in manifests.values():
            for entry in manifest:
                split_relative_path(entry.path)
                if not entry.path.startswith(PAYLOAD_DIR + "/"):
                    raise ParseError(
                        f"payload path '{entry.path}' is not under '{PAYLOAD_DIR}/'", source=manifest.filename()
                    )
        for manifest in tag_manifests.values():
            for entry in manifest:
                split_relative_path(entry.path)

        unsupported = []
        if (root / FETCH_TXT).exists():
            logger.warning("'%s' has a %s, remote payload is not fetched or checked", root, FETCH_TXT)
            unsupported.append(UnsupportedFeatureError(f"{FETCH_TXT} is not supported"))

        logger.info("Opened bag '%s' with manifests for %s", root, ", ".join(sorted(manifests)))
        return cls(Bag(root, metadata, manifests, tag_manifests, unsupported))

    def validate(
        self,
        digest_factory: DigestFactory,
        max_workers: int = DEFAULT_WORKERS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> ValidationReport:
        """Recompute every checksum and report per file outcomes.

        Missing or changed files are reported, not raised. A path that
        resolves outside the bag raises `PathTraversalError` before any file
        is read.
        """
        bag = self.bag
        label = digest_factory().algorithm_label()
        manifest = _select_manifest(bag.manifests, label)
        tag_manifest = bag.tag_manifests.get(manifest.label)

        payload_jobs = [ChecksumJob(entry.path, resolve(bag.root, entry.path), entry.digest) for entry in manifest]

        tag_jobs = []
        flags = []
        if tag_manifest is not None:
            own_name = tag_manifest.filename(tag=True)
            for entry in tag_manifest:
                if entry.path == own_name:
                    flags.append(f"{own_name} lists itself")
                    continue
                tag_jobs.append(ChecksumJob(entry.path, resolve(bag.root, entry.path), entry.digest))

        pool = ChecksumPool(digest_factory, max_workers=max_workers, chunk_size=chunk_size)
        results = pool.run(payload_jobs + tag_jobs)
        payload_results = results[:len(payload_jobs)]
        tag_results = results[len(payload_jobs):]

        report = ValidationReport(
            label=manifest.label,
            payload={result.key: self._classify(result) for result in payload_results},
            tags={result.key: self._classify_tag(result) for result in tag_results},
            declared_oxum=bag.metadata.payload_oxum,
            measured_oxum=Oxum(
                sum(result.length for result in payload_results if result.readable),
                sum(1 for result in payload_results if result.readable),
            ),
            tag_manifest_flags=flags,
            unexpected_files=self._unexpected_files(manifest),
        )

        for problem in report.problems():
            logger.info("%s: %s", bag.root, problem)
        if report.unexpected_files:
            logger.warning("%s: %d payload file(s) not in %s", bag.root, len(report.unexpected_files), manifest.filename())
        logger.info("Validated bag '%s' with %s: %s", bag.root, label, "valid" if report.is_valid else "invalid")
        return report

    @staticmethod
    def _classify(result: ChecksumResult) -> EntryOutcome:
        if not result.readable:
            return EntryOutcome(result.key, EntryStatus.MISSING, result.expected, detail=str(result.error))
        if not result.matches:
            return EntryOutcome(result.key, EntryStatus.MISMATCH, result.expected, result.digest)
        return EntryOutcome(result.key, EntryStatus.VERIFIED, result.expected, result.digest)

    @staticmethod
    def _classify_tag(result: ChecksumResult) -> EntryOutcome:
        outcome = BagReader._classify(result)
        if outcome.status is EntryStatus.MISSING:
            return outcome
        problem = _codec_problem(result.path, result.key)
        if problem:
            return EntryOutcome(result.key, EntryStatus.UNKNOWN_FILE, result.expected, result.digest, problem)
        return outcome

    def _unexpected_files(self, manifest: Manifest) -> list[str]:
        root = self.bag.root
        payload_dir = root / PAYLOAD_DIR
        if not payload_dir.is_dir():
            return []
        return [
            relative
            for relative in (path.relative_to(root).as_posix() for path in iter_files(payload_dir))
            if relative not in manifest
        ]


def open_bag(root: Path) -> Bag:
    return BagReader.open(root).bag
