"""Bag a directory of files, or check an existing bag.

For more information on the bagit standard, see: https://www.rfc-editor.org/rfc/rfc8493
"""

import logging

from pathlib import Path
from typing import Mapping, Optional

from bagkeeper.algorithms import DEFAULT_ALGORITHM, digest_factory
from bagkeeper.builder import BagBuilder
from bagkeeper.checksum import DEFAULT_WORKERS
from bagkeeper.errors import BagIOError
from bagkeeper.metadata import config_metadata_from_env
from bagkeeper.paths import is_inside
from bagkeeper.reader import Bag, BagReader, ValidationReport
from bagkeeper.tagfile import TagValue
from bagkeeper.utils import iter_files


logger = logging.getLogger(__name__)


def default_bag_directory(source_dir: Path) -> Path:
    return Path.cwd() / "bags" / Path(source_dir).resolve().name


def make_bag(
    source_dir: Path,
    bag_directory: Optional[Path] = None,
    algorithm: str = DEFAULT_ALGORITHM,
    tags: Optional[Mapping[str, TagValue]] = None,
    env_tags: bool = False,
) -> Bag:
    """Create a bag in `bag_directory` holding a copy of every file in `source_dir`.

    Tags from the environment (see `config_metadata_from_env`) are applied
    first when `env_tags` is set, explicit `tags` override them.
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise BagIOError(source_dir, f"Source '{source_dir}' is not a directory")

    # use default bag directory based on source name if not provided
    if not bag_directory:
        bag_directory = default_bag_directory(source_dir)
    bag_directory = Path(bag_directory)

    # the walk below would pick up the bag's own files
    if is_inside(source_dir, bag_directory.resolve()):
        raise ValueError(f"Bag directory '{bag_directory}' must not be inside the source directory '{source_dir}'.")

    builder = BagBuilder(bag_directory, digest_factory(algorithm))

    bag_info = config_metadata_from_env() if env_tags else {}
    bag_info.update(tags or {})
    for key, value in bag_info.items():
        builder.set_tag(key, value)

    files = list(iter_files(source_dir))
    logger.info("Bagging %d file(s) from '%s' into '%s'", len(files), source_dir, bag_directory)
    for path in files:
        builder.add_payload(path, path.relative_to(source_dir).as_posix())

    return builder.finalize()


def validate_bag(
    bag_directory: Path,
    algorithm: Optional[str] = None,
    max_workers: int = DEFAULT_WORKERS,
) -> ValidationReport:
    """Open and validate the bag in `bag_directory`.

    Without an `algorithm` the strongest one the bag has a manifest for is used.
    """
    reader = BagReader.open(bag_directory)
    if algorithm is None:
        algorithm = reader.bag.preferred_label()
    return reader.validate(digest_factory(algorithm), max_workers=max_workers)
