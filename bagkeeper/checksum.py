"""Streaming file checksums through a caller supplied digest capability.

The engine never implements a hash algorithm itself. Callers hand in a digest
factory, a zero argument callable returning a fresh object with `update`,
`finalize` and `algorithm_label` (see `bagkeeper.algorithms` for hashlib based
ones). A new capability is created per file since it holds streaming state.
"""

import logging

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from bagkeeper.errors import BagIOError


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_WORKERS = 4


class DigestCapability(Protocol):
    def update(self, chunk: bytes) -> None:
        ...

    def finalize(self) -> bytes:
        ...

    def algorithm_label(self) -> str:
        ...


DigestFactory = Callable[[], DigestCapability]


def compute_digest(
    path: Path,
    capability: DigestCapability,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> tuple[str, int]:
    """Return the lowercase hex digest and byte length of the file at `path`.

    The file is read `chunk_size` bytes at a time, never as a whole.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    length = 0
    try:
        with open(path, "rb") as fp:
            while True:
                chunk = fp.read(chunk_size)
                if not chunk:
                    break
                capability.update(chunk)
                length += len(chunk)
    except OSError as error:
        raise BagIOError(path, f"Failed to read '{path}': {error.strerror or error}") from error

    return capability.finalize().hex(), length


@dataclass(frozen=True)
class ChecksumJob:
    key: str
    path: Path
    expected: Optional[str] = None


@dataclass(frozen=True)
class ChecksumResult:
    key: str
    path: Path
    expected: Optional[str]
    digest: Optional[str] = None
    length: Optional[int] = None
    error: Optional[BagIOError] = None

    @property
    def readable(self) -> bool:
        return self.error is None

    @property
    def matches(self) -> bool:
        return self.readable and self.digest == self.expected


class ChecksumPool:
    """Run checksum jobs on a bounded number of worker threads.

    At most `max_workers` files are open at once. `run` only returns once
    every job is done; per file read errors are kept in the results, anything
    else cancels the jobs that have not started and is raised.
    """

    def __init__(
        self,
        digest_factory: DigestFactory,
        max_workers: int = DEFAULT_WORKERS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.digest_factory = digest_factory
        self.max_workers = max_workers
        self.chunk_size = chunk_size

    def checksum(self, job: ChecksumJob) -> ChecksumResult:
        try:
            digest, length = compute_digest(job.path, self.digest_factory(), self.chunk_size)
        except BagIOError as error:
            logger.debug("Could not checksum '%s': %s", job.key, error)
            return ChecksumResult(job.key, job.path, job.expected, error=error)
        logger.debug("Checksummed '%s' (%d bytes)", job.key, length)
        return ChecksumResult(job.key, job.path, job.expected, digest, length)

    def run(self, jobs: Iterable[ChecksumJob]) -> list[ChecksumResult]:
        """Checksum every job, returning results in job order."""
        jobs = list(jobs)
        if not jobs:
            return []

        workers = min(self.max_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bagkeeper-checksum") as executor:
            futures = [executor.submit(self.checksum, job) for job in jobs]
            try:
                return [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
