import threading
import time

import pytest

from bagkeeper.algorithms import HashlibDigest, digest_factory, supported_algorithms
from bagkeeper.checksum import ChecksumJob, ChecksumPool, compute_digest
from bagkeeper.errors import BagIOError

awesome_sha256 = "9d5e40310ff9851f519fe3f84770e7c4ef9d840d26d040804db4a1fd0a9d4038"
empty_sha256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
alpha_sha256 = "8ed3f6ad685b959ead7022518e1af76cd816f8e8ec7ccdda1ed4018e8f2223f8"


class RecordingDigest:
    """Records the chunks it is fed, its digest is the first byte of each chunk."""

    def __init__(self):
        self.chunks = []

    def update(self, chunk):
        self.chunks.append(chunk)

    def finalize(self):
        return bytes(chunk[0] for chunk in self.chunks)

    def algorithm_label(self):
        return "recording"


class TrackingDigest:
    """Counts how many files are being hashed at the same time."""

    lock = threading.Lock()
    active = 0
    peak = 0

    def __init__(self):
        self.started = False

    def update(self, chunk):
        if not self.started:
            self.started = True
            with TrackingDigest.lock:
                TrackingDigest.active += 1
                TrackingDigest.peak = max(TrackingDigest.peak, TrackingDigest.active)
        time.sleep(0.01)

    def finalize(self):
        with TrackingDigest.lock:
            TrackingDigest.active -= 1
        return b"\x00"

    def algorithm_label(self):
        return "tracking"


class FailingDigest(RecordingDigest):
    def update(self, chunk):
        raise RuntimeError("digest backend crashed")


def test_compute_digest(tmp_path):
    path = tmp_path / "awesome.txt"
    path.write_bytes(b"i love my bag, it is awesome")

    assert compute_digest(path, HashlibDigest("sha256")) == (awesome_sha256, 28)


def test_compute_digest_empty_file(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_bytes(b"")

    assert compute_digest(path, HashlibDigest("sha256")) == (empty_sha256, 0)


def test_compute_digest_reads_in_chunks(tmp_path):
    path = tmp_path / "chunks.bin"
    path.write_bytes(b"abcdefghij")
    capability = RecordingDigest()

    digest, length = compute_digest(path, capability, chunk_size=4)

    assert [len(chunk) for chunk in capability.chunks] == [4, 4, 2]
    assert digest == b"aei".hex()
    assert length == 10

    with pytest.raises(ValueError):
        compute_digest(path, RecordingDigest(), chunk_size=0)


def test_compute_digest_missing_file(tmp_path):
    with pytest.raises(BagIOError) as error_catcher:
        compute_digest(tmp_path / "nope.txt", HashlibDigest("sha256"))
    assert error_catcher.value.path == tmp_path / "nope.txt"


def test_pool_keeps_job_order(tmp_path):
    (tmp_path / "a.txt").write_text("alpha")
    (tmp_path / "c.txt").write_text("")
    jobs = [
        ChecksumJob("a.txt", tmp_path / "a.txt", alpha_sha256),
        ChecksumJob("b.txt", tmp_path / "b.txt", alpha_sha256),
        ChecksumJob("c.txt", tmp_path / "c.txt", alpha_sha256),
    ]

    results = ChecksumPool(digest_factory("sha256"), max_workers=2).run(jobs)

    assert [result.key for result in results] == ["a.txt", "b.txt", "c.txt"]
    assert results[0].matches
    assert results[0].length == 5
    assert not results[1].readable
    assert isinstance(results[1].error, BagIOError)
    assert results[2].readable
    assert not results[2].matches
    assert results[2].digest == empty_sha256


def test_pool_is_bounded(tmp_path):
    jobs = []
    for i in range(12):
        path = tmp_path / f"{i}.txt"
        path.write_text(f"file {i}")
        jobs.append(ChecksumJob(path.name, path))
    TrackingDigest.active = 0
    TrackingDigest.peak = 0

    results = ChecksumPool(TrackingDigest, max_workers=3).run(jobs)

    assert len(results) == 12
    assert all(result.readable for result in results)
    assert 1 <= TrackingDigest.peak <= 3


def test_pool_raises_unexpected_errors(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("alpha")

    with pytest.raises(RuntimeError):
        ChecksumPool(FailingDigest).run([ChecksumJob("a.txt", path)])


def test_pool_without_jobs():
    assert ChecksumPool(digest_factory()).run([]) == []

    with pytest.raises(ValueError):
        ChecksumPool(digest_factory(), max_workers=0)


def test_algorithms(tmp_path):
    path = tmp_path / "alpha.txt"
    path.write_text("alpha")

    digest, _ = compute_digest(path, digest_factory("blake2b256")())
    assert len(bytes.fromhex(digest)) == 32
    assert digest_factory("md5")().algorithm_label() == "md5"
    assert "sha512" in supported_algorithms()

    with pytest.raises(ValueError):
        digest_factory("crc32")
    with pytest.raises(ValueError):
        digest_factory("shake_128")
