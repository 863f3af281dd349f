"""hashlib backed digest capabilities for the usual BagIt algorithm names."""

import hashlib

from functools import partial

from bagkeeper.checksum import DigestFactory


DEFAULT_ALGORITHM = "sha256"

# manifest label -> (hashlib constructor name, digest size for blake2)
# see https://www.iana.org/assignments/named-information/named-information.xhtml
KNOWN_ALGORITHMS = {
    "md5": ("md5", None),
    "sha1": ("sha1", None),
    "sha224": ("sha224", None),
    "sha256": ("sha256", None),
    "sha384": ("sha384", None),
    "sha512": ("sha512", None),
    "blake2b256": ("blake2b", 32),
    "blake2b384": ("blake2b", 48),
    "blake2b512": ("blake2b", 64),
    "sha3_256": ("sha3_256", None),
    "sha3_512": ("sha3_512", None),
}


class HashlibDigest:
    """Digest capability wrapping a `hashlib` hash object."""

    def __init__(self, label: str):
        self.label = label
        name, digest_size = KNOWN_ALGORITHMS.get(label, (label, None))
        if name.startswith("shake_"):
            # variable length output, no fixed digest to put in a manifest
            raise ValueError(f"Unsupported checksum algorithm '{label}'")
        try:
            if digest_size:
                self._hash = getattr(hashlib, name)(digest_size=digest_size)
            else:
                self._hash = hashlib.new(name)
        except (AttributeError, ValueError) as error:
            raise ValueError(f"Unsupported checksum algorithm '{label}'") from error

    def update(self, chunk: bytes) -> None:
        self._hash.update(chunk)

    def finalize(self) -> bytes:
        return self._hash.digest()

    def algorithm_label(self) -> str:
        return self.label


def digest_factory(label: str = DEFAULT_ALGORITHM) -> DigestFactory:
    """Get a factory of fresh `HashlibDigest` objects for `label`.

    Raises `ValueError` straight away if hashlib does not know the algorithm.
    """
    HashlibDigest(label)
    return partial(HashlibDigest, label)


def supported_algorithms() -> list[str]:
    return sorted(KNOWN_ALGORITHMS)
