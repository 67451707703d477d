from __future__ import annotations

import hashlib

DEFAULT_HASH_ALGORITHM = "md5"


def derive_key(identifier: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Map an identifier to its on-disk entry name.

    The digest is unsalted so the same identifier lands on the same file across
    process restarts. Raises ``ValueError`` for an unknown algorithm.
    """
    digest = hashlib.new(algorithm, usedforsecurity=False)
    digest.update(identifier.encode("utf-8"))
    return digest.hexdigest()
