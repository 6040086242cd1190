"""Hashing utilities for Rivulet.

Provides standardized hashing for content fingerprinting. Fingerprints are
how the reconciler recognises a diagram block it has already rendered, so
they must be stable across passes and across processes.

Example:
    >>> from rivulet.utils.hashing import hash_str
    >>> hash_str("hello world", truncate=16)
    'b94d27b9934d3e08'
"""

import hashlib

FINGERPRINT_LENGTH = 16


def hash_str(
    content: str,
    truncate: int | None = None,
    algorithm: str = "sha256",
) -> str:
    """Hash string content using specified algorithm.

    Args:
        content: String content to hash
        truncate: Truncate result to N characters (None = full hash)
        algorithm: Hash algorithm ('sha256', 'md5')

    Returns:
        Hex digest of hash, optionally truncated

    Examples:
        >>> hash_str("hello")
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
        >>> hash_str("hello", truncate=16)
        '2cf24dba5fb0a30e'
    """
    hasher = hashlib.new(algorithm)
    hasher.update(content.encode("utf-8"))
    digest = hasher.hexdigest()
    return digest[:truncate] if truncate is not None else digest


def fingerprint(content: str) -> str:
    """Short, stable identity hash of a content string.

    Identical content always yields the identical fingerprint, in any
    process. Used as the ``data-fingerprint`` marker on sub-content nodes.
    """
    return hash_str(content, truncate=FINGERPRINT_LENGTH)
