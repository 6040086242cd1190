"""Utility modules for Rivulet.

Provides:
- text: escape_html for markup generation
- hashing: hash_str, fingerprint for content identity
- logger: get_logger for logging
"""

from rivulet.utils.hashing import fingerprint, hash_str
from rivulet.utils.logger import get_logger
from rivulet.utils.text import escape_html, normalize_newlines

__all__ = [
    "escape_html",
    "fingerprint",
    "get_logger",
    "hash_str",
    "normalize_newlines",
]
