# src/matchpro/cache/fingerprint.py — v1
"""Content digests used as the subject component of cache keys.

The digest covers the exact UTF-8 bytes of the text: no normalization, so
any edit to a resume yields a new digest and therefore new cache keys.
Lone surrogates (valid in JSON ``\\ud800`` escapes) are encoded with
``surrogatepass`` so every str has a digest.
"""

from __future__ import annotations

import base64
import hashlib
import re

DIGEST_HEX_LENGTH = 64

_HEX_DIGEST_RE = re.compile(r"[0-9a-f]{64}")


def _utf8(text: str) -> bytes:
    return text.encode("utf-8", "surrogatepass")


def content_digest(text: str) -> str:
    """SHA-256 of the text as 64 lowercase hex characters.

    Defined for every string, including the empty string.
    """
    return hashlib.sha256(_utf8(text)).hexdigest()


def content_digest_b64url(text: str) -> str:
    """Same hash as content_digest(), unpadded base64url (43 characters)."""
    raw = hashlib.sha256(_utf8(text)).digest()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def is_hex_digest(value: str) -> bool:
    """Whether value looks like a content_digest() output."""
    return _HEX_DIGEST_RE.fullmatch(value) is not None
