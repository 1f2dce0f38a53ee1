# src/matchpro/cache/keys.py — v1
"""Hierarchical cache keys: ``{reference_id}/{phase}/{digest}``.

Keys are injective over (reference_id, phase, digest) because no component
may contain the separator; components that could break the hierarchy are
rejected with InvalidInput instead of being escaped.
"""

from __future__ import annotations

import re

from matchpro.core.errors import InvalidInput
from matchpro.core.models import PHASES

KEY_SEPARATOR = "/"
MAX_REFERENCE_ID_LENGTH = 256

_DIGEST_RE = re.compile(r"^[A-Za-z0-9_-]+$")
# Whitespace, control characters and both path separators.
_FORBIDDEN_REFERENCE_RE = re.compile(r"[\s/\\\x00-\x1f\x7f]")


def validate_reference_id(reference_id: str) -> str:
    """Return reference_id unchanged or raise InvalidInput."""
    if not isinstance(reference_id, str) or not reference_id:
        raise InvalidInput("reference_id must be a non-empty string")
    if reference_id in (".", ".."):
        raise InvalidInput(f"reference_id {reference_id!r} is a path traversal segment")
    if len(reference_id) > MAX_REFERENCE_ID_LENGTH:
        raise InvalidInput(
            f"reference_id exceeds {MAX_REFERENCE_ID_LENGTH} characters"
        )
    if _FORBIDDEN_REFERENCE_RE.search(reference_id):
        raise InvalidInput(
            f"reference_id {reference_id!r} contains a separator, whitespace "
            "or control character"
        )
    return reference_id


def validate_phase(phase: str) -> str:
    if phase not in PHASES:
        raise InvalidInput(f"Unknown phase {phase!r}; expected one of {PHASES}")
    return phase


def validate_digest(digest: str) -> str:
    if not isinstance(digest, str) or not _DIGEST_RE.match(digest):
        raise InvalidInput(f"Digest {digest!r} is not a url-safe token")
    return digest


def build_key(reference_id: str, phase: str, digest: str) -> str:
    """Build the storage key for one (reference, phase, subject digest).

    Raises:
        InvalidInput: If any component is malformed.
    """
    return KEY_SEPARATOR.join(
        (
            validate_reference_id(reference_id),
            validate_phase(phase),
            validate_digest(digest),
        )
    )


def parse_key(key: str) -> tuple[str, str, str]:
    """Inverse of build_key().

    Raises:
        InvalidInput: If the key does not have exactly three valid components.
    """
    parts = key.split(KEY_SEPARATOR)
    if len(parts) != 3:
        raise InvalidInput(f"Malformed cache key {key!r}")
    reference_id, phase, digest = parts
    build_key(reference_id, phase, digest)
    return reference_id, phase, digest
