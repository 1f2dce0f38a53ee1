# src/matchpro/subjects/subject_store.py — v1
"""Stored resume texts, so match requests can refer to a subject by id.

Each subject is one JSON object under ``resumes/{subject_id}`` in the same
object store that caches match envelopes. Match keys always have three
segments, so the two-segment subject keys never collide with them.
"""

from __future__ import annotations

import json
import logging
import string
import time

from pydantic import ValidationError

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.cache.fingerprint import content_digest
from matchpro.cache.keys import KEY_SEPARATOR, validate_reference_id
from matchpro.core.errors import CorruptPayload, InvalidInput, NotFound
from matchpro.core.models import StoredSubject, Subject

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "resumes"

_BASE36 = string.digits + string.ascii_lowercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def new_subject_id(digest: str, now_ms: int | None = None) -> str:
    """``{base36 millis}-{first 12 digest chars}``, sortable by upload time."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{_base36(now_ms)}-{digest[:12]}"


def subject_key(subject_id: str) -> str:
    """Storage key of one subject.

    Raises:
        InvalidInput: Empty id, or one containing a separator or whitespace.
    """
    try:
        validate_reference_id(subject_id)
    except InvalidInput as e:
        raise InvalidInput(f"Invalid subject_id {subject_id!r}") from e
    return f"{SUBJECT_PREFIX}{KEY_SEPARATOR}{subject_id}"


class SubjectStore:
    """Save and load subject texts in an object store."""

    def __init__(self, store: BaseObjectStore) -> None:
        self._store = store

    async def save(self, subject_text: str) -> Subject:
        """Store subject_text under a fresh id.

        Raises:
            InvalidInput: Blank text.
            StoreUnavailable: The object store rejected the write.
        """
        if not subject_text or not subject_text.strip():
            raise InvalidInput("Missing subject_text")
        digest = content_digest(subject_text)
        try:
            record = StoredSubject(
                subject_id=new_subject_id(digest),
                content_digest=digest,
                subject_text=subject_text,
            )
        except ValidationError as e:
            raise InvalidInput(f"subject_text is not storable: {e.errors()[0]['msg']}") from e
        await self._store.put(
            subject_key(record.subject_id),
            record.model_dump_json().encode("utf-8"),
            JSON_CONTENT_TYPE,
        )
        logger.info("Stored subject %s (%d chars)", record.subject_id, len(subject_text))
        return Subject(subject_id=record.subject_id, content_digest=digest)

    async def load(self, subject_id: str) -> StoredSubject | None:
        """The stored subject, or None when the id is unknown.

        Raises:
            InvalidInput: Malformed id.
            CorruptPayload: The stored entry is not a subject record.
            StoreUnavailable: The object store could not be read.
        """
        key = subject_key(subject_id)
        body = await self._store.get(key)
        if body is None:
            return None
        try:
            record = StoredSubject.model_validate(json.loads(body))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptPayload(key, f"invalid JSON: {e}") from e
        except ValidationError as e:
            raise CorruptPayload(key, f"{e.error_count()} validation error(s)") from e
        if record.subject_id != subject_id:
            raise CorruptPayload(key, "subject id does not match its key")
        return record

    async def require(self, subject_id: str) -> StoredSubject:
        """Like load(), but an unknown id raises NotFound."""
        record = await self.load(subject_id)
        if record is None:
            raise NotFound(f"Subject {subject_id!r} not found")
        return record
