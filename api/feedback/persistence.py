"""
Write processed feedback to blob storage.
"""

from __future__ import annotations

import json
import logging

from storage.blobs import BlobStore

from .schemas import ProcessedFeedback

CONTENT_TYPE = "application/json"

logger = logging.getLogger(__name__)


def blob_key(feedback_id: str) -> str:
    return f"feedback-{feedback_id}.json"


def serialize(processed: ProcessedFeedback) -> bytes:
    data = processed.model_dump(mode="json", exclude_unset=True)
    return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")


async def store(processed: ProcessedFeedback, blobs: BlobStore) -> str:
    """
    Put the record under its key, replacing any previous blob.

    Errors are logged and re-raised so the caller's retry policy applies.
    """
    key = blob_key(processed.id)
    body = serialize(processed)
    try:
        await blobs.put(key, body, content_type=CONTENT_TYPE)
    except Exception as exc:
        logger.warning("feedback_store_failed feedback_id=%s key=%s error=%s", processed.id, key, exc)
        raise
    logger.info("feedback_stored feedback_id=%s key=%s bytes=%s", processed.id, key, len(body))
    return key
