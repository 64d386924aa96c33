"""
Pytest configuration for feedback workflow tests.

No network or database is used: inference is patched, checkpoints live in
memory, and blobs go to a recording fake.
"""

from __future__ import annotations

import pytest

from storage.blobs import Blob
from workflow.steps import Backoff, RetryPolicy


class RecordingBlobStore:
    """In-memory blob store that can fail its first N puts."""

    def __init__(self, fail_times: int = 0, error: Exception | None = None) -> None:
        self.fail_times = fail_times
        self.error = error or RuntimeError("storage unavailable")
        self.put_calls = 0
        self.blobs: dict[str, Blob] = {}

    async def put(self, key: str, body: bytes, *, content_type: str) -> None:
        self.put_calls += 1
        if self.put_calls <= self.fail_times:
            raise self.error
        self.blobs[key] = Blob(key=key, body=body, content_type=content_type)

    async def get(self, key: str) -> Blob | None:
        return self.blobs.get(key)


@pytest.fixture
def feedback_payload() -> dict:
    return {
        "id": "fb-1",
        "content": "Workers API slow",
        "source": "support",
        "created_at": 100,
        "updated_at": 100,
    }


@pytest.fixture
def blob_store() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Production-shaped policy (3 attempts, exponential) without real waiting."""
    return RetryPolicy(limit=3, delay_s=0.0, backoff=Backoff.EXPONENTIAL, timeout_s=5.0)


@pytest.fixture
def make_blob_store():
    return RecordingBlobStore
