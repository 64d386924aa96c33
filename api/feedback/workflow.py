"""
The feedback enrichment workflow: extract -> compose -> persist.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

from core import config
from extraction import service as extraction_service
from storage.blobs import BlobStore
from workflow.steps import Backoff, RetryPolicy, Step, Workflow

from . import composition, persistence
from .schemas import Feedback, ProcessedFeedback

WORKFLOW_NAME = "feedback-workflow"
INSTANCE_PREFIX = "feedback-"

EXTRACT_STEP = "extract-feedback-data"
COMPOSE_STEP = "create-processed-feedback"
PERSIST_STEP = "store-feedback"

Clock = Callable[[], int]


def instance_id_for(feedback_id: str) -> str:
    return f"{INSTANCE_PREFIX}{feedback_id}"


def persist_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        limit=config.persist_retry_limit(),
        delay_s=config.persist_retry_delay_s(),
        backoff=Backoff.EXPONENTIAL,
        timeout_s=config.persist_timeout_s(),
    )


def _unix_now() -> int:
    return int(time.time())


def build_workflow(
    blobs: BlobStore,
    *,
    persist_retry: RetryPolicy | None = None,
    clock: Clock = _unix_now,
) -> Workflow:
    async def extract(params: dict[str, Any], results: Mapping[str, Any]) -> dict[str, Any]:
        return await extraction_service.extract_attributes(Feedback.model_validate(params))

    async def compose(params: dict[str, Any], results: Mapping[str, Any]) -> dict[str, Any]:
        processed = composition.compose(Feedback.model_validate(params), results[EXTRACT_STEP], now=clock())
        return processed.model_dump(mode="json", exclude_unset=True)

    async def persist(params: dict[str, Any], results: Mapping[str, Any]) -> dict[str, Any]:
        key = await persistence.store(ProcessedFeedback.model_validate(results[COMPOSE_STEP]), blobs)
        return {"key": key}

    def output(params: dict[str, Any], results: Mapping[str, Any]) -> dict[str, Any]:
        return {"success": True, "feedbackId": params["id"]}

    return Workflow(
        name=WORKFLOW_NAME,
        steps=(
            Step(EXTRACT_STEP, extract),
            Step(COMPOSE_STEP, compose),
            Step(PERSIST_STEP, persist, retry=persist_retry or persist_retry_policy()),
        ),
        output=output,
    )
