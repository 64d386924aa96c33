"""
Feedback submission "service layer".

Validates the inbound record, creates (or reuses) its workflow instance and
hands it to a background task. The caller only learns whether the record was
accepted; the processing outcome lives on the instance.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import BackgroundTasks, HTTPException
from pydantic import ValidationError

from workflow.runner import WorkflowRunner

from .schemas import Feedback
from .workflow import instance_id_for

REQUIRED_FIELDS = ("id", "content", "source")

logger = logging.getLogger(__name__)


def validate_submission(payload: Any) -> Feedback:
    if not isinstance(payload, dict) or any(not payload.get(name) for name in REQUIRED_FIELDS):
        raise HTTPException(
            status_code=400,
            detail="Invalid feedback data. Required: " + ", ".join(REQUIRED_FIELDS),
        )

    try:
        return Feedback.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc


async def submit(payload: Any, *, runner: WorkflowRunner, background_tasks: BackgroundTasks) -> dict[str, Any]:
    feedback = validate_submission(payload)
    instance_id = instance_id_for(feedback.id)

    try:
        _, scheduled = await runner.submit(instance_id, feedback.model_dump(mode="json", exclude_unset=True))
    except Exception as exc:
        logger.exception("workflow_start_failed instance_id=%s", instance_id)
        raise HTTPException(status_code=500, detail=f"Failed to start workflow: {exc}") from exc

    if scheduled:
        background_tasks.add_task(runner.run_background, instance_id)

    return {
        "success": True,
        "message": "Feedback workflow started" if scheduled else "Feedback workflow already in progress",
        "instanceId": instance_id,
        "feedbackId": feedback.id,
    }


async def instance_status(instance_id: str, *, runner: WorkflowRunner) -> dict[str, Any]:
    instance_id = (instance_id or "").strip()
    if not instance_id:
        raise HTTPException(status_code=400, detail="instance_id is empty.")

    record = await runner.store.get_instance(instance_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Workflow instance not found.")

    steps = await runner.store.load_steps(instance_id)
    return {
        "instanceId": record.instance_id,
        "workflow": record.workflow,
        "status": record.status.value,
        "output": record.output,
        "error": record.error,
        "steps": [step.name for step in runner.workflow.steps if step.name in steps],
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }
