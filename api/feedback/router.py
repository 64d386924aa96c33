"""
Feedback workflow API endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends

from workflow.runner import WorkflowRunner

from . import dependencies, service

router = APIRouter()


@router.post("/process")
async def process_feedback(
    background_tasks: BackgroundTasks,
    payload: Any = Body(...),
    runner: WorkflowRunner = Depends(dependencies.get_runner),
) -> dict:
    """
    Accept one feedback record and start its workflow instance.
    """
    return await service.submit(payload, runner=runner, background_tasks=background_tasks)


@router.get("/instances/{instance_id}")
async def get_instance(
    instance_id: str,
    runner: WorkflowRunner = Depends(dependencies.get_runner),
) -> dict:
    return await service.instance_status(instance_id, runner=runner)
