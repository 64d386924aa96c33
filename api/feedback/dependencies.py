"""
Dependencies for feedback routes.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from workflow.runner import WorkflowRunner


def get_runner(request: Request) -> WorkflowRunner:
    runner = getattr(request.app.state, "runner", None)
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workflow runner is not initialized.",
        )
    return runner
