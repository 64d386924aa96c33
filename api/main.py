from contextlib import asynccontextmanager

from fastapi import FastAPI

from core import config, db
from core.log import configure_logging
from feedback import router as feedback_router
from feedback.workflow import build_workflow
from storage.blobs import get_blob_store
from workflow.checkpoints import get_checkpoint_store
from workflow.runner import WorkflowRunner

SERVICE_NAME = "feedback-workflow"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    postgres = config.uses_postgres()
    if postgres:
        await db.init_pool()
        await db.ensure_schema()

    runner = WorkflowRunner(build_workflow(get_blob_store()), get_checkpoint_store())
    app.state.runner = runner
    await runner.resume_active()
    try:
        yield
    finally:
        await runner.shutdown()
        if postgres:
            await db.close_pool()


app = FastAPI(lifespan=lifespan)

app.include_router(feedback_router.router, tags=["feedback"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": SERVICE_NAME}


@app.get("/")
def root() -> dict:
    return {
        "service": SERVICE_NAME,
        "endpoints": {
            "POST /process": "Start workflow to process feedback",
            "GET /instances/{instance_id}": "Workflow instance status",
            "GET /health": "Health check",
            "GET /docs": "Interactive API documentation",
        },
    }
