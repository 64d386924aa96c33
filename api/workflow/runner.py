"""
Workflow execution.

One instance runs its steps strictly in order. Each completed step's result
is checkpointed before the next step starts, so a resumed instance skips
finished steps and reuses their stored results. A step with a RetryPolicy is
retried by tenacity inside an overall timeout; any step failure ends the
instance as `errored` without undoing earlier steps.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from .checkpoints import CheckpointStore, InstanceRecord, InstanceStatus
from .steps import Step, StepTimeout, Workflow, WorkflowError, WorkflowFailed

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def _log_retry(instance_id: str, step_name: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome is not None else None
        delay = state.next_action.sleep if state.next_action is not None else 0.0
        logger.warning(
            "step_attempt_failed instance_id=%s step=%s attempt=%s next_delay_s=%s error=%s",
            instance_id,
            step_name,
            state.attempt_number,
            delay,
            exc,
        )

    return before_sleep


class WorkflowRunner:
    def __init__(self, workflow: Workflow, store: CheckpointStore, *, sleep: Sleep = asyncio.sleep) -> None:
        self.workflow = workflow
        self.store = store
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    async def submit(self, instance_id: str, params: dict[str, Any]) -> tuple[InstanceRecord, bool]:
        """
        Create (or re-queue) an instance. Returns (record, should_schedule).
        """
        return await self.store.create_instance(instance_id, self.workflow.name, params)

    async def run(self, instance_id: str) -> dict[str, Any]:
        record = await self.store.get_instance(instance_id)
        if record is None:
            raise WorkflowError(f"Unknown workflow instance: {instance_id}")
        if record.status is InstanceStatus.COMPLETE:
            return record.output or {}

        record = await self.store.set_status(instance_id, InstanceStatus.RUNNING)
        params = record.params
        results = await self.store.load_steps(instance_id)
        logger.info(
            "workflow_started workflow=%s instance_id=%s checkpointed=%s",
            self.workflow.name,
            instance_id,
            sorted(results),
        )

        for step in self.workflow.steps:
            if step.name in results:
                logger.info("step_skipped instance_id=%s step=%s", instance_id, step.name)
                continue

            try:
                result = await self._execute(instance_id, step, params, results)
                await self.store.save_step(instance_id, step.name, result)
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                await self.store.set_status(instance_id, InstanceStatus.ERRORED, error=f"{step.name}: {error}")
                logger.exception(
                    "workflow_failed workflow=%s instance_id=%s step=%s error=%s",
                    self.workflow.name,
                    instance_id,
                    step.name,
                    error,
                )
                raise WorkflowFailed(instance_id, step.name, error) from exc

            results[step.name] = result
            logger.info("step_completed instance_id=%s step=%s", instance_id, step.name)

        output = self.workflow.output(params, results)
        await self.store.set_status(instance_id, InstanceStatus.COMPLETE, output=output)
        logger.info("workflow_complete workflow=%s instance_id=%s", self.workflow.name, instance_id)
        return output

    async def _execute(
        self,
        instance_id: str,
        step: Step,
        params: dict[str, Any],
        results: Mapping[str, Any],
    ) -> Any:
        policy = step.retry
        if policy is None:
            return await step.attempt(params, results)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.limit),
            wait=policy.wait_strategy(),
            sleep=self._sleep,
            before_sleep=_log_retry(instance_id, step.name),
            reraise=True,
        )
        if policy.timeout_s is None:
            return await retrying(step.attempt, params, results)

        try:
            return await asyncio.wait_for(retrying(step.attempt, params, results), timeout=policy.timeout_s)
        except asyncio.TimeoutError as exc:
            raise StepTimeout(f"step {step.name} did not finish within {policy.timeout_s}s") from exc

    async def run_background(self, instance_id: str) -> None:
        """
        BackgroundTasks entrypoint; never raises to the request path.

        Step failures are already recorded on the instance and logged by run().
        """
        try:
            await self.run(instance_id)
        except WorkflowFailed:
            return None
        except Exception:
            logger.exception("workflow_crashed workflow=%s instance_id=%s", self.workflow.name, instance_id)

    async def resume_active(self) -> list[str]:
        """
        Schedule every queued/running instance left by a previous process.
        """
        records = await self.store.list_active()
        for record in records:
            task = asyncio.create_task(self.run_background(record.instance_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if records:
            logger.info("instances_resumed workflow=%s count=%s", self.workflow.name, len(records))
        return [r.instance_id for r in records]

    async def shutdown(self) -> None:
        # Cancelled instances stay queued/running and resume on next start.
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
