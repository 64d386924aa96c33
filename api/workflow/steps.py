"""
Workflow definitions: named steps in a fixed order, each with an optional
retry policy.

A step's attempt receives the instance params and the results of the steps
before it, and must return a JSON-compatible value (it is checkpointed).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from tenacity import wait_exponential, wait_fixed, wait_incrementing
from tenacity.wait import wait_base

StepAttempt = Callable[[dict[str, Any], Mapping[str, Any]], Awaitable[Any]]
WorkflowOutput = Callable[[dict[str, Any], Mapping[str, Any]], dict[str, Any]]


class WorkflowError(RuntimeError):
    pass


class InvalidTransition(WorkflowError):
    pass


class StepTimeout(WorkflowError):
    pass


class WorkflowFailed(WorkflowError):
    def __init__(self, instance_id: str, step: str, error: str) -> None:
        super().__init__(f"Workflow instance {instance_id} failed at step {step}: {error}")
        self.instance_id = instance_id
        self.step = step
        self.error = error


class Backoff(str, Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """
    `limit` counts attempts in total, including the first one.

    With EXPONENTIAL backoff the waits are delay, 2*delay, 4*delay, ...
    `timeout_s` bounds all attempts and waits together.
    """

    limit: int = 3
    delay_s: float = 5.0
    backoff: Backoff = Backoff.EXPONENTIAL
    timeout_s: float | None = 300.0

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("RetryPolicy.limit must be >= 1.")
        if self.delay_s < 0:
            raise ValueError("RetryPolicy.delay_s must be >= 0.")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError("RetryPolicy.timeout_s must be > 0.")

    def wait_strategy(self) -> wait_base:
        if self.backoff is Backoff.EXPONENTIAL:
            return wait_exponential(multiplier=self.delay_s, exp_base=2)
        if self.backoff is Backoff.LINEAR:
            return wait_incrementing(start=self.delay_s, increment=self.delay_s)
        return wait_fixed(self.delay_s)


@dataclass(frozen=True)
class Step:
    name: str
    attempt: StepAttempt
    retry: RetryPolicy | None = None


@dataclass(frozen=True)
class Workflow:
    name: str
    steps: tuple[Step, ...]
    output: WorkflowOutput

    def __post_init__(self) -> None:
        names = [step.name for step in self.steps]
        if not names:
            raise ValueError(f"Workflow {self.name} has no steps.")
        if len(set(names)) != len(names):
            raise ValueError(f"Workflow {self.name} has duplicate step names: {names}")
