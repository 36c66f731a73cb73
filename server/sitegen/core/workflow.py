# sitegen/core/workflow.py
"""
Step runner for resumable, cancellable jobs.

A job is a fixed sequence of named steps. Each step's output is saved in a
StepStore under (job_id, step name); running the same job again replays saved
outputs and resumes at the first step without one. Saved outputs expire with
the progress TTL. A failing step is retried on its own (bounded, linear
backoff) and never re-runs earlier steps; lint, syntax and project-shape
failures are final because their repair loops are already bounded.

Cancellation is cooperative: `checkpoint()` asks the status reporter whether
the job was cancelled and raises CancellationSignal if so. A model call that is
already in flight is not interrupted; the next checkpoint after it stops the job.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type

from sitegen.core.errors import (
    CancellationSignal,
    LintFailure,
    ProjectShapeError,
    StepFailed,
    SyntaxFailure,
    TransportFailure,
)
from sitegen.core.job_status import InMemoryTTLStore, KeyValueStore
from sitegen.utils.config import PROGRESS_TTL_S, STEP_BACKOFF_S, STEP_RETRIES

logger = logging.getLogger(__name__)


class StepStore:
    """
    Step outputs keyed by (job_id, step), kept for `ttl_s` after the last save.
    Outputs of failed jobs are swept once they expire.
    """

    def __init__(self, ttl_s: float = PROGRESS_TTL_S, clock: Callable[[], float] = time.time,
                 store: Optional[KeyValueStore] = None) -> None:
        self.ttl_s = ttl_s
        self._store = store if store is not None else InMemoryTTLStore(clock=clock)

    @staticmethod
    def _key(job_id: str, step: str) -> str:
        return f"{job_id}:{step}"

    def has(self, job_id: str, step: str) -> bool:
        return self._store.get(self._key(job_id, step)) is not None

    def load(self, job_id: str, step: str) -> Any:
        entry = self._store.get(self._key(job_id, step))
        if entry is None:
            raise KeyError((job_id, step))
        return entry["output"]

    def save(self, job_id: str, step: str, output: Any) -> None:
        # wrapped so that a step returning None still counts as done
        self._store.set(self._key(job_id, step), {"output": output}, self.ttl_s)

    def clear(self, job_id: str) -> int:
        steps = self.steps_for(job_id)
        for step in steps:
            self._store.delete(self._key(job_id, step))
        return len(steps)

    def steps_for(self, job_id: str) -> List[str]:
        prefix = self._key(job_id, "")
        return [k[len(prefix):] for k in self._store.keys(prefix) if ":" not in k[len(prefix):]]


# Global, process-local singleton
STEP_STORE = StepStore()


# terminal outcomes of a step that already exhausted its own repair bound
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (LintFailure, SyntaxFailure, ProjectShapeError)


class StepRunner:
    def __init__(self, job_id: str, reporter, store: Optional[StepStore] = None,
                 retries: int = STEP_RETRIES, backoff_s: float = STEP_BACKOFF_S,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 non_retryable: Tuple[Type[BaseException], ...] = NON_RETRYABLE):
        self.job_id = job_id
        self.reporter = reporter
        self.store = store if store is not None else STEP_STORE
        self.retries = max(1, retries)
        self.backoff_s = backoff_s
        self.non_retryable = non_retryable
        self._sleep = sleep

    async def checkpoint(self) -> None:
        """
        Raise CancellationSignal when the job was cancelled. An unreachable status
        registry is retried like a step and raises StepFailed once the bound is hit.
        """
        last_exc: Optional[TransportFailure] = None
        for attempt in range(1, self.retries + 1):
            try:
                cancelled = await self.reporter.is_cancelled(self.job_id)
            except TransportFailure as e:
                last_exc = e
                logger.warning("[%s] cancellation check %d/%d failed: %s",
                               self.job_id, attempt, self.retries, e)
                if attempt < self.retries:
                    await self._sleep(self.backoff_s * attempt)
                continue
            if cancelled:
                logger.info("Job %s was cancelled", self.job_id)
                raise CancellationSignal(self.job_id)
            return
        raise StepFailed("checkpoint", self.retries, last_exc) from last_exc

    async def run(self, name: str, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run one step. Returns the saved output when the step already completed.
        Raises StepFailed after `retries` failed attempts, or at once for a
        non-retryable failure. CancellationSignal and a StepFailed from a
        checkpoint inside the step are re-raised unwrapped.
        """
        try:
            output = self.store.load(self.job_id, name)
        except KeyError:
            pass
        else:
            logger.info("[%s] step '%s' replayed from saved output", self.job_id, name)
            return output

        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.retries + 1):
            try:
                result = await fn(*args, **kwargs)
            except (CancellationSignal, StepFailed):
                raise
            except self.non_retryable as e:
                logger.error("[%s] step '%s' failed: %s", self.job_id, name, e)
                raise StepFailed(name, attempt, e) from e
            except Exception as e:
                last_exc = e
                logger.warning("[%s] step '%s' attempt %d/%d failed: %s",
                               self.job_id, name, attempt, self.retries, e)
                if attempt < self.retries:
                    await self._sleep(self.backoff_s * attempt)
                continue
            self.store.save(self.job_id, name, result)
            return result

        raise StepFailed(name, self.retries, last_exc) from last_exc

    def finish(self) -> None:
        """Drop saved outputs once the job reached a terminal outcome."""
        self.store.clear(self.job_id)
