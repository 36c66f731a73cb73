# sitegen/api/generate.py
import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from sitegen.api.status import get_status_registry
from sitegen.core.codegen_agent import run_generation_job
from sitegen.core.job_status import HttpStatusReporter, JobStatusRegistry, LocalStatusReporter
from sitegen.models import GenerateEvent
from sitegen.utils.config import STATUS_API_URL

logger = logging.getLogger(__name__)

router = APIRouter()


def get_reporter(registry: JobStatusRegistry = Depends(get_status_registry)):
    if STATUS_API_URL:
        return HttpStatusReporter(STATUS_API_URL)
    return LocalStatusReporter(registry)


def get_job_runner():
    return run_generation_job


async def _run_job(runner, event: GenerateEvent, reporter) -> None:
    try:
        await runner(event, reporter=reporter)
    except Exception:
        # already reported to the status registry by the workflow
        logger.exception("Generation job %s failed", event.projectId)


@router.post("", status_code=202, response_model=Dict[str, Any])
async def generate(event: GenerateEvent,
                   background_tasks: BackgroundTasks,
                   registry: JobStatusRegistry = Depends(get_status_registry),
                   reporter=Depends(get_reporter),
                   runner=Depends(get_job_runner)):
    """
    Accept a generation event and run the workflow in the background.
    The projectId is the job id clients poll on /status.
    """
    if not event.prompt.strip():
        raise HTTPException(status_code=400, detail="prompt must not be empty")
    _log_incoming_request(event)
    registry.reset(event.projectId)
    background_tasks.add_task(_run_job, runner, event, reporter)
    return {"jobId": event.projectId, "status": "queued"}


def _log_incoming_request(event: GenerateEvent) -> None:
    logger.info("Generate request: project=%s user=%s prompt=%d chars",
                event.projectId, event.userId, len(event.prompt))
    logger.debug("Prompt: %s", event.prompt[:500])
