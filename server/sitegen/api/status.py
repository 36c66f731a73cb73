# sitegen/api/status.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from sitegen.core.job_status import DEFAULT_EVENT, JobStatusRegistry, get_registry
from sitegen.models import StatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def get_status_registry() -> JobStatusRegistry:
    return get_registry()


@router.get("")
async def poll_status(jobId: Optional[str] = None,
                      event: Optional[str] = None,
                      registry: JobStatusRegistry = Depends(get_status_registry)):
    if not jobId:
        raise HTTPException(status_code=400, detail="Missing jobId")
    status_code, body = registry.poll(jobId, event or DEFAULT_EVENT)
    return JSONResponse(content=body, status_code=status_code)


@router.get("/cancellation")
async def cancellation_status(jobId: Optional[str] = None,
                              registry: JobStatusRegistry = Depends(get_status_registry)):
    """Non-consuming cancellation check used by out-of-process workers."""
    if not jobId:
        raise HTTPException(status_code=400, detail="Missing jobId")
    return {"jobId": jobId, "cancelled": registry.is_cancelled(jobId)}


@router.post("")
async def update_status(update: StatusUpdate,
                        registry: JobStatusRegistry = Depends(get_status_registry)):
    if not update.jobId:
        raise HTTPException(status_code=400, detail="Missing jobId")

    if update.cancel:
        registry.request_cancellation(update.jobId)
        return {"success": True, "cancelled": True}

    if update.progress:
        registry.record_progress(update.jobId, update.progress)
        return {"success": True}

    if update.error:
        recorded = registry.record_failure(update.jobId, update.error)
        return {"success": recorded}

    if update.event and update.data is not None:
        recorded = registry.record_completion(update.jobId, update.data, update.event)
        if recorded:
            logger.info("Completion recorded for %s (%s)", update.jobId, update.event)
        return {"success": recorded}

    raise HTTPException(status_code=400, detail="Missing event or data")
