"""
Job routes - status query and manual triggers for the pipeline jobs.
Manual triggers run synchronously and return the job's statistics.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from aidwatch.database import get_db
from aidwatch.schemas.api_responses import JobStatusResponse, JobTriggerResponse
from aidwatch.services.correlation import get_processing_stats
from aidwatch.workers.orchestrator import AlreadyRunningError, JobType, UnknownJobError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


@router.get("/status", response_model=JobStatusResponse)
async def job_status(request: Request, db: AsyncSession = Depends(get_db)):
    orchestrator = request.app.state.orchestrator
    queue = request.app.state.webhook_queue
    return JobStatusResponse(
        jobs=orchestrator.status(),
        processing=await get_processing_stats(db),
        queue={
            "depth": queue.depth,
            "running": queue.running,
            "processed": queue.processed,
            "dropped": queue.dropped,
        },
    )


@router.post("/{job}/trigger", response_model=JobTriggerResponse)
async def trigger_job(
    job: str,
    request: Request,
    rescan_unlinked: bool = Query(default=False),
):
    """
    Run a job now. 409 if it is already running, 404 for unknown jobs.
    rescan_unlinked only applies to classification_batch.
    """
    orchestrator = request.app.state.orchestrator
    try:
        job_type = orchestrator.job_type(job)
        kwargs = {}
        if job_type == JobType.CLASSIFICATION_BATCH and rescan_unlinked:
            kwargs["rescan_unlinked"] = True
        stats = await orchestrator.trigger(job_type, **kwargs)
    except UnknownJobError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JobTriggerResponse(job=job_type.value, stats=stats)
