"""
Job orchestrator - runs pipeline jobs on schedules with single-flight per job type.

Each job type owns one asyncio.Lock:
- a scheduled run that finds its job busy is skipped (logged, not an error)
- a manual trigger that finds its job busy raises AlreadyRunningError

Locks are process-local. Running several API processes against one database
needs an external distributed lock.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from aidwatch.utils.alerting import AlertType, send_alert
from aidwatch.utils.dates import utcnow
from aidwatch.utils.redis_client import get_redis

logger = logging.getLogger(__name__)

HEARTBEAT_TTL_SECONDS = 7200
DIGEST_CHECK_INTERVAL_SECONDS = 60


class JobType(str, Enum):
    INGESTION_SWEEP = "ingestion_sweep"
    CLASSIFICATION_BATCH = "classification_batch"
    SUMMARY_BATCH = "summary_batch"
    IMMEDIATE_NOTIFICATIONS = "immediate_notifications"
    DAILY_DIGEST = "daily_digest"
    WEEKLY_DIGEST = "weekly_digest"


class AlreadyRunningError(Exception):
    """Manual trigger of a job that is already running."""


class UnknownJobError(Exception):
    pass


JobFn = Callable[..., Awaitable[dict]]


@dataclass
class JobState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_stats: Optional[dict] = None
    last_error: Optional[str] = None
    runs: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        return {
            "running": self.lock.locked(),
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_stats": self.last_stats,
            "last_error": self.last_error,
            "runs": self.runs,
            "skipped": self.skipped,
        }


class JobOrchestrator:
    def __init__(self, jobs: dict[JobType, JobFn]):
        self._jobs = dict(jobs)
        self._states = {job: JobState() for job in self._jobs}
        self._tasks: list[asyncio.Task] = []
        self._last_digest_dates: dict[JobType, date] = {}

    def job_type(self, name: str) -> JobType:
        try:
            job = JobType(name)
        except ValueError:
            raise UnknownJobError(f"Unknown job: {name}") from None
        if job not in self._jobs:
            raise UnknownJobError(f"Job not registered: {name}")
        return job

    def is_running(self, job: JobType) -> bool:
        return self._states[job].lock.locked()

    async def trigger(self, job: JobType, **kwargs) -> dict:
        """Manual run. Returns the job's statistics; errors propagate to the caller."""
        state = self._state(job)
        if state.lock.locked():
            raise AlreadyRunningError(f"{job.value} is already running")
        async with state.lock:
            logger.info("Manual trigger: %s", job.value, extra={"job": job.value})
            return await self._run(job, state, **kwargs)

    async def run_scheduled(self, job: JobType) -> Optional[dict]:
        """Scheduled run. Skips if busy; never raises."""
        state = self._state(job)
        if state.lock.locked():
            state.skipped += 1
            logger.info("%s still running; skipping scheduled run", job.value, extra={"job": job.value})
            return None
        async with state.lock:
            try:
                return await self._run(job, state)
            except Exception as e:
                logger.error("Job %s failed: %s", job.value, str(e), exc_info=True, extra={"job": job.value})
                await send_alert(
                    AlertType.JOB_FAILED,
                    f"Scheduled job {job.value} failed: {str(e)[:200]}",
                    extra={"job": job.value},
                )
                return None

    async def _run(self, job: JobType, state: JobState, **kwargs) -> dict:
        state.last_started_at = utcnow()
        state.runs += 1
        try:
            stats = await self._jobs[job](**kwargs)
        except Exception as e:
            state.last_error = str(e) or type(e).__name__
            raise
        else:
            state.last_error = None
            state.last_stats = stats
            return stats
        finally:
            state.last_finished_at = utcnow()

    def _state(self, job: JobType) -> JobState:
        if job not in self._states:
            raise UnknownJobError(f"Job not registered: {job.value}")
        return self._states[job]

    def status(self) -> dict:
        return {job.value: state.as_dict() for job, state in self._states.items()}

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def start(
        self,
        intervals: dict[JobType, int],
        digest_hour_utc: int = 8,
        weekly_digest_weekday: int = 0,
    ) -> None:
        """Start one loop per interval job plus the digest clock."""
        for job, seconds in intervals.items():
            if job in self._jobs:
                self._tasks.append(
                    asyncio.create_task(self._interval_loop(job, seconds), name=f"job-{job.value}")
                )
        if JobType.DAILY_DIGEST in self._jobs or JobType.WEEKLY_DIGEST in self._jobs:
            self._tasks.append(asyncio.create_task(
                self._digest_loop(digest_hour_utc, weekly_digest_weekday), name="job-digests",
            ))
        logger.info("Job orchestrator started %d schedule(s)", len(self._tasks))

    async def stop(self, timeout: float = 10.0) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.wait(self._tasks, timeout=timeout)
        self._tasks = []

    async def _interval_loop(self, job: JobType, seconds: int) -> None:
        logger.info("%s scheduled every %ds", job.value, seconds, extra={"job": job.value})
        while True:
            await self.run_scheduled(job)
            await _heartbeat(job)
            await asyncio.sleep(seconds)

    def due_digests(self, now: datetime, digest_hour_utc: int, weekly_digest_weekday: int) -> list[JobType]:
        """Digest jobs that should fire at `now` and have not fired today."""
        if now.hour < digest_hour_utc:
            return []
        due = []
        today = now.date()
        if JobType.DAILY_DIGEST in self._jobs and self._last_digest_dates.get(JobType.DAILY_DIGEST) != today:
            due.append(JobType.DAILY_DIGEST)
        if (
            JobType.WEEKLY_DIGEST in self._jobs
            and now.weekday() == weekly_digest_weekday
            and self._last_digest_dates.get(JobType.WEEKLY_DIGEST) != today
        ):
            due.append(JobType.WEEKLY_DIGEST)
        return due

    async def _digest_loop(self, digest_hour_utc: int, weekly_digest_weekday: int) -> None:
        while True:
            now = utcnow()
            for job in self.due_digests(now, digest_hour_utc, weekly_digest_weekday):
                self._last_digest_dates[job] = now.date()
                await self.run_scheduled(job)
                await _heartbeat(job)
            await asyncio.sleep(DIGEST_CHECK_INTERVAL_SECONDS)


async def _heartbeat(job: JobType) -> None:
    """Store heartbeat timestamp in Redis."""
    try:
        redis = await get_redis()
        await redis.set(
            f"aidwatch:worker_health:{job.value}",
            utcnow().isoformat(),
            ex=HEARTBEAT_TTL_SECONDS,
        )
    except Exception as e:
        logger.debug("Heartbeat failed for %s: %s", job.value, str(e))
