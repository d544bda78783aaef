"""
DealFlow — Background Sync Jobs

Starts SyncService runs on asyncio tasks so callers get a job id back
immediately and poll the job (or the service's status surface) afterwards.
Token resolution happens up front: stored tokens are refreshed when expired
and the refreshed pair is persisted before the run is scheduled.
"""

from __future__ import annotations

import asyncio

import structlog

from dealflow.config import settings
from dealflow.errors import AuthExchangeError, SyncInProgressError
from dealflow.pipeline.ebay import EbayAPIClient
from dealflow.pipeline.sync import SyncService
from dealflow.schemas import SyncJob, SyncJobStatus, utcnow
from dealflow.storage.gateway import StorageGateway

logger = structlog.get_logger(__name__)


class SyncJobRunner:
    """Schedules sync runs and keeps their job records in memory."""

    def __init__(
        self,
        service: SyncService,
        client: EbayAPIClient,
        storage: StorageGateway,
    ) -> None:
        self._service = service
        self._client = client
        self._storage = storage
        self._jobs: dict[str, SyncJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def is_busy(self) -> bool:
        """True while a run is active or a scheduled job has not started yet."""
        if self._service.is_syncing:
            return True
        return any(job.status == SyncJobStatus.PENDING for job in self._jobs.values())

    async def _resolve_access_token(self) -> str:
        tokens = await self._storage.get_tokens()
        if tokens is None:
            raise AuthExchangeError(
                "eBay account not connected. Please connect your eBay account first.",
                requires_reauth=True,
            )

        if tokens.is_expired():
            if not tokens.refresh_token:
                raise AuthExchangeError(
                    "eBay token expired and no refresh token is stored",
                    requires_reauth=True,
                )
            logger.info("sync_job_token_refresh", expired_at=tokens.expires_at.isoformat())
            tokens = await self._client.refresh_access_token(tokens.refresh_token)
            await self._storage.save_tokens(tokens)

        return tokens.access_token

    async def start(self, days_back: int | None = None, force: bool = False) -> SyncJob:
        """
        Schedule a sync run and return its job without waiting for it.

        The job is registered as pending before tokens are resolved, so a
        concurrent start sees it and backs off while a refresh is in flight.

        Raises:
            SyncInProgressError: A run is active and force is False.
            AuthExchangeError: No stored tokens, or the refresh failed.
        """
        if self.is_busy and not force:
            raise SyncInProgressError("Sync already in progress")

        job = SyncJob(
            days_back=days_back if days_back is not None else settings.SYNC_DAYS_BACK,
            force=force,
        )
        self._jobs[job.job_id] = job

        try:
            access_token = await self._resolve_access_token()
        except Exception:
            del self._jobs[job.job_id]
            raise

        task = asyncio.create_task(self._run(job, access_token), name=f"sync-job-{job.job_id}")
        self._tasks[job.job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.job_id, None))
        self._prune_history()

        logger.info("sync_job_scheduled", job_id=job.job_id, days_back=job.days_back, force=force)
        return job

    def _prune_history(self) -> None:
        """Drop the oldest finished jobs beyond SYNC_JOB_HISTORY_LIMIT."""
        finished = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)
        ]
        excess = len(self._jobs) - settings.SYNC_JOB_HISTORY_LIMIT
        for job_id in finished[: max(excess, 0)]:
            del self._jobs[job_id]

    async def _run(self, job: SyncJob, access_token: str) -> None:
        job.status = SyncJobStatus.RUNNING
        try:
            result = await self._service.sync_transactions(
                access_token, days_back=job.days_back, force=job.force
            )
        except Exception as e:
            job.status = SyncJobStatus.FAILED
            job.error = str(e)
            logger.error(
                "sync_job_failed",
                job_id=job.job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        else:
            job.result = result
            if result.success:
                job.status = SyncJobStatus.COMPLETED
            else:
                job.status = SyncJobStatus.FAILED
                job.error = result.errors[-1] if result.errors else "Sync failed"
            logger.info(
                "sync_job_finished",
                job_id=job.job_id,
                status=job.status.value,
                new_count=result.new_count,
                updated_count=result.updated_count,
            )
        finally:
            job.finished_at = utcnow()

    def get(self, job_id: str) -> SyncJob | None:
        return self._jobs.get(job_id)

    async def wait(self, job_id: str) -> SyncJob:
        """Block until the job finishes. Raises KeyError for an unknown id."""
        job = self._jobs[job_id]
        task = self._tasks.get(job_id)
        if task is not None:
            await task
            self._tasks.pop(job_id, None)
        return job
