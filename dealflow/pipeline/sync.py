"""
DealFlow — Sync Orchestrator

Pulls the seller's transaction history page by page, normalizes each record,
prices it, and persists it idempotently by external transaction id.

State machine per run:
    starting → fetching → processing → (fetching | processing)* → completed
                                                                 ↘ error

Exclusivity: one run at a time per SyncService. A forced call starts a new
run and supersedes the active one; the superseded run keeps writing to its
own detached SyncProgress and cannot clear the new run's active flag.

Retry policy wraps each page fetch only:
    attempts = 1 + SYNC_MAX_RETRIES
    sleep before retry k = SYNC_RETRY_BASE_SECONDS × 2^(k-1)
    HTTP 400/401/403 and token failures are never retried
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping

import structlog

from dealflow.config import SyncStatusCode, settings
from dealflow.engine.profit import apply_financials
from dealflow.errors import SyncInProgressError, SyncRunError
from dealflow.pipeline.ebay import EbayAPIClient
from dealflow.pipeline.transformer import WireValue, normalize
from dealflow.schemas import (
    SyncPagination,
    SyncProgress,
    SyncProgressSummary,
    SyncResult,
    SyncStatus,
    TransactionsPage,
    utcnow,
)
from dealflow.storage.gateway import StorageGateway

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_STEP_IDLE = "idle"


class SyncService:
    """
    Orchestrates one marketplace sync at a time.

    Usage:
        async with EbayAPIClient() as client:
            service = SyncService(client, storage)
            result = await service.sync_transactions(tokens.access_token, days_back=30)
    """

    def __init__(
        self,
        client: EbayAPIClient,
        storage: StorageGateway,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._storage = storage
        self._sleep = sleep
        self._active_run_id: str | None = None
        self._progress: SyncProgress | None = None

    @property
    def progress(self) -> SyncProgress | None:
        """Progress of the current run, or of the last one once it finished."""
        return self._progress

    @property
    def is_syncing(self) -> bool:
        return self._active_run_id is not None

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------

    async def sync_transactions(
        self,
        access_token: str,
        days_back: int | None = None,
        force: bool = False,
    ) -> SyncResult:
        """
        Run a full sync over [now - days_back, now].

        Record-level failures are skipped, counted and reported in the result,
        and make success False while the run still completes. Anything that
        escapes the record loop ends the run in error with the partial counts
        gathered so far.

        Raises:
            SyncInProgressError: A run is active and force is False.
        """
        if self._active_run_id is not None:
            if not force:
                raise SyncInProgressError("Sync already in progress")
            logger.warning("sync_forced_restart", superseded_run_id=self._active_run_id)

        run_id = uuid.uuid4().hex
        progress = SyncProgress()
        self._active_run_id = run_id
        self._progress = progress

        days = days_back if days_back is not None else settings.SYNC_DAYS_BACK
        window_end = utcnow()
        window_start = window_end - timedelta(days=days)

        new_count = 0
        updated_count = 0
        errors: list[str] = []

        logger.info(
            "sync_started",
            run_id=run_id,
            days_back=days,
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
            force=force,
        )

        try:
            page_number = 1
            while True:
                progress.status = SyncStatusCode.FETCHING
                progress.current_page = page_number

                page = await self._fetch_page_with_retry(
                    access_token, window_start, window_end, page_number
                )
                if page_number == 1:
                    progress.total_pages = page.total_pages
                    progress.total = page.total_entries

                progress.status = SyncStatusCode.PROCESSING
                for raw in page.records:
                    try:
                        created = await self._process_record(raw)
                    except Exception as e:
                        progress.errors += 1
                        label = _record_label(raw)
                        errors.append(f"Failed to process transaction {label}: {e}")
                        logger.warning(
                            "sync_record_failed",
                            run_id=run_id,
                            external_transaction_id=label,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                    else:
                        if created:
                            new_count += 1
                        else:
                            updated_count += 1
                        progress.processed += 1

                page_number += 1
                if page_number > progress.total_pages:
                    break
                await self._sleep(settings.SYNC_PAGE_DELAY_SECONDS)

            synced_at = utcnow()
            await self._storage.update_last_sync_time(synced_at)
            progress.status = SyncStatusCode.COMPLETED

            logger.info(
                "sync_completed",
                run_id=run_id,
                new_count=new_count,
                updated_count=updated_count,
                error_count=len(errors),
                pages=progress.total_pages,
            )
            return SyncResult(
                success=not errors,
                new_count=new_count,
                updated_count=updated_count,
                errors=tuple(errors),
                synced_at=synced_at,
            )

        except Exception as e:
            progress.status = SyncStatusCode.ERROR
            errors.append(str(e))
            logger.error(
                "sync_failed",
                run_id=run_id,
                error=str(e),
                error_type=type(e).__name__,
                new_count=new_count,
                updated_count=updated_count,
            )
            return SyncResult(
                success=False,
                new_count=new_count,
                updated_count=updated_count,
                errors=tuple(errors),
            )

        finally:
            if self._active_run_id == run_id:
                self._active_run_id = None

    async def _fetch_page_with_retry(
        self,
        access_token: str,
        window_start: datetime,
        window_end: datetime,
        page_number: int,
    ) -> TransactionsPage:
        """
        Fetch one page, retrying with exponential backoff.

        Raises:
            AuthExchangeError | RemoteApiError: Non-retryable failure, raised as-is.
            SyncRunError: Attempt budget exhausted; chained from the last error.
        """
        max_retries = settings.SYNC_MAX_RETRIES
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                wait_time = settings.SYNC_RETRY_BASE_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    "sync_page_retry",
                    page=page_number,
                    attempt=attempt + 1,
                    wait_seconds=wait_time,
                    error=str(last_error),
                )
                await self._sleep(wait_time)

            try:
                return await self._client.fetch_transactions_page(
                    access_token,
                    window_start,
                    window_end,
                    page_number=page_number,
                    page_size=settings.SYNC_PAGE_SIZE,
                )
            except Exception as e:
                if not getattr(e, "retryable", True):
                    logger.error(
                        "sync_page_fetch_not_retryable",
                        page=page_number,
                        status_code=getattr(e, "status_code", None),
                        error=str(e),
                    )
                    raise
                last_error = e

        raise SyncRunError(
            f"Fetching page {page_number} failed after {max_retries + 1} attempts: {last_error}"
        ) from last_error

    async def _process_record(self, raw: Mapping[str, Any]) -> bool:
        """
        Normalize, price and persist one record.

        Returns True when the record was new, False when an existing one was
        updated. An update keeps the stored id, item_cost, notes and tags, and
        profit is recomputed against the kept item_cost.
        """
        tx = normalize(raw)
        existing = await self._storage.get_by_external_id(tx.external_transaction_id)

        if existing is None:
            await self._storage.save(apply_financials(tx))
            return True

        merged = tx.model_copy(
            update={"id": existing.id, "notes": existing.notes, "tags": list(existing.tags)}
        )
        await self._storage.update(apply_financials(merged, item_cost=existing.item_cost))
        return False

    # -----------------------------------------------------------------------
    # Status surface
    # -----------------------------------------------------------------------

    def sync_status(
        self,
        last_sync_time: datetime | None,
        now: datetime | None = None,
    ) -> SyncStatus:
        """Snapshot for pollers: step text, percentage, pagination and ETA."""
        progress = self._progress
        if progress is None:
            return SyncStatus(
                is_active=False,
                progress=SyncProgressSummary(),
                current_step=_STEP_IDLE,
                status=_STEP_IDLE,
                last_sync_time=last_sync_time,
            )

        return SyncStatus(
            is_active=self.is_syncing,
            progress=SyncProgressSummary(
                current=progress.processed,
                total=progress.total,
                percentage=_percentage(progress.processed, progress.total),
                errors=progress.errors,
            ),
            current_step=_current_step(progress),
            status=progress.status.value,
            pagination=SyncPagination(
                current_page=progress.current_page,
                total_pages=progress.total_pages,
            ),
            last_sync_time=last_sync_time,
            estimated_completion=(
                _estimate_completion(progress, now or utcnow()) if self.is_syncing else None
            ),
        )


def _record_label(raw: Mapping[str, Any]) -> str:
    return WireValue.from_wire(raw.get("TransactionID")).as_text("unknown")


def _percentage(processed: int, total: int) -> int:
    if total <= 0:
        return 0
    # half-up integer rounding
    return (processed * 100 + total // 2) // total


def _current_step(progress: SyncProgress) -> str:
    if progress.status == SyncStatusCode.STARTING:
        return "Initializing sync..."
    if progress.status == SyncStatusCode.FETCHING:
        return f"Fetching transactions (Page {progress.current_page}/{progress.total_pages})"
    if progress.status == SyncStatusCode.PROCESSING:
        return f"Processing transactions ({progress.processed}/{progress.total})"
    if progress.status == SyncStatusCode.COMPLETED:
        return "Sync completed"
    return "Sync encountered errors"


def _estimate_completion(progress: SyncProgress, now: datetime) -> datetime | None:
    """Linear extrapolation from the processing rate observed so far."""
    if progress.processed <= 0 or progress.total <= progress.processed:
        return None
    elapsed = (now - progress.started_at).total_seconds()
    if elapsed <= 0:
        return None
    rate = progress.processed / elapsed
    remaining = (progress.total - progress.processed) / rate
    return now + timedelta(seconds=remaining)
