"""In-memory message batch jobs.

Each job runs its requests one at a time on its own asyncio task. Request
counts are moved from ``processing`` to exactly one of ``succeeded``,
``errored`` or ``canceled`` per item, so the four counts always add up to the
number of requests.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from ..core.exceptions import InvalidRequestError, NotFoundError, ProxyError
from ..core.models import ModelMapping
from ..types import BatchRequestCounts, BatchResultRecord, BatchStatus, Message

logger = logging.getLogger("msgbridge")

BATCH_EXPIRY = timedelta(hours=24)


class MessageExecutor(Protocol):
    def resolve_model(self, request: Mapping[str, Any], req_id: str = "-") -> ModelMapping:
        ...

    async def create_message(
        self, request: Mapping[str, Any], mapping: ModelMapping, req_id: str = "-"
    ) -> Message:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class BatchItem:
    custom_id: str
    params: dict[str, Any]


@dataclass
class BatchJob:
    id: str
    requests: list[BatchItem]
    created_at: datetime
    expires_at: datetime
    status: BatchStatus = "validating"
    counts: BatchRequestCounts = field(
        default_factory=lambda: {"processing": 0, "succeeded": 0, "errored": 0, "canceled": 0}
    )
    ended_at: Optional[datetime] = None
    cancel_initiated_at: Optional[datetime] = None
    results: Optional[list[BatchResultRecord]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "message_batch",
            "object": "message_batch",
            "processing_status": self.status,
            "request_counts": dict(self.counts),
            "ended_at": isoformat(self.ended_at),
            "archived_at": None,
            "cancel_initiated_at": isoformat(self.cancel_initiated_at),
            "expires_at": isoformat(self.expires_at),
            "created_at": isoformat(self.created_at),
        }

    def _settle(self, custom_id: str, outcome: str, result: dict[str, Any]) -> None:
        self.counts["processing"] -= 1
        self.counts[outcome] += 1
        if self.results is None:
            self.results = []
        self.results.append({"custom_id": custom_id, "result": result})


def parse_batch_requests(requests: Any) -> list[BatchItem]:
    """Validate ``[{custom_id, params | body}, ...]``.

    Raises:
        InvalidRequestError: The list or one of its items is malformed.
    """
    if not isinstance(requests, list):
        raise InvalidRequestError("requests field is required and must be an array")

    items: list[BatchItem] = []
    for index, entry in enumerate(requests):
        if not isinstance(entry, Mapping):
            raise InvalidRequestError(f"requests[{index}] must be an object")
        custom_id = entry.get("custom_id")
        if not isinstance(custom_id, str) or not custom_id:
            raise InvalidRequestError(f"requests[{index}].custom_id is required")
        params = entry.get("params", entry.get("body"))
        if not isinstance(params, Mapping):
            raise InvalidRequestError(f"requests[{index}].params must be an object")
        items.append(BatchItem(custom_id=custom_id, params=dict(params)))
    return items


class BatchRepository:
    """Owns batch jobs and their worker tasks for one application."""

    def __init__(
        self,
        executor: MessageExecutor,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.executor = executor
        self.clock = clock
        self._jobs: dict[str, BatchJob] = {}
        self._workers: dict[str, asyncio.Task] = {}

    def create(self, requests: Any) -> BatchJob:
        """Register a job and start its worker; must run inside an event loop."""
        items = parse_batch_requests(requests)
        now = self.clock()
        job = BatchJob(
            id=f"batch_{uuid.uuid4()}",
            requests=items,
            created_at=now,
            expires_at=now + BATCH_EXPIRY,
        )
        job.counts["processing"] = len(items)
        self._jobs[job.id] = job
        self._workers[job.id] = asyncio.get_running_loop().create_task(self._run(job))
        logger.info(f"Created batch {job.id} with {len(items)} requests")
        return job

    def get(self, batch_id: str) -> BatchJob:
        job = self._jobs.get(batch_id)
        if job is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return job

    def list(self) -> list[BatchJob]:
        return list(self._jobs.values())

    def cancel(self, batch_id: str) -> BatchJob:
        job = self.get(batch_id)
        if job.status == "ended":
            raise InvalidRequestError("Cannot cancel a batch that has already ended")
        job.status = "canceling"
        job.cancel_initiated_at = self.clock()
        logger.info(f"Cancel requested for batch {batch_id}")
        return job

    def results(self, batch_id: str) -> list[BatchResultRecord]:
        job = self.get(batch_id)
        if job.status != "ended" or job.results is None:
            raise InvalidRequestError("Batch results are not yet available")
        return list(job.results)

    async def wait(self, batch_id: str) -> BatchJob:
        job = self.get(batch_id)
        task = self._workers.get(batch_id)
        if task is not None:
            await asyncio.shield(task)
        return job

    async def close(self) -> None:
        """Cancel running workers; their jobs end with remaining items canceled."""
        running = [
            (self._jobs[batch_id], task) for batch_id, task in self._workers.items() if not task.done()
        ]
        if not running:
            return
        for job, task in running:
            if job.cancel_initiated_at is None:
                job.cancel_initiated_at = self.clock()
            task.cancel()
        await asyncio.gather(*(task for _, task in running), return_exceptions=True)

        # A task cancelled before its first step never enters _run
        for job, _ in running:
            if job.status != "ended":
                self._finish_remaining(job, "canceled", {"type": "canceled"})
                job.status = "ended"
                job.ended_at = self.clock()
        logger.info(f"Stopped {len(running)} batch workers")

    async def _run(self, job: BatchJob) -> None:
        if job.cancel_initiated_at is None:
            job.status = "in_progress"
        job.results = []
        try:
            for item in job.requests:
                if job.cancel_initiated_at is not None:
                    job._settle(item.custom_id, "canceled", {"type": "canceled"})
                    continue
                await self._run_item(job, item)
        except asyncio.CancelledError:
            self._finish_remaining(job, "canceled", {"type": "canceled"})
            raise
        except Exception as exc:
            logger.error(f"Batch {job.id} worker crashed: {exc}", exc_info=True)
            self._finish_remaining(
                job, "errored",
                {"type": "errored", "error": {"type": "api_error", "message": str(exc)}},
            )
        finally:
            job.status = "ended"
            job.ended_at = self.clock()
            logger.info(f"Batch {job.id} ended: {job.counts}")

    @staticmethod
    def _finish_remaining(job: BatchJob, outcome: str, result: dict[str, Any]) -> None:
        # Results are appended in request order
        for item in job.requests[len(job.results or []):]:
            job._settle(item.custom_id, outcome, dict(result))

    async def _run_item(self, job: BatchJob, item: BatchItem) -> None:
        req_id = item.custom_id
        try:
            mapping = self.executor.resolve_model(item.params, req_id)
            message = await self.executor.create_message(item.params, mapping, req_id)
        except ProxyError as exc:
            error_type = exc.error_type if isinstance(exc, InvalidRequestError) else "api_error"
            logger.warning(f"[{req_id}] Batch {job.id} item failed: {exc.message}")
            error = {"type": error_type, "message": exc.message}
        except Exception as exc:
            logger.error(f"[{req_id}] Batch {job.id} item raised: {exc}", exc_info=True)
            error = {"type": "api_error", "message": str(exc) or exc.__class__.__name__}
        else:
            job._settle(item.custom_id, "succeeded", {"type": "succeeded", "message": message})
            return
        job._settle(item.custom_id, "errored", {"type": "errored", "error": error})
