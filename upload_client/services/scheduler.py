import asyncio
import logging
from typing import Callable, List, Optional

from upload_client.exceptions import UploadError
from upload_client.models.upload_models import Chunk, PartResult, PartStatus, UploadPlan
from upload_client.services.progress import ProgressTracker
from upload_client.services.retry_policy import PartAttempt, RetryPolicy

logger = logging.getLogger(__name__)

PartCompleteCallback = Callable[[int, int], None]


class ConcurrencyScheduler:
    """Runs the plan in consecutive batches of ``concurrency_limit`` parts.

    A batch is started only after the previous one settled, including the
    sequential retries of its failed parts. Results live in a list indexed by
    ``part_number - 1`` so completion order does not matter.
    """

    def __init__(
        self,
        plan: UploadPlan,
        attempt: PartAttempt,
        retry_policy: RetryPolicy,
        progress: Optional[ProgressTracker] = None,
        on_part_complete: Optional[PartCompleteCallback] = None,
        is_cancelled: Callable[[], bool] = lambda: False,
    ):
        self.plan = plan
        self.attempt = attempt
        self.retry_policy = retry_policy
        self.progress = progress or ProgressTracker(plan.total_parts)
        self.on_part_complete = on_part_complete
        self.is_cancelled = is_cancelled
        self.results: List[PartResult] = [
            PartResult(part_number=chunk.part_number) for chunk in plan.chunks
        ]
        self.in_flight = 0
        self.peak_in_flight = 0

    def batches(self) -> List[List[Chunk]]:
        size = self.plan.concurrency_limit
        chunks = self.plan.chunks
        return [chunks[i:i + size] for i in range(0, len(chunks), size)]

    async def run(self) -> List[PartResult]:
        batches = self.batches()
        for batch_no, batch in enumerate(batches, start=1):
            if self.is_cancelled():
                logger.info("Upload cancelled, no further batches submitted", extra={"batch": batch_no})
                break

            logger.debug(
                "Processing batch",
                extra={"batch": batch_no, "batches": len(batches), "parts": len(batch)},
            )
            outcomes = await asyncio.gather(
                *(self._first_attempt(chunk) for chunk in batch), return_exceptions=True
            )
            # anything that is not an UploadError is a local fault, not a part failure
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

            failed = [c for c in batch if self.results[c.index].status == PartStatus.FAILED]
            if failed:
                logger.info(
                    "Parts failed in batch, retrying",
                    extra={"batch": batch_no, "failed": [c.part_number for c in failed]},
                )
            for chunk in failed:
                result = await self.retry_policy.retry(
                    chunk,
                    self.results[chunk.index],
                    self._tracked_attempt,
                    on_progress=self.progress.for_part(chunk.index),
                    is_cancelled=self.is_cancelled,
                )
                if result.succeeded:
                    self._part_done(chunk)

        return self.results

    def failed_parts(self) -> List[int]:
        return [r.part_number for r in self.results if not r.succeeded]

    async def _first_attempt(self, chunk: Chunk) -> None:
        result = self.results[chunk.index]
        result.attempt_count += 1
        result.status = PartStatus.UPLOADING
        try:
            etag = await self._tracked_attempt(chunk, self.progress.for_part(chunk.index))
        except UploadError as e:
            result.status = PartStatus.FAILED
            result.error = e
            logger.warning(
                "Error uploading part",
                extra={"part_number": chunk.part_number, "error": str(e)},
            )
            return

        result.etag = etag
        result.status = PartStatus.SUCCEEDED
        self._part_done(chunk)

    async def _tracked_attempt(self, chunk: Chunk, on_progress) -> str:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            return await self.attempt(chunk, on_progress)
        finally:
            self.in_flight -= 1

    def _part_done(self, chunk: Chunk) -> None:
        logger.debug("Part uploaded", extra={"part_number": chunk.part_number})
        if self.on_part_complete:
            self.on_part_complete(chunk.part_number, self.plan.total_parts)
