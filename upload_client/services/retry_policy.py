import asyncio
import logging
from typing import Awaitable, Callable, Optional

from upload_client.exceptions import UploadError
from upload_client.models.upload_models import Chunk, PartResult, PartStatus

logger = logging.getLogger(__name__)

PartAttempt = Callable[[Chunk, Optional[Callable[[float], None]]], Awaitable[str]]


class RetryPolicy:
    """Re-sends a failed part up to ``retry_budget`` more times, one attempt at a time.

    Every attempt goes through ``attempt`` from scratch: a new credential is
    requested and the whole chunk is sent again.
    """

    def __init__(
        self,
        retry_budget: int = 3,
        retry_delay: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.retry_budget = retry_budget
        self.retry_delay = retry_delay
        self.sleep = sleep

    async def retry(
        self,
        chunk: Chunk,
        result: PartResult,
        attempt: PartAttempt,
        on_progress: Optional[Callable[[float], None]] = None,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> PartResult:
        for retry_no in range(1, self.retry_budget + 1):
            if is_cancelled():
                return result
            if self.retry_delay:
                await self.sleep(self.retry_delay * retry_no)

            result.attempt_count += 1
            result.status = PartStatus.UPLOADING
            logger.info(
                "Retrying part",
                extra={"part_number": result.part_number, "attempt": result.attempt_count},
            )
            try:
                etag = await attempt(chunk, on_progress)
            except UploadError as e:
                result.status = PartStatus.FAILED
                result.error = e
                logger.warning(
                    "Retry failed for part",
                    extra={
                        "part_number": result.part_number,
                        "attempt": result.attempt_count,
                        "error": str(e),
                    },
                )
                continue

            result.etag = etag
            result.status = PartStatus.SUCCEEDED
            result.error = None
            return result

        logger.error(
            "All retries failed for part",
            extra={"part_number": result.part_number, "attempts": result.attempt_count},
        )
        return result
