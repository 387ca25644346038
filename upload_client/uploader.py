import asyncio
import logging
import os
from typing import Callable, Optional, Union

from upload_client.config import UploadConfig
from upload_client.exceptions import UploadAbortedError, ValidationError
from upload_client.models.upload_models import (
    Chunk,
    SessionStatus,
    UploadPlan,
    UploadSession,
)
from upload_client.services.api_client import UploadApiClient
from upload_client.services.chunker import plan_chunks
from upload_client.services.completion import CompletionCoordinator
from upload_client.services.part_uploader import PartUploader
from upload_client.services.progress import ProgressTracker
from upload_client.services.retry_policy import RetryPolicy
from upload_client.services.scheduler import ConcurrencyScheduler, PartCompleteCallback

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def read_chunk(path: PathLike, chunk: Chunk) -> bytes:
    with open(path, "rb") as f:
        f.seek(chunk.offset)
        data = f.read(chunk.length)
    if len(data) != chunk.length:
        raise ValidationError(
            f"File changed while uploading: part {chunk.part_number} expected "
            f"{chunk.length} bytes, read {len(data)}"
        )
    return data


class MultipartUploader:
    """Uploads one file to the object store as a multipart upload.

    The file is planned into chunks before anything touches the network, parts
    are sent in batches of ``config.concurrency_limit`` with per-part retries,
    and the upload is finalized only when every part is present. Any session
    that cannot be finalized is aborted on the store.

    Usage::

        async with MultipartUploader(UploadConfig()) as uploader:
            location = await uploader.upload_file("video.mp4", on_progress=print)
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        api: Optional[UploadApiClient] = None,
        part_uploader: Optional[PartUploader] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config or UploadConfig()
        self.api = api or UploadApiClient(self.config)
        self.part_uploader = part_uploader or PartUploader(timeout=self.config.part_timeout)
        self.retry_policy = retry_policy or RetryPolicy(
            retry_budget=self.config.retry_budget, retry_delay=self.config.retry_delay
        )
        self.coordinator = CompletionCoordinator(self.api)
        self.session: Optional[UploadSession] = None
        self.progress: Optional[ProgressTracker] = None
        self._cancelled = asyncio.Event()

    async def __aenter__(self) -> "MultipartUploader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.part_uploader.aclose()
        await self.api.aclose()

    def plan(self, file_size: int) -> UploadPlan:
        chunks = plan_chunks(file_size, self.config.chunk_size, self.config.max_parts)
        if not chunks:
            raise ValidationError("Cannot upload an empty file")
        return UploadPlan(
            chunks=chunks,
            concurrency_limit=self.config.concurrency_limit,
            retry_budget=self.retry_policy.retry_budget,
        )

    async def upload_file(
        self,
        path: PathLike,
        content_type: Optional[str] = None,
        file_name: Optional[str] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        on_part_complete: Optional[PartCompleteCallback] = None,
    ) -> Optional[str]:
        """Upload ``path`` and return the location of the finalized object."""
        if self.session is not None:
            raise ValidationError("A MultipartUploader instance uploads a single file")

        file_name = file_name or os.path.basename(os.fspath(path))
        plan = self.plan(os.path.getsize(path))

        if self._cancelled.is_set():
            raise UploadAbortedError("Upload was aborted before it started")

        initiated = await self.api.initiate_upload(file_name, content_type)
        self.session = session = UploadSession(
            upload_id=initiated["upload_id"],
            key=initiated["key"],
            file_name=file_name,
            content_type=content_type or "",
        )
        logger.info(
            "Uploading file",
            extra={
                "upload_id": session.upload_id,
                "key": session.key,
                "parts": plan.total_parts,
                "concurrency_limit": plan.concurrency_limit,
                "retry_budget": plan.retry_budget,
            },
        )

        self.progress = progress = ProgressTracker(plan.total_parts, on_progress)
        session.transition_to(SessionStatus.IN_PROGRESS)

        async def attempt(chunk: Chunk, part_progress) -> str:
            url = await self.api.get_upload_credential(session.key, session.upload_id, chunk.part_number)
            data = await asyncio.to_thread(read_chunk, path, chunk)
            return await self.part_uploader.upload_chunk(url, data, part_progress)

        scheduler = ConcurrencyScheduler(
            plan,
            attempt,
            self.retry_policy,
            progress=progress,
            on_part_complete=on_part_complete,
            is_cancelled=self._cancelled.is_set,
        )
        try:
            results = await scheduler.run()
        except Exception:
            logger.exception("Upload interrupted", extra={"upload_id": session.upload_id})
            if not session.abort_issued:
                session.transition_to(SessionStatus.FAILED)
                await self.coordinator.abort(session)
            raise

        if self._cancelled.is_set():
            # no-op unless abort() ran while the session was being initiated
            await self.coordinator.abort(session)
            raise UploadAbortedError(f"Upload {session.upload_id} was aborted")

        return await self.coordinator.finalize(session, results, plan.total_parts, progress)

    async def abort(self) -> None:
        """Cancel the running upload and release it on the store.

        Parts already in flight are left to finish and their results are
        discarded. Calling this again, or after the session ended, does nothing.
        """
        self._cancelled.set()
        session = self.session
        if session is None or session.abort_issued or session.is_terminal:
            return
        if not session.can_transition(SessionStatus.ABORTING):
            return
        await self.coordinator.abort(session, raise_on_error=True)
