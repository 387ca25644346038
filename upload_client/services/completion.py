import logging
from typing import List, Optional, Sequence

from upload_client.exceptions import (
    AbortError,
    FinalizeError,
    PartSetIncompleteError,
    UploadAbortedError,
    UploadError,
)
from upload_client.models.upload_models import (
    CompletedPart,
    PartResult,
    SessionStatus,
    UploadSession,
)
from upload_client.services.api_client import UploadApiClient
from upload_client.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


def build_manifest(results: Sequence[PartResult], total_parts: int) -> List[CompletedPart]:
    """Check the part set locally and return it sorted for the complete call.

    The set must be exactly ``{1..total_parts}``, each part succeeded with a
    real ETag and none repeated; anything else raises
    ``PartSetIncompleteError`` naming the parts at fault.
    """
    by_number = {}
    bad_parts = set()
    for result in results:
        if result.part_number in by_number:
            bad_parts.add(result.part_number)
            continue
        by_number[result.part_number] = result
        if not result.succeeded:
            bad_parts.add(result.part_number)

    expected = set(range(1, total_parts + 1))
    bad_parts |= expected - set(by_number)
    bad_parts |= set(by_number) - expected

    if bad_parts or len(results) != total_parts:
        raise PartSetIncompleteError(failed_parts=sorted(bad_parts))

    return [
        CompletedPart(part_number=number, etag=by_number[number].etag)
        for number in sorted(by_number)
    ]


class CompletionCoordinator:
    """Finalizes a session once, or aborts it on the store when it cannot be finalized."""

    def __init__(self, api: UploadApiClient):
        self.api = api

    async def finalize(
        self,
        session: UploadSession,
        results: Sequence[PartResult],
        total_parts: int,
        progress: ProgressTracker,
    ) -> Optional[str]:
        session.transition_to(SessionStatus.COMPLETING)

        try:
            parts = build_manifest(results, total_parts)
        except PartSetIncompleteError as e:
            logger.error(
                "Part set incomplete, aborting upload",
                extra={"upload_id": session.upload_id, "failed_parts": e.failed_parts},
            )
            session.transition_to(SessionStatus.FAILED)
            await self.abort(session)
            raise PartSetIncompleteError(failed_parts=e.failed_parts, progress=progress.percent) from e

        logger.info(
            "Completing upload",
            extra={"upload_id": session.upload_id, "key": session.key, "parts": len(parts)},
        )
        try:
            location = await self.api.complete_upload(session.key, session.upload_id, parts)
        except UploadError as e:
            if session.abort_issued:
                raise UploadAbortedError(f"Upload {session.upload_id} was aborted") from e
            logger.error(
                "Failed to complete upload",
                extra={"upload_id": session.upload_id, "error": str(e)},
            )
            session.transition_to(SessionStatus.FAILED)
            await self.abort(session)
            detail = e.args[0] if e.args else type(e).__name__
            raise FinalizeError(f"{FinalizeError.reason}: {detail}", progress=progress.percent) from e

        if session.abort_issued:
            # aborted by the caller while the complete call was in flight
            raise UploadAbortedError(f"Upload {session.upload_id} was aborted")

        session.location = location
        session.transition_to(SessionStatus.COMPLETED)
        progress.finish()
        logger.info("Upload completed", extra={"upload_id": session.upload_id, "location": location})
        return location

    async def abort(self, session: UploadSession, raise_on_error: bool = False) -> None:
        """Issue the store abort for a session, at most once.

        With ``raise_on_error`` unset the abort is best-effort cleanup: its
        failure is logged and the session stays failed.
        """
        if session.abort_issued:
            return
        session.abort_issued = True
        session.transition_to(SessionStatus.ABORTING)
        try:
            await self.api.abort_upload(session.key, session.upload_id)
        except AbortError:
            logger.exception("Failed to abort upload", extra={"upload_id": session.upload_id})
            session.transition_to(SessionStatus.FAILED)
            if raise_on_error:
                raise
            return

        session.transition_to(SessionStatus.ABORTED)
        logger.info("Upload aborted", extra={"upload_id": session.upload_id, "key": session.key})
