from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from upload_client.exceptions import SessionStateError


class SessionStatus(str, Enum):
    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.ABORTED, SessionStatus.FAILED}
)

SESSION_TRANSITIONS = {
    SessionStatus.INITIATED: {SessionStatus.IN_PROGRESS},
    SessionStatus.IN_PROGRESS: {
        SessionStatus.COMPLETING,
        SessionStatus.FAILED,
        SessionStatus.ABORTING,
    },
    SessionStatus.COMPLETING: {
        SessionStatus.COMPLETED,
        SessionStatus.FAILED,
        SessionStatus.ABORTING,
    },
    SessionStatus.FAILED: {SessionStatus.ABORTING},
    SessionStatus.ABORTING: {SessionStatus.ABORTED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.ABORTED: set(),
}


class PartStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Chunk:
    index: int
    offset: int
    length: int

    @property
    def part_number(self) -> int:
        return self.index + 1

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class PartResult:
    part_number: int
    etag: Optional[str] = None
    status: PartStatus = PartStatus.PENDING
    attempt_count: int = 0
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PartStatus.SUCCEEDED and bool(self.etag)


@dataclass(frozen=True)
class UploadPlan:
    chunks: List[Chunk]
    concurrency_limit: int
    retry_budget: int

    @property
    def total_parts(self) -> int:
        return len(self.chunks)


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str

    def to_manifest(self) -> dict:
        return {"ETag": self.etag, "PartNumber": self.part_number}


@dataclass
class UploadSession:
    upload_id: str
    key: str
    file_name: str
    content_type: str
    status: SessionStatus = SessionStatus.INITIATED
    location: Optional[str] = None
    abort_issued: bool = False
    history: List[SessionStatus] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition(self, status: SessionStatus) -> bool:
        return status in SESSION_TRANSITIONS[self.status]

    def transition_to(self, status: SessionStatus) -> None:
        if not self.can_transition(status):
            raise SessionStateError(
                f"Upload {self.upload_id} cannot move from {self.status.value} to {status.value}"
            )
        self.history.append(self.status)
        self.status = status
