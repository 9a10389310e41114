"""
Progress event schemas for backup streaming.

Defines status tags and payloads pushed to the requester while a backup
runs.

Dependencies: pydantic
System role: Progress stream protocol schemas
"""

import json
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ProgressStatus(str, Enum):
    """Status tags carried by progress events."""

    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


TERMINAL_PROGRESS = frozenset(
    {ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.CANCELLED}
)


class ProgressEvent(BaseModel):
    """
    One progress message.

    Attributes:
        job_id: Job the event belongs to (None for stream-level events)
        message: Human-readable line, e.g. a dump tool diagnostic
        status: Optional status tag
    """

    job_id: uuid.UUID | None = None
    message: str | None = None
    status: ProgressStatus | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PROGRESS

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary, omitting unset fields."""
        data: dict[str, Any] = {}
        if self.job_id is not None:
            data["jobId"] = str(self.job_id)
        if self.message is not None:
            data["message"] = self.message
        if self.status is not None:
            data["status"] = self.status.value
        return data

    def to_sse(self) -> str:
        """Encode as a server-sent event frame."""
        return f"data: {json.dumps(self.to_dict())}\n\n"
