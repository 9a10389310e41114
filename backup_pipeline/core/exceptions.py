"""
Exception hierarchy for the backup pipeline.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class BackupPipelineException(Exception):
    """Base exception for all backup pipeline errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging

        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UnsupportedKindError(BackupPipelineException):
    """Raised when no dump strategy exists for a database kind."""

    def __init__(self, kind: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize unsupported kind error.

        Args:
            kind: Database kind that was requested
            details: Additional context
        """
        details = details or {}
        details["kind"] = kind
        self.kind = kind
        super().__init__(f"Unsupported database type: {kind}", details)


class SpawnFailureError(BackupPipelineException):
    """Raised when the dump tool cannot be launched."""

    def __init__(
        self,
        message: str,
        executable: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize spawn failure error.

        Args:
            message: Error message
            executable: Executable that failed to start
            details: Additional context
        """
        details = details or {}
        if executable:
            details["executable"] = executable
        super().__init__(message, details)


class DumpProcessError(BackupPipelineException):
    """Raised when the dump tool exits with a non-zero code."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize dump process error.

        Args:
            message: Error message, usually the captured stderr tail
            exit_code: Process exit code
            details: Additional context
        """
        details = details or {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        self.exit_code = exit_code
        super().__init__(message, details)


class UploadError(BackupPipelineException):
    """Raised when the object storage transfer fails."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize upload error.

        Args:
            message: Underlying transport error message
            key: Destination object key
            details: Additional context
        """
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(message, details)


class StreamAbortedError(BackupPipelineException):
    """Raised to a stream consumer when the producer abandons the stream."""

    pass


class JobNotFoundError(BackupPipelineException):
    """Raised when a job record cannot be found."""

    def __init__(self, job_id: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize job not found error.

        Args:
            job_id: ID of the missing job
            details: Additional context
        """
        details = details or {}
        details["job_id"] = job_id
        super().__init__(f"Job not found: {job_id}", details)


class InvalidTransitionError(BackupPipelineException):
    """Raised when a status change is not an edge of the job state machine."""

    def __init__(
        self,
        job_id: str,
        current: str,
        requested: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize invalid transition error.

        Args:
            job_id: ID of the job
            current: Current status
            requested: Requested status
            details: Additional context
        """
        details = details or {}
        details.update({"job_id": job_id, "current": current, "requested": requested})
        super().__init__(f"Cannot move job from {current} to {requested}", details)


class InvalidCronSpecError(BackupPipelineException):
    """Raised when a recurrence expression cannot be parsed."""

    def __init__(
        self,
        cron_spec: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize invalid cron error.

        Args:
            cron_spec: Rejected expression
            reason: Parser message
            details: Additional context
        """
        details = details or {}
        details["cron_spec"] = cron_spec
        message = f"Invalid cron expression: {cron_spec!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details)
