"""Error kinds raised by the synthesis broker.

Every failure the broker surfaces is a BrokerError subclass tagged with an
ErrorCode, so callers can branch on the kind without string matching.

Typical usage:
    try:
        path = await broker.synthesize(request)
    except SynthesisExhausted as e:
        logger.error("Giving up: %s", e.last_error)
"""

import re
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Machine-readable error kinds."""

    ADMISSION_REJECTED = "TOO_MANY_PROCESSES"
    PROCESS_TIMEOUT = "PROCESS_TIMEOUT"
    PROCESS_FAILED = "PROCESS_FAILED"
    SPAWN_FAILED = "SPAWN_FAILED"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    ARTIFACT_MISSING = "TEMP_FILE_ERROR"
    QUEUE_CLEARED = "QUEUE_CLEARED"
    METADATA_FETCH_FAILED = "METADATA_FETCH_FAILED"
    INVALID_NARRATOR = "INVALID_NARRATOR"


class BrokerError(Exception):
    """Base class for all broker errors.

    Attributes:
        code: Error kind.
        details: Optional structured context for logs.
    """

    code = ErrorCode.PROCESS_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class AdmissionRejected(BrokerError):
    """Process cap reached; the spawn was refused, not queued."""

    code = ErrorCode.ADMISSION_REJECTED

    def __init__(self, max_concurrent: int) -> None:
        super().__init__(
            f"Too many concurrent processes (max {max_concurrent})",
            {"max_concurrent": max_concurrent},
        )
        self.max_concurrent = max_concurrent


class ProcessTimeout(BrokerError):
    """Process was terminated by its own timeout."""

    code = ErrorCode.PROCESS_TIMEOUT

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Process timeout after {timeout:g}s", {"timeout": timeout})
        self.timeout = timeout


class ProcessFailed(BrokerError):
    """Process exited with a nonzero status."""

    code = ErrorCode.PROCESS_FAILED

    def __init__(self, exit_code: int | None, stderr: str) -> None:
        super().__init__(
            f"Process exited with code {exit_code}: {stderr}",
            {"exit_code": exit_code, "stderr": stderr},
        )
        self.exit_code = exit_code
        self.stderr = stderr


class ProcessSpawnFailed(BrokerError):
    """Executable could not be started at all (missing, not permitted)."""

    code = ErrorCode.SPAWN_FAILED

    def __init__(self, executable: str, cause: OSError) -> None:
        super().__init__(
            f"Failed to spawn process {executable}: {cause}",
            {"executable": executable},
        )
        self.executable = executable


class SynthesisExhausted(BrokerError):
    """Every attempt allowed by the retry policy failed."""

    code = ErrorCode.SYNTHESIS_FAILED

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Failed to synthesize after {attempts} attempts: {last_error}",
            {"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class ArtifactMissing(BrokerError):
    """Expected output file is absent or not a regular file."""

    code = ErrorCode.ARTIFACT_MISSING

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{reason}: {path}", {"path": path})
        self.path = path


class QueueCancelled(BrokerError):
    """Pending job discarded by an explicit queue clear."""

    code = ErrorCode.QUEUE_CLEARED

    def __init__(self) -> None:
        super().__init__("Queue cleared")


class MetadataFetchFailed(BrokerError):
    """Narrator list could not be fetched from the engine."""

    code = ErrorCode.METADATA_FETCH_FAILED


class UnknownNarrator(BrokerError):
    """Narrator name is not in the engine's narrator list."""

    code = ErrorCode.INVALID_NARRATOR

    def __init__(self, narrator: str) -> None:
        super().__init__(f"Invalid narrator: {narrator}", {"narrator": narrator})
        self.narrator = narrator


_PATH_PATTERN = re.compile(r"/[^\s]+")
MAX_MESSAGE_LENGTH = 200


def describe_error(error: BaseException) -> str:
    """Render an error for display to an end user.

    Broker errors keep their message and are prefixed with the error code.
    Anything else is treated as internal: filesystem paths are masked and the
    message is truncated.
    """
    if isinstance(error, BrokerError):
        return f"Error [{error.code.value}]: {error}"

    message = _PATH_PATTERN.sub("[path]", str(error))[:MAX_MESSAGE_LENGTH]
    if not message:
        return "An unexpected error occurred. Please try again."
    return f"Error: {message}"
