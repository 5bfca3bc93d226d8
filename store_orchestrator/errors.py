"""
Error taxonomy for store provisioning.

Every lifecycle error carries an ErrorKind so the queue and the HTTP layer
branch on the kind, never on message text:

  - FATAL:    aborts the remaining phases of the task
  - DEGRADED: reported, but the store can still reach Ready
  - REJECTED: the task never started (admission control)
"""
from enum import Enum
from typing import Optional, Sequence


class ErrorKind(str, Enum):
    FATAL = "fatal"
    DEGRADED = "degraded"
    REJECTED = "rejected"


class CommandError(RuntimeError):
    """An external command (helm, in-pod exec) exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command '{' '.join(self.command)}' failed (rc={returncode}): {stderr[:500]}"
        )


class StoreError(Exception):
    kind = ErrorKind.FATAL

    def __init__(self, message: str, store_id: Optional[str] = None):
        super().__init__(message)
        self.store_id = store_id


# --- Fatal-to-task ---

class DeployError(StoreError):
    pass


class PodReadinessTimeout(StoreError):
    def __init__(self, store_id: Optional[str] = None):
        super().__init__("Pod timeout", store_id)


class PublicAddressTimeout(StoreError):
    def __init__(self, store_id: Optional[str] = None):
        super().__init__("GCP never gave us an IP.", store_id)


class DatabaseNotReady(StoreError):
    def __init__(self, store_id: Optional[str] = None):
        super().__init__("Database never woke up.", store_id)


class BootstrapStepFailed(StoreError):
    def __init__(self, step: str, cause: Exception, store_id: Optional[str] = None):
        super().__init__(f"Content bootstrap step '{step}' failed: {cause}", store_id)
        self.step = step


# --- Degraded, non-fatal ---

class FinalizeError(StoreError):
    kind = ErrorKind.DEGRADED


# --- Admission ---

class QuotaExceeded(StoreError):
    kind = ErrorKind.REJECTED

    def __init__(self, limit: int, store_id: Optional[str] = None):
        super().__init__(f"Quota exceeded. Max {limit} stores allowed.", store_id)
        self.limit = limit
