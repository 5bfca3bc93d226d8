"""
Pydantic models for API request/response validation, plus the small
internal records passed between the queue and the lifecycle controller.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field

_UNSAFE_ID_CHARS = re.compile(r"[^a-z0-9-]")


def normalize_store_id(store_name: str) -> str:
    """Lowercase the name and replace anything outside [a-z0-9-] with '-'."""
    return _UNSAFE_ID_CHARS.sub("-", store_name.lower())


class LogType(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class Phase(str, Enum):
    """Lifecycle phases, in execution order."""
    DEPLOY = "deploy"
    HARDEN = "harden"
    AWAIT_READY = "await_ready"
    AWAIT_ADDRESS = "await_address"
    CREDENTIALS = "credentials"
    BOOTSTRAP = "bootstrap"
    FINALIZE = "finalize"


class LogEntry(BaseModel):
    id: int
    timestamp: str
    type: LogType
    message: str
    storeId: Optional[str] = None


class StoreCreateRequest(BaseModel):
    """Request to provision a new store."""
    storeName: str = Field(
        ...,
        min_length=1,
        max_length=53,
        description="Display name; normalized into a cluster-safe store id",
        examples=["My Shop!", "demo-shop"],
    )


class StoreQueuedResponse(BaseModel):
    status: str
    storeId: str


class DomainLinkRequest(BaseModel):
    domain: str = Field(
        ...,
        min_length=1,
        max_length=63,
        pattern=r"^[A-Za-z0-9]([A-Za-z0-9.-]*[A-Za-z0-9])?$",
        examples=["shop.example.com"],
    )


class StoreSummary(BaseModel):
    """A Helm release enriched with its public URL."""
    name: str
    namespace: str = ""
    revision: str = ""
    status: str = ""
    chart: str = ""
    app_version: str = ""
    updated: str = ""
    accessUrl: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str


@dataclass
class StoreTask:
    store_id: str


@dataclass
class ExecResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""


@dataclass
class ProvisionOutcome:
    store_id: str
    succeeded: bool = False
    phases: List[Phase] = field(default_factory=list)
    public_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    degraded: List[Phase] = field(default_factory=list)
