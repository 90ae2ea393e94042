# In src/presigned_url_refresher/schemas.py

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal, TypedDict

from pydantic import BaseModel, ConfigDict, Field

# A deserialized DynamoDB item. Records are schemaless apart from the handful
# of attributes this job reads and writes.
Item = dict[str, Any]

# --- Record attribute names (shared with the producers of the table) ---
OBJECT_KEY_ATTR = "objectKey"
PRESIGNED_URL_ATTR = "presignedUrl"
PRESIGNED_URL_TIMESTAMP_ATTR = "presignedUrlTimestamp"
IMAGE_NAME_ATTR = "imageName"
SELECTION_ID_ATTR = "selectionId"
ID_ATTR = "id"


# --- Static Type Hinting (for mypy and IDEs) ---


class SuccessResponseBody(TypedDict):
    message: str
    processedCount: int
    successCount: int
    errorCount: int
    duration: int


class ErrorResponseBody(TypedDict):
    message: str
    processedCount: int
    successCount: int
    errorCount: int
    error: str


class HandlerResponse(TypedDict):
    """The Lambda invocation result. `body` is the JSON-encoded response body."""

    statusCode: int
    body: str


# --- Per-record and per-page results ---


class FailureReason(str, Enum):
    NO_PRESIGNED_URL = "no_presigned_url"
    UNRESOLVABLE_KEY = "unresolvable_key"
    UPDATE_FAILED = "update_failed"
    UNEXPECTED_ERROR = "unexpected_error"
    SCAN_THROTTLED = "scan_throttled"


@dataclass(frozen=True, slots=True)
class UpdateOutcome:
    """Result of refreshing a single record."""

    success: bool
    reason: FailureReason | None = None
    error: str | None = None

    @classmethod
    def ok(cls) -> "UpdateOutcome":
        return cls(success=True)

    @classmethod
    def failure(cls, reason: FailureReason, error: str) -> "UpdateOutcome":
        return cls(success=False, reason=reason, error=error)


@dataclass(frozen=True, slots=True)
class BatchResult:
    success_count: int
    error_count: int
    failure_reasons: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.success_count + self.error_count


@dataclass(frozen=True, slots=True)
class ScanPage:
    """One page of a DynamoDB scan. `last_evaluated_key` is None on the last page."""

    items: list[Item]
    last_evaluated_key: Item | None = None


@dataclass(slots=True)
class ScanStats:
    """Running counters for one invocation, owned by the scan driver."""

    processed_count: int = 0
    success_count: int = 0
    error_count: int = 0
    pages: int = 0
    throttle_count: int = 0
    failure_reasons: Counter = field(default_factory=Counter)

    def add_batch(self, result: BatchResult) -> None:
        self.pages += 1
        self.processed_count += result.total
        self.success_count += result.success_count
        self.error_count += result.error_count
        self.failure_reasons.update(result.failure_reasons)

    def add_throttle(self) -> None:
        self.throttle_count += 1
        self.error_count += 1
        self.failure_reasons[FailureReason.SCAN_THROTTLED.value] += 1


# --- Runtime Validation (using Pydantic) ---


class JobSummary(BaseModel):
    """
    Immutable end-of-run report, built once per invocation on both the
    success and failure paths and handed to the notifier.
    """

    model_config = ConfigDict(frozen=True)

    processed_count: int = Field(..., ge=0)
    success_count: int = Field(..., ge=0)
    error_count: int = Field(..., ge=0)
    duration_ms: int = Field(..., ge=0)
    start_time: datetime
    table_name: str
    bucket_name: str
    expiration_days: int
    status: Literal["success", "failed"]
    error: str | None = None
    failure_reasons: dict[str, int] = Field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.processed_count <= 0:
            return 0.0
        return self.success_count / self.processed_count * 100
