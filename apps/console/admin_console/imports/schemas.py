"""Pydantic schemas for the import endpoints of the admin API."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class ImportType(str, Enum):
    """CSV sources the import endpoints accept."""

    RAKKO_KEYWORDS = "rakko_keywords"
    SIMILARWEB = "similarweb"


class JobStatus(str, Enum):
    """Lifecycle of a remote import job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})
TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class JobStep(str, Enum):
    """Worker steps, declared in execution order."""

    PARSE = "parse"
    DB_LOOKUP = "db_lookup"
    RULE_CLASSIFICATION = "rule_classification"
    AI_CLASSIFICATION = "ai_classification"
    DB_INSERT = "db_insert"
    FINALIZE = "finalize"

    @property
    def position(self) -> int:
        return list(JobStep).index(self)


class JobAction(str, Enum):
    CANCEL = "cancel"
    RETRY = "retry"


class IntentCategory(str, Enum):
    """Keyword intent labels produced by classification."""

    BRANDED = "branded"
    TRANSACTIONAL = "transactional"
    COMMERCIAL = "commercial"
    INFORMATIONAL = "informational"
    B2B = "b2b"
    UNKNOWN = "unknown"


INTENT_FILTER_ALL = "all"


@dataclass
class SelectedFile:
    """A file picked for import, held in memory until submitted."""

    name: str
    content: bytes
    content_type: str = "text/csv"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path) -> "SelectedFile":
        path = Path(path)
        if path.suffix.lower() == ".csv":
            content_type = "text/csv"
        else:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content=path.read_bytes(), content_type=content_type)

    def as_upload(self) -> tuple[str, bytes, str]:
        """Tuple accepted by httpx ``files=``."""
        return (self.name, self.content, self.content_type)


class ClassificationStats(BaseModel):
    """Breakdown of how a completed job classified its keywords."""

    db_existing: int = 0
    rule_classified: int = 0
    ai_classified: int = 0
    verified_skipped: int = 0
    total_input: int = 0
    unique_keywords: int = 0
    duplicate_keywords: int = 0
    skipped_by_threshold: int = 0

    model_config = {"extra": "allow"}


class ErrorDetails(BaseModel):
    """Sub-errors recorded by the worker (bounded lists)."""

    insert_errors: list[Any] = Field(default_factory=list, alias="insertErrors")
    parse_errors: list[Any] = Field(default_factory=list, alias="parseErrors")
    duplicate_info: Optional[str] = Field(default=None, alias="duplicateInfo")

    model_config = {"populate_by_name": True, "extra": "allow"}


class ImportJob(BaseModel):
    """Snapshot of a remote import job."""

    id: str
    status: JobStatus
    file_name: Optional[str] = None
    import_type: Optional[str] = None
    media_id: Optional[str] = None
    total_rows: Optional[int] = None
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    current_step: Optional[str] = None
    intent_summary: Optional[dict[str, int]] = None
    classification_stats: Optional[ClassificationStats] = None
    error_message: Optional[str] = None
    error_details: Optional[ErrorDetails] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    @field_validator("current_step")
    @classmethod
    def _flag_unknown_step(cls, value: Optional[str]) -> Optional[str]:
        # Unknown steps are kept as-is for display but reported as drift
        if value is not None and value not in JobStep._value2member_map_:
            logger.warning(
                f"Schema drift: unknown import job step {value!r}",
                extra={"current_step": value},
            )
        return value

    @field_validator("processed_rows", "success_count", "error_count", mode="before")
    @classmethod
    def _null_counter_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def can_cancel(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def can_retry(self) -> bool:
        return self.status in (JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def step(self) -> Optional[JobStep]:
        """Known step, or None when unset or unrecognised."""
        if self.current_step is None:
            return None
        return JobStep._value2member_map_.get(self.current_step)  # type: ignore[return-value]

    @property
    def progress(self) -> Optional[float]:
        """Fraction of rows processed, once the total is known."""
        if not self.total_rows:
            return None
        return min(self.processed_rows / self.total_rows, 1.0)


class JobList(BaseModel):
    jobs: list[ImportJob] = Field(default_factory=list)
    total: int = 0


class JobCreated(BaseModel):
    job_id: str = Field(..., alias="jobId")
    status: Optional[str] = JobStatus.PENDING.value

    model_config = {"populate_by_name": True}


class PreviewRow(BaseModel):
    """One parsed CSV row from the validate endpoint."""

    keyword: str
    search_volume: Optional[float] = Field(default=None, alias="searchVolume")
    cpc: Optional[float] = None
    competition: Optional[float] = None
    seo_difficulty: Optional[float] = Field(default=None, alias="seoDifficulty")
    search_rank: Optional[float] = Field(default=None, alias="searchRank")
    estimated_traffic: Optional[float] = Field(default=None, alias="estimatedTraffic")
    url: Optional[str] = None

    model_config = {"populate_by_name": True}


class DetectedMedia(BaseModel):
    id: str
    name: str
    domain: Optional[str] = None


class ValidationResult(BaseModel):
    """Parsed preview of an uploaded file."""

    preview_rows: list[PreviewRow] = Field(default_factory=list, alias="previewRows")
    total_rows: int = Field(..., alias="totalRows")
    columns: list[str] = Field(default_factory=list)
    detected_media: Optional[DetectedMedia] = Field(default=None, alias="detectedMedia")
    detected_domain: Optional[str] = Field(default=None, alias="detectedDomain")

    model_config = {"populate_by_name": True}


class ClassificationItem(BaseModel):
    keyword: str
    intent: str = IntentCategory.UNKNOWN.value
    intent_reason: str = ""
    search_volume: Optional[float] = None

    @field_validator("intent", "intent_reason", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info) -> Any:
        if value is None:
            return IntentCategory.UNKNOWN.value if info.field_name == "intent" else ""
        return value


class ClassificationPage(BaseModel):
    items: list[ClassificationItem] = Field(default_factory=list)
    total: int = 0


class MediaOption(BaseModel):
    """Selectable target entity for a job."""

    id: str
    name: str

    model_config = {"extra": "ignore"}
