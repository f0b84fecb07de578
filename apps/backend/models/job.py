from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.draft import utc_now


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationJob(BaseModel):
    """Background slide-generation job, persisted apart from its presentation."""
    id: str
    presentation_id: str
    user_id: str
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    max_attempts: int = 1
    error: Optional[str] = None
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
