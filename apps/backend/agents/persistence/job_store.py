from typing import Any, Dict, Optional

from agents import config
from agents.persistence.record_store import RecordStore, build_record_store
from models.job import GenerationJob


class JobStore:
    """Generation jobs, kept apart from the presentations they update."""

    def __init__(self, records: Optional[RecordStore] = None):
        self.records = records or build_record_store(config.JOBS_TABLE)

    async def create(self, job: GenerationJob) -> GenerationJob:
        row = await self.records.create(job.model_dump(mode="json"))
        return GenerationJob.model_validate(row)

    async def get(self, job_id: str) -> Optional[GenerationJob]:
        row = await self.records.get(job_id)
        return GenerationJob.model_validate(row) if row else None

    async def update(self, job_id: str, changes: Dict[str, Any]) -> Optional[GenerationJob]:
        row = await self.records.update(job_id, changes)
        return GenerationJob.model_validate(row) if row else None
