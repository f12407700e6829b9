"""In-memory job registry. Records are replaced whole on every update."""

import uuid
from typing import Dict, Optional

from chatlens.errors import JobNotFoundError, JobStateError
from chatlens.models import AnalysisJob, TERMINAL_STATUSES


class JobStore:
    def __init__(self):
        self._jobs: Dict[str, AnalysisJob] = {}

    def create(self, file_name: str, file_size: int = 0, user_purpose: Optional[str] = None,
               primary_relationship: Optional[str] = None) -> AnalysisJob:
        job = AnalysisJob(
            id=str(uuid.uuid4()),
            file_name=file_name,
            file_size=file_size,
            user_purpose=user_purpose,
            primary_relationship=primary_relationship,
        )
        self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[AnalysisJob]:
        return self._jobs.get(job_id)

    def require(self, job_id: str) -> AnalysisJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def update(self, job_id: str, **fields) -> AnalysisJob:
        """
        Replace the record with a copy carrying `fields` (snake_case names).

        Raises:
            JobNotFoundError: unknown id
            JobStateError: the job already completed or failed
        """
        job = self.require(job_id)
        if job.status in TERMINAL_STATUSES:
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        unknown = set(fields) - set(AnalysisJob.model_fields)
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        updated = job.model_copy(update=fields)
        self._jobs[job_id] = updated
        return updated
