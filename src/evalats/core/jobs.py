from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from evalats.db.models import Job
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError

JOB_TYPES = {"full-time", "part-time", "contract"}
JOB_STATUSES = {"active", "paused", "closed"}
URGENCY_LEVELS = {"high", "medium", "low"}


def serialize_job(job: Job) -> dict[str, Any]:
    return {
        "id": job.id,
        "title": job.title,
        "department": job.department,
        "location": job.location,
        "type": job.type,
        "description": job.description,
        "requirements": list(job.requirements_json or []),
        "status": job.status,
        "urgency": job.urgency,
        "salary": {"min": job.salary_min, "max": job.salary_max},
        "posted_date": job.posted_date.isoformat() if job.posted_date else None,
        "applicant_count": job.applicant_count,
    }


class JobService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = Repository(session)

    def create(
        self,
        *,
        title: str,
        department: str,
        location: str,
        job_type: str = "full-time",
        description: str = "",
        requirements: list[str] | None = None,
        urgency: str = "medium",
        salary_min: int | None = None,
        salary_max: int | None = None,
    ) -> Job:
        if not title.strip():
            raise DomainValidationError("Job title is required")
        if job_type not in JOB_TYPES:
            raise DomainValidationError(f"Job type must be one of {sorted(JOB_TYPES)}")
        if urgency not in URGENCY_LEVELS:
            raise DomainValidationError(f"Urgency must be one of {sorted(URGENCY_LEVELS)}")
        if salary_min is not None and salary_max is not None and salary_min > salary_max:
            raise DomainValidationError("salary_min cannot exceed salary_max")

        with transaction(self.session):
            job = self.repo.add(
                Job(
                    title=title.strip(),
                    department=department,
                    location=location,
                    type=job_type,
                    description=description,
                    requirements_json=[item.strip() for item in requirements or [] if item.strip()],
                    status="active",
                    urgency=urgency,
                    salary_min=salary_min,
                    salary_max=salary_max,
                )
            )
        return job

    def list_jobs(self, status: str | None = None, search: str | None = None) -> list[dict[str, Any]]:
        return [serialize_job(job) for job in self.repo.list_jobs(status=status, search=search)]

    def get_with_applicants(self, job_id: int) -> dict[str, Any]:
        job = self.repo.require(Job, job_id, "Job")
        payload = serialize_job(job)
        applicants = []
        for application in self.repo.list_applications_for_job(job.id):
            candidate = self.repo.get_candidate(application.candidate_id)
            if candidate is None:
                continue
            applicants.append(
                {
                    "application_id": application.id,
                    "candidate_id": candidate.id,
                    "name": candidate.name,
                    "status": candidate.status,
                    "application_status": application.status,
                    "applied_date": application.applied_date.isoformat(),
                }
            )
        payload["applicants"] = applicants
        return payload

    def update_status(self, job_id: int, status: str) -> Job:
        if status not in JOB_STATUSES:
            raise DomainValidationError(f"Job status must be one of {sorted(JOB_STATUSES)}")
        with transaction(self.session):
            job = self.repo.require(Job, job_id, "Job")
            job.status = status
        return job
