"""Candidate pipeline status engine.

The only forward moves are the single steps in :data:`NEXT_STATUS`. Reject
and withdraw jump straight to their terminal status from any non-terminal
stage. Every successful move appends exactly one timeline entry whose type
is the new status.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy.orm import Session

from evalats.core.activity import ActivityLogger, ActorRef
from evalats.db.models import Application, Candidate, CandidateNote, Job, TimelineEntry
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, InvalidTransitionError
from evalats.types import Evaluation

logger = logging.getLogger(__name__)

PIPELINE_ORDER = ["applied", "screening", "interview", "offer", "hired"]
NEXT_STATUS = {
    "applied": "screening",
    "screening": "interview",
    "interview": "offer",
    "offer": "hired",
}
TERMINAL_STATUSES = frozenset({"hired", "rejected", "withdrawn"})
ALL_STATUSES = frozenset(PIPELINE_ORDER) | TERMINAL_STATUSES

APPLICATION_STATUS_FOR = {
    "applied": "pending",
    "screening": "reviewing",
    "interview": "reviewing",
    "offer": "approved",
    "hired": "approved",
    "rejected": "rejected",
    "withdrawn": "rejected",
}


def next_status(status: str) -> str | None:
    return NEXT_STATUS.get(status)


def can_advance(status: str) -> bool:
    return status in NEXT_STATUS


def can_reject(status: str) -> bool:
    return status in ALL_STATUSES and status not in TERMINAL_STATUSES


def serialize_timeline(entry: TimelineEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "date": entry.occurred_at.isoformat() if entry.occurred_at else None,
        "type": entry.type,
        "title": entry.title,
        "description": entry.description,
        "status": entry.status,
    }


def serialize_candidate(candidate: Candidate) -> dict[str, Any]:
    return {
        "id": candidate.id,
        "name": candidate.name,
        "email": candidate.email,
        "phone": candidate.phone,
        "location": candidate.location,
        "position": candidate.position,
        "experience": candidate.experience,
        "skills": list(candidate.skills_json or []),
        "tags": list(candidate.tags_json or []),
        "source": candidate.source,
        "current_company": candidate.current_company,
        "education": candidate.education,
        "linkedin": candidate.linkedin,
        "github": candidate.github,
        "portfolio": candidate.portfolio,
        "status": candidate.status,
        "evaluation": {
            "overall": candidate.evaluation_overall,
            "technical": candidate.evaluation_technical,
            "cultural": candidate.evaluation_cultural,
            "communication": candidate.evaluation_communication,
        },
        "resume_storage_id": candidate.resume_storage_id,
        "resume_filename": candidate.resume_filename,
        "cover_letter_storage_id": candidate.cover_letter_storage_id,
        "cover_letter_filename": candidate.cover_letter_filename,
        "applied_date": candidate.applied_date.isoformat() if candidate.applied_date else None,
        "hired_at": candidate.hired_at.isoformat() if candidate.hired_at else None,
        "can_advance": can_advance(candidate.status),
        "can_reject": can_reject(candidate.status),
    }


class PipelineService:
    def __init__(self, session: Session, *, activity: ActivityLogger | None = None):
        self.session = session
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)

    def advance(self, candidate_id: int, actor: ActorRef) -> Candidate:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            target = next_status(candidate.status)
            if target is None:
                raise InvalidTransitionError(f"Cannot advance candidate in status '{candidate.status}'")
            self.apply_transition(candidate, target, actor)
        return candidate

    def reject(self, candidate_id: int, actor: ActorRef, reason: str = "") -> Candidate:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            if not can_reject(candidate.status):
                raise InvalidTransitionError(f"Cannot reject candidate in status '{candidate.status}'")
            self.apply_transition(candidate, "rejected", actor, reason=reason)
        return candidate

    def withdraw(self, candidate_id: int, actor: ActorRef, reason: str = "") -> Candidate:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            if not can_reject(candidate.status):
                raise InvalidTransitionError(f"Cannot withdraw candidate in status '{candidate.status}'")
            self.apply_transition(candidate, "withdrawn", actor, reason=reason)
        return candidate

    def apply_transition(
        self,
        candidate: Candidate,
        target: str,
        actor: ActorRef,
        *,
        reason: str = "",
    ) -> TimelineEntry:
        """Perform one validated move inside the caller's transaction."""
        previous = candidate.status
        allowed = target == NEXT_STATUS.get(previous) or (
            target in {"rejected", "withdrawn"} and can_reject(previous)
        )
        if not allowed:
            raise InvalidTransitionError(f"Transition {previous} -> {target} is not allowed")

        candidate.status = target
        if target == "hired":
            candidate.hired_at = datetime.now(UTC)

        description = f"Candidate moved to {target} stage"
        if reason:
            description = f"{description}: {reason}"
        entry = self.repo.add(
            TimelineEntry(
                candidate_id=candidate.id,
                type=target,
                title=f"Status changed to {target}",
                description=description,
                status="completed",
            )
        )

        applications = self.repo.list_applications_for_candidate(candidate.id)
        for application in applications:
            application.status = APPLICATION_STATUS_FOR[target]
        self.session.flush()

        self.activity.log(
            "candidate_rejected" if target == "rejected" else "status_changed",
            actor,
            "candidate",
            candidate.id,
            job_id=applications[0].job_id if len(applications) == 1 else None,
            metadata={"from": previous, "to": target, **({"reason": reason} if reason else {})},
        )
        logger.info("Candidate %s moved %s -> %s", candidate.id, previous, target)
        return entry


class CandidateService:
    def __init__(self, session: Session, *, activity: ActivityLogger | None = None):
        self.session = session
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)
        self.pipeline = PipelineService(session, activity=self.activity)

    def create(
        self,
        *,
        name: str,
        email: str,
        position: str,
        actor: ActorRef | None = None,
        job_id: int | None = None,
        phone: str = "",
        location: str = "",
        experience: str = "",
        skills: list[str] | None = None,
        source: str = "",
        current_company: str = "",
        education: str = "",
        linkedin: str = "",
        github: str = "",
        portfolio: str = "",
        resume_storage_id: str | None = None,
        resume_filename: str = "",
        cover_letter_storage_id: str | None = None,
        cover_letter_filename: str = "",
    ) -> Candidate:
        if not name.strip():
            raise DomainValidationError("Candidate name is required")
        if "@" not in email:
            raise DomainValidationError("Candidate email is invalid")

        actor = actor or ActorRef.system()
        with transaction(self.session):
            job = self.repo.require(Job, job_id, "Job") if job_id is not None else None
            candidate = self.repo.add(
                Candidate(
                    name=name.strip(),
                    email=email.strip(),
                    phone=phone,
                    location=location,
                    position=position,
                    experience=experience,
                    skills_json=_dedupe(skills or []),
                    source=source,
                    current_company=current_company,
                    education=education,
                    linkedin=linkedin,
                    github=github,
                    portfolio=portfolio,
                    status="applied",
                    resume_storage_id=resume_storage_id,
                    resume_filename=resume_filename,
                    cover_letter_storage_id=cover_letter_storage_id,
                    cover_letter_filename=cover_letter_filename,
                    applied_date=date.today(),
                )
            )
            self.repo.add(
                TimelineEntry(
                    candidate_id=candidate.id,
                    type="applied",
                    title="Application Received",
                    description=f"Applied for {position} position",
                    status="completed",
                )
            )
            if job is not None:
                self._attach_application(candidate, job)
                self.activity.log("candidate_applied", actor, "candidate", candidate.id, job_id=job.id)
        return candidate

    def apply_to_job(self, candidate_id: int, job_id: int, actor: ActorRef) -> dict[str, Any]:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            job = self.repo.require(Job, job_id, "Job")
            if self.repo.get_application(candidate.id, job.id) is not None:
                raise DomainValidationError("Candidate already applied to this job")
            application = self._attach_application(candidate, job)
            self.activity.log("candidate_applied", actor, "candidate", candidate.id, job_id=job.id)
        return {
            "id": application.id,
            "candidate_id": application.candidate_id,
            "job_id": application.job_id,
            "status": application.status,
        }

    def _attach_application(self, candidate: Candidate, job: Job) -> Application:
        application = self.repo.add(
            Application(
                candidate_id=candidate.id,
                job_id=job.id,
                status=APPLICATION_STATUS_FOR.get(candidate.status, "pending"),
            )
        )
        job.applicant_count = (job.applicant_count or 0) + 1
        return application

    def list_candidates(self, status: str | None = None, search: str | None = None) -> list[dict[str, Any]]:
        return [serialize_candidate(row) for row in self.repo.list_candidates(status=status, search=search)]

    def get(self, candidate_id: int) -> Candidate:
        return self.repo.require(Candidate, candidate_id, "Candidate")

    def get_with_relations(self, candidate_id: int) -> dict[str, Any]:
        candidate = self.get(candidate_id)
        payload = serialize_candidate(candidate)
        payload["timeline"] = [serialize_timeline(row) for row in self.repo.list_timeline(candidate.id)]
        payload["notes"] = [
            {
                "id": note.id,
                "author": note.author,
                "role": note.role,
                "content": note.content,
                "date": note.created_at.isoformat() if note.created_at else None,
            }
            for note in self.repo.list_notes(candidate.id)
        ]
        payload["interviews"] = [
            {
                "id": row.id,
                "job_id": row.job_id,
                "type": row.type,
                "date": row.scheduled_date.isoformat(),
                "time": row.scheduled_time,
                "status": row.status,
                "rating": row.rating,
            }
            for row in self.repo.list_interviews(candidate_id=candidate.id)
        ]
        payload["applications"] = []
        for application in self.repo.list_applications_for_candidate(candidate.id):
            job = self.repo.get_job(application.job_id)
            payload["applications"].append(
                {
                    "id": application.id,
                    "job_id": application.job_id,
                    "job_title": job.title if job else "",
                    "status": application.status,
                    "applied_date": application.applied_date.isoformat(),
                }
            )
        return payload

    def update_evaluation(self, candidate_id: int, evaluation: dict[str, int]) -> Candidate:
        try:
            scores = Evaluation.model_validate(evaluation)
        except ValueError as exc:
            raise DomainValidationError("evaluation scores must be between 0 and 100") from exc

        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            candidate.evaluation_overall = scores.overall
            candidate.evaluation_technical = scores.technical
            candidate.evaluation_cultural = scores.cultural
            candidate.evaluation_communication = scores.communication
        return candidate

    def add_note(self, candidate_id: int, *, author: str, content: str, role: str = "") -> CandidateNote:
        if not content.strip():
            raise DomainValidationError("Note content is required")
        with transaction(self.session):
            self.repo.require(Candidate, candidate_id, "Candidate")
            note = self.repo.add(
                CandidateNote(candidate_id=candidate_id, author=author, role=role, content=content.strip())
            )
        return note

    def attach_resume(self, candidate_id: int, storage_id: str, filename: str) -> Candidate:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            self._require_file(storage_id)
            candidate.resume_storage_id = storage_id
            candidate.resume_filename = filename
        return candidate

    def attach_cover_letter(self, candidate_id: int, storage_id: str, filename: str) -> Candidate:
        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            self._require_file(storage_id)
            candidate.cover_letter_storage_id = storage_id
            candidate.cover_letter_filename = filename
        return candidate

    def _require_file(self, storage_id: str) -> None:
        if self.repo.get_stored_file(storage_id) is None:
            raise DomainValidationError(f"Unknown storage id '{storage_id}'")


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result
