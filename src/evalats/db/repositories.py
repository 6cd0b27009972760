from __future__ import annotations

from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from evalats.db.base import Base
from evalats.db.models import (
    ActivityEntry,
    Application,
    BiasAudit,
    Candidate,
    CandidateNote,
    Comment,
    CommentReaction,
    ComplianceSetting,
    EEOData,
    Email,
    EmailTemplate,
    HiringTeamAssignment,
    Interview,
    InterviewFeedback,
    Job,
    Notification,
    Offer,
    OfferApproval,
    StoredFile,
    Task,
    TeamMember,
    TimelineEntry,
)
from evalats.errors import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)


class Repository:
    """Entity store over one SQLAlchemy session.

    Methods only add and flush; the caller owns the transaction boundary
    (see :func:`evalats.db.session.transaction`).
    """

    def __init__(self, session: Session):
        self.session = session

    def add(self, obj: ModelT) -> ModelT:
        self.session.add(obj)
        self.session.flush()
        return obj

    def delete(self, obj: Base) -> None:
        self.session.delete(obj)
        self.session.flush()

    def require(self, model: type[ModelT], entity_id: int, label: str | None = None) -> ModelT:
        obj = self.session.get(model, entity_id)
        if obj is None:
            raise NotFoundError(f"{label or model.__name__} not found")
        return obj

    # candidates

    def get_candidate(self, candidate_id: int) -> Candidate | None:
        return self.session.get(Candidate, candidate_id)

    def list_candidates(self, status: str | None = None, search: str | None = None) -> list[Candidate]:
        statement = select(Candidate)
        if status:
            statement = statement.where(Candidate.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            statement = statement.where(
                or_(
                    func.lower(Candidate.name).like(pattern),
                    func.lower(Candidate.email).like(pattern),
                    func.lower(Candidate.position).like(pattern),
                )
            )
        return list(self.session.scalars(statement.order_by(Candidate.created_at.desc(), Candidate.id.desc())).all())

    def list_all_candidates(self) -> list[Candidate]:
        return list(self.session.scalars(select(Candidate)).all())

    def list_timeline(self, candidate_id: int) -> list[TimelineEntry]:
        statement = (
            select(TimelineEntry)
            .where(TimelineEntry.candidate_id == candidate_id)
            .order_by(TimelineEntry.id.asc())
        )
        return list(self.session.scalars(statement).all())

    def list_notes(self, candidate_id: int) -> list[CandidateNote]:
        statement = (
            select(CandidateNote)
            .where(CandidateNote.candidate_id == candidate_id)
            .order_by(CandidateNote.id.desc())
        )
        return list(self.session.scalars(statement).all())

    def list_applications_for_candidate(self, candidate_id: int) -> list[Application]:
        return list(
            self.session.scalars(select(Application).where(Application.candidate_id == candidate_id)).all()
        )

    def list_applications_for_job(self, job_id: int) -> list[Application]:
        return list(self.session.scalars(select(Application).where(Application.job_id == job_id)).all())

    def get_application(self, candidate_id: int, job_id: int) -> Application | None:
        return self.session.scalar(
            select(Application).where(Application.candidate_id == candidate_id, Application.job_id == job_id)
        )

    # jobs

    def get_job(self, job_id: int) -> Job | None:
        return self.session.get(Job, job_id)

    def list_jobs(self, status: str | None = None, search: str | None = None) -> list[Job]:
        statement = select(Job)
        if status:
            statement = statement.where(Job.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            statement = statement.where(
                or_(func.lower(Job.title).like(pattern), func.lower(Job.department).like(pattern))
            )
        return list(self.session.scalars(statement.order_by(Job.created_at.desc(), Job.id.desc())).all())

    def list_all_jobs(self) -> list[Job]:
        return list(self.session.scalars(select(Job)).all())

    # interviews

    def get_interview(self, interview_id: int) -> Interview | None:
        return self.session.get(Interview, interview_id)

    def list_interviews(
        self,
        *,
        status: str | None = None,
        candidate_id: int | None = None,
        on_date: Any = None,
        date_from: Any = None,
        date_to: Any = None,
    ) -> list[Interview]:
        statement = select(Interview)
        if status:
            statement = statement.where(Interview.status == status)
        if candidate_id is not None:
            statement = statement.where(Interview.candidate_id == candidate_id)
        if on_date is not None:
            statement = statement.where(Interview.scheduled_date == on_date)
        if date_from is not None:
            statement = statement.where(Interview.scheduled_date >= date_from)
        if date_to is not None:
            statement = statement.where(Interview.scheduled_date <= date_to)
        statement = statement.order_by(Interview.scheduled_date.asc(), Interview.scheduled_time.asc())
        return list(self.session.scalars(statement).all())

    def list_all_interviews(self) -> list[Interview]:
        return list(self.session.scalars(select(Interview)).all())

    def get_feedback(self, interview_id: int, interviewer_id: int) -> InterviewFeedback | None:
        return self.session.scalar(
            select(InterviewFeedback).where(
                InterviewFeedback.interview_id == interview_id,
                InterviewFeedback.interviewer_id == interviewer_id,
            )
        )

    def list_feedback(self, interview_id: int) -> list[InterviewFeedback]:
        return list(
            self.session.scalars(
                select(InterviewFeedback).where(InterviewFeedback.interview_id == interview_id)
            ).all()
        )

    # team

    def get_team_member(self, member_id: int) -> TeamMember | None:
        return self.session.get(TeamMember, member_id)

    def get_team_member_by_user_id(self, user_id: str) -> TeamMember | None:
        return self.session.scalar(select(TeamMember).where(TeamMember.user_id == user_id))

    def list_team_members(self, active_only: bool = True) -> list[TeamMember]:
        statement = select(TeamMember)
        if active_only:
            statement = statement.where(TeamMember.is_active.is_(True))
        return list(self.session.scalars(statement.order_by(TeamMember.name.asc())).all())

    def get_team_members(self, member_ids: list[int]) -> dict[int, TeamMember]:
        if not member_ids:
            return {}
        rows = self.session.scalars(select(TeamMember).where(TeamMember.id.in_(member_ids))).all()
        return {row.id: row for row in rows}

    def get_hiring_assignment(self, job_id: int, member_id: int) -> HiringTeamAssignment | None:
        return self.session.scalar(
            select(HiringTeamAssignment).where(
                HiringTeamAssignment.job_id == job_id,
                HiringTeamAssignment.team_member_id == member_id,
            )
        )

    def list_hiring_team(self, job_id: int) -> list[HiringTeamAssignment]:
        return list(
            self.session.scalars(
                select(HiringTeamAssignment)
                .where(HiringTeamAssignment.job_id == job_id)
                .order_by(HiringTeamAssignment.is_primary.desc(), HiringTeamAssignment.id.asc())
            ).all()
        )

    # comments

    def get_comment(self, comment_id: int) -> Comment | None:
        return self.session.get(Comment, comment_id)

    def list_comments(self, entity_type: str, entity_id: int, include_deleted: bool = False) -> list[Comment]:
        statement = select(Comment).where(Comment.entity_type == entity_type, Comment.entity_id == entity_id)
        if not include_deleted:
            statement = statement.where(Comment.is_deleted.is_(False))
        statement = statement.order_by(Comment.created_at.desc(), Comment.id.desc())
        return list(self.session.scalars(statement).all())

    def get_reaction(self, comment_id: int, user_id: int, emoji: str) -> CommentReaction | None:
        return self.session.scalar(
            select(CommentReaction).where(
                CommentReaction.comment_id == comment_id,
                CommentReaction.user_id == user_id,
                CommentReaction.emoji == emoji,
            )
        )

    def list_reactions(self, comment_ids: list[int]) -> list[CommentReaction]:
        if not comment_ids:
            return []
        statement = (
            select(CommentReaction)
            .where(CommentReaction.comment_id.in_(comment_ids))
            .order_by(CommentReaction.id.asc())
        )
        return list(self.session.scalars(statement).all())

    # offers

    def get_offer(self, offer_id: int) -> Offer | None:
        return self.session.get(Offer, offer_id)

    def get_offer_for(self, candidate_id: int, job_id: int) -> Offer | None:
        return self.session.scalar(
            select(Offer).where(Offer.candidate_id == candidate_id, Offer.job_id == job_id)
        )

    def list_offers(self, candidate_id: int | None = None, status: str | None = None) -> list[Offer]:
        statement = select(Offer)
        if candidate_id is not None:
            statement = statement.where(Offer.candidate_id == candidate_id)
        if status:
            statement = statement.where(Offer.status == status)
        return list(self.session.scalars(statement.order_by(Offer.id.desc())).all())

    def list_expirable_offers(self, now: datetime) -> list[Offer]:
        statement = select(Offer).where(
            Offer.status.in_(["sent", "viewed"]),
            Offer.expires_at.is_not(None),
            Offer.expires_at < now,
        )
        return list(self.session.scalars(statement).all())

    def list_approvals(self, offer_id: int) -> list[OfferApproval]:
        return list(
            self.session.scalars(
                select(OfferApproval).where(OfferApproval.offer_id == offer_id).order_by(OfferApproval.id.asc())
            ).all()
        )

    def get_approval(self, offer_id: int, approver_id: int) -> OfferApproval | None:
        return self.session.scalar(
            select(OfferApproval).where(
                OfferApproval.offer_id == offer_id,
                OfferApproval.approver_id == approver_id,
            )
        )

    # tasks

    def list_tasks_for(self, assignee_id: int, status: str | None = None, limit: int = 100) -> list[Task]:
        statement = select(Task).where(Task.assignee_id == assignee_id)
        if status:
            statement = statement.where(Task.status == status)
        statement = statement.order_by(Task.created_at.desc(), Task.id.desc()).limit(limit)
        return list(self.session.scalars(statement).all())

    # activity and notifications

    def get_activity_by_key(self, idempotency_key: str) -> ActivityEntry | None:
        return self.session.scalar(select(ActivityEntry).where(ActivityEntry.idempotency_key == idempotency_key))

    def list_activity(self, job_id: int | None = None, limit: int = 50) -> list[ActivityEntry]:
        statement = select(ActivityEntry)
        if job_id is not None:
            statement = statement.where(ActivityEntry.job_id == job_id)
        statement = statement.order_by(ActivityEntry.timestamp.desc(), ActivityEntry.id.desc()).limit(limit)
        return list(self.session.scalars(statement).all())

    def list_notifications(self, recipient_id: int, unread_only: bool = False) -> list[Notification]:
        statement = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            statement = statement.where(Notification.is_read.is_(False))
        statement = statement.order_by(Notification.created_at.desc(), Notification.id.desc())
        return list(self.session.scalars(statement).all())

    # email

    def get_template_by_name(self, name: str) -> EmailTemplate | None:
        return self.session.scalar(select(EmailTemplate).where(EmailTemplate.name == name))

    def list_templates(
        self,
        template_type: str | None = None,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[EmailTemplate]:
        statement = select(EmailTemplate)
        if template_type:
            statement = statement.where(EmailTemplate.type == template_type)
        if category:
            statement = statement.where(EmailTemplate.category == category)
        if active_only:
            statement = statement.where(EmailTemplate.is_active.is_(True))
        return list(self.session.scalars(statement.order_by(EmailTemplate.name.asc())).all())

    def list_emails_for_candidate(self, candidate_id: int) -> list[Email]:
        statement = select(Email).where(Email.candidate_id == candidate_id).order_by(Email.id.desc())
        return list(self.session.scalars(statement).all())

    def list_thread(self, thread_id: str) -> list[Email]:
        statement = select(Email).where(Email.thread_id == thread_id).order_by(Email.id.asc())
        return list(self.session.scalars(statement).all())

    # compliance

    def get_eeo_data(self, candidate_id: int) -> EEOData | None:
        return self.session.scalar(select(EEOData).where(EEOData.candidate_id == candidate_id))

    def list_eeo_data(self, candidate_ids: list[int] | None = None) -> list[EEOData]:
        statement = select(EEOData)
        if candidate_ids is not None:
            statement = statement.where(EEOData.candidate_id.in_(candidate_ids))
        return list(self.session.scalars(statement).all())

    def get_latest_audit(self, job_id: int | None = None) -> BiasAudit | None:
        statement = select(BiasAudit)
        if job_id is not None:
            statement = statement.where(BiasAudit.job_id == job_id)
        statement = statement.order_by(BiasAudit.audit_date.desc(), BiasAudit.id.desc()).limit(1)
        return self.session.scalar(statement)

    def get_setting(self, setting_key: str) -> ComplianceSetting | None:
        return self.session.scalar(select(ComplianceSetting).where(ComplianceSetting.setting_key == setting_key))

    def list_settings(self, category: str | None = None) -> list[ComplianceSetting]:
        statement = select(ComplianceSetting)
        if category:
            statement = statement.where(ComplianceSetting.category == category)
        return list(self.session.scalars(statement.order_by(ComplianceSetting.setting_key.asc())).all())

    # files

    def get_stored_file(self, storage_id: str) -> StoredFile | None:
        return self.session.scalar(select(StoredFile).where(StoredFile.storage_id == storage_id))
