from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from evalats.types import (
    AuditStatus,
    ComplianceCategory,
    DisabilityStatus,
    Gender,
    InterviewStatus,
    JobStatus,
    JobType,
    Race,
    Recommendation,
    TaskPriority,
    TaskStatus,
    TaskType,
    TeamRole,
    Urgency,
    VeteranStatus,
)


class CandidateCreateRequest(BaseModel):
    name: str
    email: str
    position: str
    job_id: int | None = None
    phone: str = ""
    location: str = ""
    experience: str = ""
    skills: list[str] = Field(default_factory=list)
    source: str = ""
    current_company: str = ""
    education: str = ""
    linkedin: str = ""
    github: str = ""
    portfolio: str = ""
    resume_storage_id: str | None = None
    resume_filename: str = ""
    cover_letter_storage_id: str | None = None
    cover_letter_filename: str = ""


class StatusReasonRequest(BaseModel):
    reason: str = ""


class EvaluationRequest(BaseModel):
    overall: int = 0
    technical: int = 0
    cultural: int = 0
    communication: int = 0


class NoteCreateRequest(BaseModel):
    author: str
    content: str
    role: str = ""


class FileAttachRequest(BaseModel):
    storage_id: str
    filename: str = ""


class ApplyRequest(BaseModel):
    job_id: int


class JobCreateRequest(BaseModel):
    title: str
    department: str = ""
    location: str = ""
    type: JobType = "full-time"
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    urgency: Urgency = "medium"
    salary_min: int | None = None
    salary_max: int | None = None


class JobStatusRequest(BaseModel):
    status: JobStatus


class InterviewCreateRequest(BaseModel):
    candidate_id: int
    job_id: int
    type: str
    scheduled_date: date
    scheduled_time: str
    duration_minutes: int = 60
    interviewers: list[str] = Field(default_factory=list)
    location: str = ""
    meeting_link: str = ""


class InterviewStatusRequest(BaseModel):
    status: InterviewStatus


class InterviewResultRequest(BaseModel):
    feedback: str
    rating: int
    scores: dict[str, int] = Field(default_factory=dict)
    recommendation: Recommendation | Literal[""] = ""


class FeedbackSubmitRequest(BaseModel):
    ratings: dict[str, int]
    recommendation: Recommendation
    strengths: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)
    questions: list[dict[str, Any]] = Field(default_factory=list)
    notes: str = ""


class TeamMemberRequest(BaseModel):
    user_id: str
    email: str
    name: str
    role: TeamRole
    department: str = ""
    avatar: str = ""


class HiringTeamRequest(BaseModel):
    member_id: int
    role: TeamRole
    is_primary: bool = False


class CommentCreateRequest(BaseModel):
    entity_type: Literal["candidate", "job", "interview"]
    entity_id: int
    content: str
    parent_id: int | None = None
    mentions: list[int] = Field(default_factory=list)


class CommentEditRequest(BaseModel):
    content: str


class ReactionRequest(BaseModel):
    emoji: str


class TaskCreateRequest(BaseModel):
    title: str
    assignee_id: int
    type: TaskType = "custom"
    description: str = ""
    priority: TaskPriority = "medium"
    related_type: Literal["candidate", "job", "interview"] | None = None
    related_id: int | None = None
    due_date: datetime | None = None


class TaskStatusRequest(BaseModel):
    status: TaskStatus


class OfferUpsertRequest(BaseModel):
    candidate_id: int
    job_id: int
    details: dict[str, Any]
    custom_terms: str = ""
    expires_at: datetime | None = None


class OfferReviewRequest(BaseModel):
    approver_id: int
    status: Literal["approved", "rejected"]
    comments: str = ""


class OfferSendRequest(BaseModel):
    letter_url: str = ""


class OfferRespondRequest(BaseModel):
    accepted: bool


class TemplateCreateRequest(BaseModel):
    name: str
    category: str
    type: str
    subject: str
    content: str
    variables: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class TemplateUpdateRequest(BaseModel):
    name: str | None = None
    category: str | None = None
    type: str | None = None
    subject: str | None = None
    content: str | None = None
    variables: list[str] | None = None
    tags: list[str] | None = None
    is_active: bool | None = None


class TemplateRenderRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)
    candidate_id: int | None = None
    job_id: int | None = None


class EmailSendRequest(BaseModel):
    to: list[str]
    subject: str = ""
    content: str = ""
    candidate_id: int | None = None
    job_id: int | None = None
    template_id: int | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    thread_id: str | None = None
    reply_to_id: int | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class EEODataRequest(BaseModel):
    race: Race | None = None
    gender: Gender | None = None
    veteran_status: VeteranStatus | None = None
    disability_status: DisabilityStatus | None = None


class BiasAuditRequest(BaseModel):
    job_id: int | None = None
    period_start: date
    period_end: date


class AuditStatusRequest(BaseModel):
    status: AuditStatus


class ComplianceSettingRequest(BaseModel):
    value: Any
    category: ComplianceCategory
    updated_by: str
    description: str = ""


class ResumeParseResponse(BaseModel):
    data: dict[str, Any]
    ai_enabled: bool
    raw_text_preview: str
    match_score: int | None = None
