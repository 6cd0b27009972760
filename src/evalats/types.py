from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

CandidateStatus = Literal["applied", "screening", "interview", "offer", "hired", "rejected", "withdrawn"]
ApplicationStatus = Literal["pending", "reviewing", "approved", "rejected"]
JobType = Literal["full-time", "part-time", "contract"]
JobStatus = Literal["active", "paused", "closed"]
Urgency = Literal["high", "medium", "low"]
InterviewStatus = Literal["scheduled", "completed", "cancelled", "no-show"]
TeamRole = Literal["admin", "hiring_manager", "recruiter", "interviewer", "coordinator", "viewer"]
EntityType = Literal["candidate", "job", "interview"]
TargetType = Literal["candidate", "job", "interview", "offer"]
OfferStatus = Literal[
    "draft",
    "pending_approval",
    "approved",
    "sent",
    "viewed",
    "accepted",
    "declined",
    "expired",
    "withdrawn",
]
ApprovalVote = Literal["approved", "rejected"]
TaskStatus = Literal["pending", "in_progress", "completed", "cancelled"]
TaskPriority = Literal["urgent", "high", "medium", "low"]
TaskType = Literal[
    "review_application",
    "schedule_interview",
    "provide_feedback",
    "check_references",
    "send_offer",
    "follow_up",
    "custom",
]
Recommendation = Literal["strong_yes", "yes", "neutral", "no", "strong_no"]
EmailStatus = Literal["draft", "sent", "delivered", "failed"]
ActivityAction = Literal[
    "candidate_applied",
    "status_changed",
    "interview_scheduled",
    "feedback_submitted",
    "comment_added",
    "offer_sent",
    "offer_responded",
    "candidate_rejected",
    "task_completed",
    "team_member_added",
]
NotificationType = Literal["mention", "task_assigned", "comment_reply", "offer_review", "status_update"]
ComplianceCategory = Literal["eeo", "ofccp", "state", "ai_governance"]
AuditStatus = Literal["draft", "under_review", "approved", "archived"]

Race = Literal[
    "american_indian_alaska_native",
    "asian",
    "black_african_american",
    "hispanic_latino",
    "native_hawaiian_pacific_islander",
    "white",
    "two_or_more_races",
    "decline_to_answer",
]
Gender = Literal["male", "female", "non_binary", "decline_to_answer"]
VeteranStatus = Literal[
    "protected_veteran",
    "not_protected_veteran",
    "decline_to_answer",
]
DisabilityStatus = Literal["yes", "no", "decline_to_answer"]


class Evaluation(BaseModel):
    overall: int = 0
    technical: int = 0
    cultural: int = 0
    communication: int = 0

    @field_validator("overall", "technical", "cultural", "communication")
    @classmethod
    def validate_score(cls, value: int) -> int:
        if value < 0 or value > 100:
            raise ValueError("evaluation scores must be between 0 and 100")
        return value


class OfferDetails(BaseModel):
    salary: int
    currency: str = "USD"
    bonus: int | None = None
    equity: str = ""
    start_date: str = ""
    location: str = ""
    employment_type: str = "full-time"
    benefits: list[str] = Field(default_factory=list)

    @field_validator("salary")
    @classmethod
    def validate_salary(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("salary must be positive")
        return value


class FeedbackRatings(BaseModel):
    overall: int
    technical: int | None = None
    communication: int | None = None
    problem_solving: int | None = None
    cultural_fit: int | None = None
    leadership: int | None = None

    @field_validator("overall", "technical", "communication", "problem_solving", "cultural_fit", "leadership")
    @classmethod
    def validate_rating(cls, value: int | None) -> int | None:
        if value is not None and (value < 1 or value > 5):
            raise ValueError("ratings must be between 1 and 5")
        return value


class ParsedResume(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    linkedin: str = ""
    github: str = ""
    portfolio: str = ""
    summary: str = ""
    skills: list[str] = Field(default_factory=list)
    experience: list[dict[str, Any]] = Field(default_factory=list)
    education: list[dict[str, Any]] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    total_experience_years: int = 0
    strategy: Literal["ai", "basic"] = "basic"


class BiasGroupMetric(BaseModel):
    category: str
    group: str
    applicants: int
    selected: int
    selection_rate: float
    impact_ratio: float
    passes_four_fifths: bool


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)
