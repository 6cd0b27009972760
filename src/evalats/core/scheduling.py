from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.core.activity import ActivityLogger, ActorRef
from evalats.db.models import Candidate, Interview, InterviewFeedback, Job, TeamMember
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError, PreconditionFailedError
from evalats.types import FeedbackRatings

logger = logging.getLogger(__name__)

MAX_DURATION_MINUTES = 24 * 60
INTERVIEW_STATUSES = {"scheduled", "completed", "cancelled", "no-show"}
RECOMMENDATIONS = {"strong_yes", "yes", "neutral", "no", "strong_no"}


@dataclass(frozen=True, slots=True)
class TimeWindow:
    start: datetime
    end: datetime

    def overlaps(self, other: TimeWindow) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True, slots=True)
class Conflict:
    interview_id: int
    reason: str
    window: TimeWindow


def parse_time(value: str) -> tuple[int, int]:
    try:
        hour_text, minute_text = value.split(":", 1)
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise DomainValidationError(f"Invalid time '{value}'; expected HH:MM") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise DomainValidationError(f"Invalid time '{value}'; expected HH:MM")
    return hour, minute


def window_for(day: date, time_value: str, duration_minutes: int) -> TimeWindow:
    hour, minute = parse_time(time_value)
    start = datetime(day.year, day.month, day.day, hour, minute)
    return TimeWindow(start=start, end=start + timedelta(minutes=duration_minutes))


def interview_window(interview: Interview) -> TimeWindow:
    return window_for(interview.scheduled_date, interview.scheduled_time, interview.duration_minutes)


def find_conflicts(
    existing: list[Interview],
    *,
    window: TimeWindow,
    candidate_id: int,
    interviewers: list[str],
    ignore_id: int | None = None,
) -> list[Conflict]:
    wanted = {name.strip().lower() for name in interviewers if name.strip()}
    conflicts: list[Conflict] = []
    for interview in existing:
        if interview.status != "scheduled" or interview.id == ignore_id:
            continue
        other = interview_window(interview)
        if not window.overlaps(other):
            continue
        if interview.candidate_id == candidate_id:
            conflicts.append(Conflict(interview.id, "candidate already has an interview", other))
            continue
        shared = wanted & {name.strip().lower() for name in interview.interviewers_json or []}
        if shared:
            conflicts.append(Conflict(interview.id, f"interviewer busy: {', '.join(sorted(shared))}", other))
    return conflicts


def available_slots(
    day: date,
    existing: list[Interview],
    *,
    duration_minutes: int = 60,
    interviewers: list[str] | None = None,
    candidate_id: int | None = None,
    now: datetime | None = None,
    start_hour: int = 9,
    end_hour: int = 17,
    step_minutes: int = 30,
) -> list[str]:
    """Start times (HH:MM) on ``day`` that fit inside working hours and clash with nothing.

    With no interviewer or candidate filter every scheduled interview that day blocks its slot.
    """
    day_start = datetime(day.year, day.month, day.day)
    day_end = day_start + timedelta(hours=end_hour)
    cursor = day_start + timedelta(hours=start_hour)
    names = {name.strip().lower() for name in interviewers or [] if name.strip()}

    busy: list[TimeWindow] = []
    for interview in existing:
        if interview.status != "scheduled":
            continue
        if names or candidate_id is not None:
            same_candidate = candidate_id is not None and interview.candidate_id == candidate_id
            shared = names & {name.strip().lower() for name in interview.interviewers_json or []}
            if not same_candidate and not shared:
                continue
        busy.append(interview_window(interview))

    slots: list[str] = []
    while cursor + timedelta(minutes=duration_minutes) <= day_end:
        candidate_window = TimeWindow(cursor, cursor + timedelta(minutes=duration_minutes))
        in_future = now is None or cursor > now
        if in_future and not any(candidate_window.overlaps(item) for item in busy):
            slots.append(cursor.strftime("%H:%M"))
        cursor += timedelta(minutes=step_minutes)
    return slots


def serialize_interview(interview: Interview, candidate: Candidate | None = None, job: Job | None = None) -> dict[str, Any]:
    return {
        "id": interview.id,
        "candidate_id": interview.candidate_id,
        "candidate_name": candidate.name if candidate else None,
        "job_id": interview.job_id,
        "job_title": job.title if job else None,
        "type": interview.type,
        "date": interview.scheduled_date.isoformat(),
        "time": interview.scheduled_time,
        "duration": interview.duration_minutes,
        "interviewers": list(interview.interviewers_json or []),
        "location": interview.location,
        "meeting_link": interview.meeting_link,
        "status": interview.status,
        "feedback": interview.feedback,
        "rating": interview.rating,
        "scores": dict(interview.scores_json or {}),
        "recommendation": interview.recommendation,
    }


class InterviewService:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        activity: ActivityLogger | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)

    def schedule(
        self,
        *,
        candidate_id: int,
        job_id: int,
        interview_type: str,
        day: date,
        time_value: str,
        actor: ActorRef,
        duration_minutes: int = 60,
        interviewers: list[str] | None = None,
        location: str = "",
        meeting_link: str = "",
    ) -> Interview:
        if duration_minutes <= 0 or duration_minutes > MAX_DURATION_MINUTES:
            raise DomainValidationError("Interview duration must be between 1 minute and 24 hours")
        window = window_for(day, time_value, duration_minutes)
        names = [name.strip() for name in interviewers or [] if name.strip()]

        with transaction(self.session):
            candidate = self.repo.require(Candidate, candidate_id, "Candidate")
            self.repo.require(Job, job_id, "Job")
            if candidate.status in {"hired", "rejected", "withdrawn"}:
                raise PreconditionFailedError(f"Cannot schedule an interview for a {candidate.status} candidate")

            conflicts = find_conflicts(
                self._scheduled_around(day, window.end.date()),
                window=window,
                candidate_id=candidate_id,
                interviewers=names,
            )
            if conflicts:
                raise PreconditionFailedError(
                    "Scheduling conflict: " + "; ".join(f"#{item.interview_id} {item.reason}" for item in conflicts)
                )

            interview = self.repo.add(
                Interview(
                    candidate_id=candidate_id,
                    job_id=job_id,
                    type=interview_type,
                    scheduled_date=day,
                    scheduled_time=f"{window.start:%H:%M}",
                    duration_minutes=duration_minutes,
                    interviewers_json=names,
                    location=location,
                    meeting_link=meeting_link,
                    status="scheduled",
                )
            )
            self.activity.log(
                "interview_scheduled",
                actor,
                "interview",
                interview.id,
                job_id=job_id,
                metadata={"date": day.isoformat(), "time": interview.scheduled_time, "type": interview_type},
            )
        return interview

    def slots(
        self,
        day: date,
        *,
        duration_minutes: int = 60,
        interviewers: list[str] | None = None,
        candidate_id: int | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        return available_slots(
            day,
            self._scheduled_around(day, day),
            duration_minutes=duration_minutes,
            interviewers=interviewers,
            candidate_id=candidate_id,
            now=now,
            start_hour=self.settings.workday_start_hour,
            end_hour=self.settings.workday_end_hour,
            step_minutes=self.settings.slot_minutes,
        )

    def _scheduled_around(self, first_day: date, last_day: date) -> list[Interview]:
        # the previous day is included for interviews that run past midnight
        return self.repo.list_interviews(
            status="scheduled", date_from=first_day - timedelta(days=1), date_to=last_day
        )

    def update_status(self, interview_id: int, status: str) -> Interview:
        if status not in INTERVIEW_STATUSES:
            raise DomainValidationError(f"Interview status must be one of {sorted(INTERVIEW_STATUSES)}")
        with transaction(self.session):
            interview = self.repo.require(Interview, interview_id, "Interview")
            interview.status = status
        return interview

    def add_feedback(
        self,
        interview_id: int,
        *,
        feedback: str,
        rating: int,
        scores: dict[str, int] | None = None,
        recommendation: str = "",
    ) -> Interview:
        if rating < 1 or rating > 5:
            raise DomainValidationError("Rating must be between 1 and 5")
        if recommendation and recommendation not in RECOMMENDATIONS:
            raise DomainValidationError(f"Recommendation must be one of {sorted(RECOMMENDATIONS)}")
        with transaction(self.session):
            interview = self.repo.require(Interview, interview_id, "Interview")
            interview.feedback = feedback
            interview.rating = rating
            interview.scores_json = dict(scores or {})
            interview.recommendation = recommendation
            interview.status = "completed"
        return interview

    def submit_feedback(
        self,
        interview_id: int,
        *,
        interviewer: ActorRef,
        ratings: dict[str, int],
        recommendation: str,
        strengths: list[str] | None = None,
        concerns: list[str] | None = None,
        questions: list[dict[str, Any]] | None = None,
        notes: str = "",
    ) -> InterviewFeedback:
        if interviewer.is_system:
            raise DomainValidationError("Feedback requires a team member")
        if recommendation not in RECOMMENDATIONS:
            raise DomainValidationError(f"Recommendation must be one of {sorted(RECOMMENDATIONS)}")
        try:
            parsed = FeedbackRatings.model_validate(ratings)
        except ValidationError as exc:
            raise DomainValidationError(f"Invalid ratings: {exc.errors()[0]['msg']}") from exc

        with transaction(self.session):
            interview = self.repo.require(Interview, interview_id, "Interview")
            self.repo.require(TeamMember, interviewer.team_member_id, "Team member")
            if interview.status == "cancelled":
                raise PreconditionFailedError("Cannot submit feedback for a cancelled interview")

            values = {
                "ratings_json": parsed.model_dump(exclude_none=True),
                "strengths_json": list(strengths or []),
                "concerns_json": list(concerns or []),
                "questions_json": list(questions or []),
                "recommendation": recommendation,
                "notes": notes,
                "is_complete": True,
                "submitted_at": datetime.now(UTC),
            }
            row = self.repo.get_feedback(interview.id, interviewer.team_member_id)
            is_new = row is None
            if row is None:
                row = self.repo.add(
                    InterviewFeedback(
                        interview_id=interview.id,
                        candidate_id=interview.candidate_id,
                        interviewer_id=interviewer.team_member_id,
                        **values,
                    )
                )
            else:
                for key, value in values.items():
                    setattr(row, key, value)

            interview.status = "completed"
            all_feedback = self.repo.list_feedback(interview.id)
            overall = [item.ratings_json.get("overall") for item in all_feedback if item.ratings_json.get("overall")]
            if overall:
                interview.rating = round(sum(overall) / len(overall))

            if is_new:
                self.activity.log(
                    "feedback_submitted",
                    interviewer,
                    "candidate",
                    interview.candidate_id,
                    job_id=interview.job_id,
                    metadata={"interview_id": interview.id, "recommendation": recommendation},
                )
        return row

    def list_interviews(
        self,
        *,
        status: str | None = None,
        on_date: date | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        rows = self.repo.list_interviews(status=status, on_date=on_date)
        result = []
        needle = search.lower() if search else None
        for row in rows:
            candidate = self.repo.get_candidate(row.candidate_id)
            job = self.repo.get_job(row.job_id)
            if needle:
                haystack = " ".join(
                    [candidate.name if candidate else "", job.title if job else "", row.type]
                ).lower()
                if needle not in haystack:
                    continue
            result.append(serialize_interview(row, candidate, job))
        return result

    def get(self, interview_id: int) -> dict[str, Any]:
        interview = self.repo.get_interview(interview_id)
        if interview is None:
            raise NotFoundError("Interview not found")
        payload = serialize_interview(
            interview,
            self.repo.get_candidate(interview.candidate_id),
            self.repo.get_job(interview.job_id),
        )
        payload["structured_feedback"] = [
            {
                "interviewer_id": row.interviewer_id,
                "ratings": dict(row.ratings_json or {}),
                "strengths": list(row.strengths_json or []),
                "concerns": list(row.concerns_json or []),
                "recommendation": row.recommendation,
                "notes": row.notes,
                "submitted_at": row.submitted_at.isoformat() if row.submitted_at else None,
            }
            for row in self.repo.list_feedback(interview.id)
        ]
        return payload
