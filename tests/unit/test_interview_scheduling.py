from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from evalats.core.activity import ActorRef
from evalats.core.jobs import JobService
from evalats.core.pipeline import CandidateService
from evalats.core.scheduling import (
    InterviewService,
    available_slots,
    find_conflicts,
    parse_time,
    window_for,
)
from evalats.db.session import SessionLocal
from evalats.errors import DomainValidationError, PreconditionFailedError

DAY = date(2026, 11, 2)


def _interview(interview_id, time_value, *, candidate_id=1, interviewers=(), duration=60, status="scheduled"):
    return SimpleNamespace(
        id=interview_id,
        status=status,
        scheduled_date=DAY,
        scheduled_time=time_value,
        duration_minutes=duration,
        candidate_id=candidate_id,
        interviewers_json=list(interviewers),
    )


def test_parse_time_rejects_garbage() -> None:
    assert parse_time("09:30") == (9, 30)
    for value in ("9", "25:00", "10:75", "ab:cd"):
        with pytest.raises(DomainValidationError):
            parse_time(value)


def test_conflict_on_shared_interviewer_is_case_insensitive() -> None:
    existing = [_interview(1, "10:00", candidate_id=7, interviewers=["Alice Johnson"])]
    conflicts = find_conflicts(
        existing,
        window=window_for(DAY, "10:30", 30),
        candidate_id=8,
        interviewers=["alice johnson"],
    )
    assert len(conflicts) == 1
    assert conflicts[0].interview_id == 1
    assert "alice johnson" in conflicts[0].reason


def test_back_to_back_interviews_do_not_conflict() -> None:
    existing = [_interview(1, "10:00", candidate_id=3, interviewers=["Bob"])]
    conflicts = find_conflicts(existing, window=window_for(DAY, "11:00", 60), candidate_id=3, interviewers=["Bob"])
    assert conflicts == []


def test_cancelled_interviews_are_ignored() -> None:
    existing = [_interview(1, "10:00", candidate_id=3, status="cancelled")]
    assert find_conflicts(existing, window=window_for(DAY, "10:00", 60), candidate_id=3, interviewers=[]) == []


def test_available_slots_skip_busy_windows() -> None:
    existing = [_interview(1, "10:00", interviewers=["Bob"], duration=60)]
    slots = available_slots(DAY, existing, duration_minutes=60, interviewers=["Bob"])
    assert slots[0] == "09:00"
    assert "09:30" not in slots
    assert "10:00" not in slots
    assert "10:30" not in slots
    assert "11:00" in slots
    assert slots[-1] == "16:00"


def test_available_slots_ignore_other_interviewers_and_past_times() -> None:
    existing = [_interview(1, "10:00", interviewers=["Carol"])]
    slots = available_slots(
        DAY,
        existing,
        duration_minutes=30,
        interviewers=["Bob"],
        now=datetime(2026, 11, 2, 12, 0),
    )
    assert slots[0] == "12:30"
    assert slots[-1] == "16:30"


def test_schedule_rejects_conflicts_and_terminal_candidates() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Engineer", department="Engineering", location="Remote")
        first = CandidateService(db).create(name="Ann", email="ann@example.com", position="Engineer", job_id=job.id)
        second = CandidateService(db).create(name="Ben", email="ben@example.com", position="Engineer", job_id=job.id)
        service = InterviewService(db)

        service.schedule(
            candidate_id=first.id,
            job_id=job.id,
            interview_type="Technical",
            day=DAY,
            time_value="10:00",
            actor=ActorRef.system(),
            interviewers=["Alice"],
        )
        with pytest.raises(PreconditionFailedError):
            service.schedule(
                candidate_id=second.id,
                job_id=job.id,
                interview_type="Technical",
                day=DAY,
                time_value="10:30",
                actor=ActorRef.system(),
                interviewers=["Alice"],
            )

        second.status = "rejected"
        db.commit()
        with pytest.raises(PreconditionFailedError):
            service.schedule(
                candidate_id=second.id,
                job_id=job.id,
                interview_type="Culture",
                day=DAY,
                time_value="14:00",
                actor=ActorRef.system(),
            )


def test_add_feedback_completes_interview() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Engineer", department="Engineering", location="Remote")
        candidate = CandidateService(db).create(name="Ann", email="ann@example.com", position="Engineer")
        service = InterviewService(db)
        interview = service.schedule(
            candidate_id=candidate.id,
            job_id=job.id,
            interview_type="Technical",
            day=DAY,
            time_value="09:00",
            actor=ActorRef.system(),
        )
        with pytest.raises(DomainValidationError):
            service.add_feedback(interview.id, feedback="Meh", rating=6)

        interview = service.add_feedback(interview.id, feedback="Solid", rating=4, recommendation="yes")
        assert interview.status == "completed"
        assert service.get(interview.id)["rating"] == 4


def test_overnight_interview_blocks_the_next_morning() -> None:
    next_day = DAY + timedelta(days=1)
    with SessionLocal() as db:
        job = JobService(db).create(title="Engineer", department="Engineering", location="Remote")
        first = CandidateService(db).create(name="Ann", email="ann@example.com", position="Engineer", job_id=job.id)
        second = CandidateService(db).create(name="Ben", email="ben@example.com", position="Engineer", job_id=job.id)
        service = InterviewService(db)

        service.schedule(
            candidate_id=first.id,
            job_id=job.id,
            interview_type="Panel",
            day=DAY,
            time_value="23:30",
            duration_minutes=120,
            actor=ActorRef.system(),
            interviewers=["Ann Lee"],
        )
        with pytest.raises(PreconditionFailedError):
            service.schedule(
                candidate_id=second.id,
                job_id=job.id,
                interview_type="Technical",
                day=next_day,
                time_value="00:30",
                actor=ActorRef.system(),
                interviewers=["Ann Lee"],
            )
        later = service.schedule(
            candidate_id=second.id,
            job_id=job.id,
            interview_type="Technical",
            day=next_day,
            time_value="01:30",
            actor=ActorRef.system(),
            interviewers=["Ann Lee"],
        )
        assert later.scheduled_time == "01:30"

        with pytest.raises(DomainValidationError):
            service.schedule(
                candidate_id=second.id,
                job_id=job.id,
                interview_type="Onsite",
                day=next_day,
                time_value="09:00",
                duration_minutes=25 * 60,
                actor=ActorRef.system(),
            )


def test_available_slots_respect_interviews_from_the_previous_day() -> None:
    overnight = _interview(1, "22:00", interviewers=["Bob"], duration=12 * 60)
    slots = available_slots(DAY + timedelta(days=1), [overnight], duration_minutes=60, interviewers=["Bob"])
    assert slots[0] == "10:00"
