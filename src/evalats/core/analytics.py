from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from evalats.db.base import ensure_utc
from evalats.db.models import Candidate, Interview, Job
from evalats.db.repositories import Repository

FUNNEL_STAGES: list[tuple[str, frozenset[str]]] = [
    ("Applied", frozenset()),
    ("Screening", frozenset({"screening", "interview", "offer", "hired"})),
    ("Interview", frozenset({"interview", "offer", "hired"})),
    ("Offer", frozenset({"offer", "hired"})),
    ("Hired", frozenset({"hired"})),
]
INTERVIEWED_STATUSES = frozenset({"interview", "offer", "hired"})
RECENT_WINDOW = timedelta(days=30)
RECENT_HIRES_LIMIT = 10


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return math.floor(part / whole * 100 + 0.5)


def compute_hiring_metrics(
    jobs: Iterable[Job],
    candidates: Iterable[Candidate],
    interviews: Iterable[Interview],
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    jobs, candidates, interviews = list(jobs), list(candidates), list(interviews)
    now = ensure_utc(now) or datetime.now(UTC)
    cutoff = now - RECENT_WINDOW

    by_status: dict[str, int] = {}
    for candidate in candidates:
        by_status[candidate.status] = by_status.get(candidate.status, 0) + 1

    completed = sum(1 for row in interviews if row.status == "completed")
    return {
        "total_jobs": len(jobs),
        "active_jobs": sum(1 for job in jobs if job.status == "active"),
        "total_candidates": len(candidates),
        "total_interviews": len(interviews),
        "candidates_by_status": by_status,
        "interview_completion_rate": percent(completed, len(interviews)),
        "recent_candidates": sum(1 for row in candidates if ensure_utc(row.created_at) > cutoff),
    }


def compute_funnel(candidates: Iterable[Candidate]) -> list[dict[str, Any]]:
    statuses = [row.status for row in candidates]
    stages: list[dict[str, Any]] = []
    previous: int | None = None
    for name, reached in FUNNEL_STAGES:
        count = len(statuses) if not reached else sum(1 for status in statuses if status in reached)
        rate = 100 if previous is None else percent(count, previous)
        stages.append({"stage": name, "count": count, "conversion_rate": rate})
        previous = count
    return stages


def compute_time_to_hire(candidates: Iterable[Candidate], *, now: datetime | None = None) -> dict[str, Any]:
    now = ensure_utc(now) or datetime.now(UTC)
    hires = []
    for candidate in candidates:
        if candidate.status != "hired":
            continue
        applied_at = ensure_utc(candidate.created_at)
        hired_at = ensure_utc(candidate.hired_at) or ensure_utc(candidate.updated_at) or now
        days = math.ceil((hired_at - applied_at).total_seconds() / 86400)
        hires.append(
            {
                "candidate_id": candidate.id,
                "candidate_name": candidate.name,
                "days_to_hire": days,
                "job_title": candidate.position,
                "hired_at": hired_at,
            }
        )

    hires.sort(key=lambda item: (item["hired_at"], item["candidate_id"]))
    average = math.floor(sum(item["days_to_hire"] for item in hires) / len(hires) + 0.5) if hires else 0
    recent = [
        {**item, "hired_at": item["hired_at"].isoformat()} for item in hires[-RECENT_HIRES_LIMIT:]
    ]
    return {"avg_time_to_hire": average, "recent_hires": recent}


def compute_source_effectiveness(candidates: Iterable[Candidate]) -> list[dict[str, Any]]:
    grouped: dict[str, dict[str, Any]] = {}
    for candidate in candidates:
        source = candidate.source or "Unknown"
        bucket = grouped.setdefault(
            source, {"source": source, "total_applications": 0, "hired": 0, "interviewed": 0}
        )
        bucket["total_applications"] += 1
        if candidate.status == "hired":
            bucket["hired"] += 1
        if candidate.status in INTERVIEWED_STATUSES:
            bucket["interviewed"] += 1

    result = [
        {
            **bucket,
            "hire_rate": percent(bucket["hired"], bucket["total_applications"]),
            "interview_rate": percent(bucket["interviewed"], bucket["total_applications"]),
        }
        for bucket in grouped.values()
    ]
    result.sort(key=lambda item: item["total_applications"], reverse=True)
    return result


def compute_interview_metrics(interviews: Iterable[Interview]) -> dict[str, Any]:
    interviews = list(interviews)
    with_feedback = [row for row in interviews if row.feedback and row.rating]
    average = (
        round(sum(row.rating for row in with_feedback) / len(with_feedback), 1) if with_feedback else 0.0
    )
    distribution = [
        {"rating": rating, "count": sum(1 for row in with_feedback if row.rating == rating)}
        for rating in range(1, 6)
    ]
    return {
        "total_interviews": len(interviews),
        "avg_rating": average,
        "rating_distribution": distribution,
        "outcomes": {
            "completed": sum(1 for row in interviews if row.status == "completed"),
            "scheduled": sum(1 for row in interviews if row.status == "scheduled"),
            "cancelled": sum(1 for row in interviews if row.status == "cancelled"),
        },
        "feedback_rate": percent(len(with_feedback), len(interviews)),
    }


class AnalyticsService:
    def __init__(self, session: Session):
        self.repo = Repository(session)

    def hiring_metrics(self, now: datetime | None = None) -> dict[str, Any]:
        return compute_hiring_metrics(
            self.repo.list_all_jobs(),
            self.repo.list_all_candidates(),
            self.repo.list_all_interviews(),
            now=now,
        )

    def funnel_analysis(self) -> list[dict[str, Any]]:
        return compute_funnel(self.repo.list_all_candidates())

    def time_to_hire(self, now: datetime | None = None) -> dict[str, Any]:
        return compute_time_to_hire(self.repo.list_all_candidates(), now=now)

    def source_effectiveness(self) -> list[dict[str, Any]]:
        return compute_source_effectiveness(self.repo.list_all_candidates())

    def interview_metrics(self) -> dict[str, Any]:
        return compute_interview_metrics(self.repo.list_all_interviews())

    def dashboard(self) -> dict[str, Any]:
        return {
            "hiring": self.hiring_metrics(),
            "funnel": self.funnel_analysis(),
            "time_to_hire": self.time_to_hire(),
            "sources": self.source_effectiveness(),
            "interviews": self.interview_metrics(),
        }
