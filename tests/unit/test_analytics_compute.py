from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

from evalats.core.analytics import (
    compute_funnel,
    compute_hiring_metrics,
    compute_interview_metrics,
    compute_source_effectiveness,
    compute_time_to_hire,
    percent,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def _candidate(candidate_id, status, source="LinkedIn", created_days_ago=5, hired_days_after=None):
    created_at = NOW - timedelta(days=created_days_ago)
    hired_at = created_at + timedelta(days=hired_days_after) if hired_days_after is not None else None
    return SimpleNamespace(
        id=candidate_id,
        name=f"Candidate {candidate_id}",
        position="Engineer",
        status=status,
        source=source,
        created_at=created_at,
        updated_at=hired_at or created_at,
        hired_at=hired_at,
    )


def test_percent_rounds_half_up_and_handles_empty_total() -> None:
    assert percent(1, 8) == 13
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(5, 0) == 0


def test_funnel_counts_cumulative_stages() -> None:
    candidates = [
        _candidate(1, "applied"),
        _candidate(2, "screening"),
        _candidate(3, "interview"),
        _candidate(4, "hired", hired_days_after=3),
    ]
    funnel = compute_funnel(candidates)
    assert [stage["stage"] for stage in funnel] == ["Applied", "Screening", "Interview", "Offer", "Hired"]
    assert [stage["count"] for stage in funnel] == [4, 3, 2, 1, 1]
    assert [stage["conversion_rate"] for stage in funnel] == [100, 75, 67, 50, 100]


def test_funnel_with_no_candidates_reports_zero_rates() -> None:
    funnel = compute_funnel([])
    assert funnel[0] == {"stage": "Applied", "count": 0, "conversion_rate": 100}
    assert all(stage["conversion_rate"] == 0 for stage in funnel[1:])


def test_hiring_metrics_counts_recent_candidates_and_completion() -> None:
    jobs = [SimpleNamespace(status="active"), SimpleNamespace(status="closed")]
    candidates = [_candidate(1, "applied", created_days_ago=2), _candidate(2, "rejected", created_days_ago=45)]
    interviews = [SimpleNamespace(status="completed"), SimpleNamespace(status="scheduled")]

    metrics = compute_hiring_metrics(jobs, candidates, interviews, now=NOW)
    assert metrics["total_jobs"] == 2
    assert metrics["active_jobs"] == 1
    assert metrics["total_candidates"] == 2
    assert metrics["candidates_by_status"] == {"applied": 1, "rejected": 1}
    assert metrics["interview_completion_rate"] == 50
    assert metrics["recent_candidates"] == 1


def test_time_to_hire_uses_ceiling_days_and_rounded_average() -> None:
    candidates = [
        _candidate(1, "hired", created_days_ago=20, hired_days_after=10),
        _candidate(2, "hired", created_days_ago=20, hired_days_after=2.5),
        _candidate(3, "offer"),
    ]
    result = compute_time_to_hire(candidates, now=NOW)
    days = sorted(item["days_to_hire"] for item in result["recent_hires"])
    assert days == [3, 10]
    assert result["avg_time_to_hire"] == 7


def test_time_to_hire_empty() -> None:
    assert compute_time_to_hire([], now=NOW) == {"avg_time_to_hire": 0, "recent_hires": []}


def test_source_effectiveness_sorted_by_volume() -> None:
    candidates = [
        _candidate(1, "hired", source="Referral", hired_days_after=1),
        _candidate(2, "interview", source="LinkedIn"),
        _candidate(3, "applied", source="LinkedIn"),
        _candidate(4, "applied", source=""),
    ]
    result = compute_source_effectiveness(candidates)
    assert result[0]["source"] == "LinkedIn"
    assert result[0]["interview_rate"] == 50
    referral = next(item for item in result if item["source"] == "Referral")
    assert referral["hire_rate"] == 100
    assert any(item["source"] == "Unknown" for item in result)


def test_interview_metrics_only_rates_interviews_with_feedback() -> None:
    interviews = [
        SimpleNamespace(status="completed", feedback="Great", rating=5),
        SimpleNamespace(status="completed", feedback="Ok", rating=4),
        SimpleNamespace(status="completed", feedback="", rating=2),
        SimpleNamespace(status="scheduled", feedback="", rating=None),
    ]
    metrics = compute_interview_metrics(interviews)
    assert metrics["total_interviews"] == 4
    assert metrics["avg_rating"] == 4.5
    assert metrics["feedback_rate"] == 50
    assert metrics["outcomes"] == {"completed": 3, "scheduled": 1, "cancelled": 0}
    assert {"rating": 5, "count": 1} in metrics["rating_distribution"]
