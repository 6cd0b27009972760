from datetime import date, timedelta

import pytest

from evalats.core.activity import ActorRef
from evalats.core.compliance import (
    BASE_RECOMMENDATIONS,
    ComplianceService,
    compute_bias_metrics,
    impact_ratios,
    selection_rates,
)
from evalats.core.jobs import JobService
from evalats.core.pipeline import CandidateService, PipelineService
from evalats.db.session import SessionLocal
from evalats.errors import DomainValidationError, NotFoundError


def _row(status, **values):
    return {"status": status, **values}


def test_selection_rates_skip_declined_and_missing() -> None:
    rows = [
        _row("approved", gender="female"),
        _row("pending", gender="female"),
        _row("approved", gender="male"),
        _row("approved", gender="decline_to_answer"),
        _row("approved"),
    ]
    rates = {item["group"]: item for item in selection_rates(rows, "Gender", "gender")}
    assert set(rates) == {"female", "male"}
    assert rates["female"]["rate"] == 0.5
    assert rates["male"]["rate"] == 1.0


def test_impact_ratio_against_highest_group() -> None:
    rates = [
        {"category": "Gender", "group": "male", "selected": 5, "total": 10, "rate": 0.5},
        {"category": "Gender", "group": "female", "selected": 3, "total": 10, "rate": 0.3},
    ]
    ratios = impact_ratios(rates)
    assert len(ratios) == 1
    assert ratios[0]["group"] == "female"
    assert ratios[0]["reference_group"] == "male"
    assert ratios[0]["ratio"] == 0.6
    assert ratios[0]["passes_four_fifths"] is False


def test_impact_ratio_needs_two_groups_and_handles_zero_selection() -> None:
    single = [{"category": "Race", "group": "asian", "selected": 1, "total": 2, "rate": 0.5}]
    assert impact_ratios(single) == []

    nobody = [
        {"category": "Race", "group": "asian", "selected": 0, "total": 2, "rate": 0.0},
        {"category": "Race", "group": "white", "selected": 0, "total": 3, "rate": 0.0},
    ]
    assert impact_ratios(nobody)[0]["passes_four_fifths"] is True
    assert impact_ratios(nobody)[0]["no_selections"] is True
    assert impact_ratios(single + [nobody[1]])[0]["no_selections"] is False


def test_compute_bias_metrics_adds_category_recommendations_on_failure() -> None:
    rows = [_row("approved", gender="male")] * 4 + [_row("pending", gender="female")] * 3 + [
        _row("approved", gender="female")
    ]
    metrics = compute_bias_metrics(rows)
    assert metrics["four_fifths_compliant"] is False
    assert metrics["overall_selection_rate"] == 0.625
    assert "Ensure diverse interview panels" in metrics["recommendations"]
    assert metrics["recommendations"][-3:] == BASE_RECOMMENDATIONS


def test_compute_bias_metrics_passing_only_base_recommendations() -> None:
    metrics = compute_bias_metrics([])
    assert metrics["four_fifths_compliant"] is True
    assert metrics["recommendations"] == BASE_RECOMMENDATIONS


def test_store_eeo_data_validates_values() -> None:
    with SessionLocal() as db:
        candidate = CandidateService(db).create(name="Jane", email="jane@example.com", position="Engineer")
        service = ComplianceService(db)
        with pytest.raises(DomainValidationError):
            service.store_eeo_data(candidate.id, gender="unknown")
        row = service.store_eeo_data(candidate.id, gender="female", race="asian")
        assert row.is_voluntary is True
        updated = service.store_eeo_data(candidate.id, gender="non_binary")
        assert updated.id == row.id
        assert updated.race is None


def test_bias_report_and_audit_for_job() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Engineer", department="Engineering", location="Remote")
        candidates = CandidateService(db)
        pipeline = PipelineService(db)
        compliance = ComplianceService(db)
        for index, (gender, advance_to_offer) in enumerate(
            [("male", True), ("male", True), ("female", True), ("female", False)]
        ):
            candidate = candidates.create(
                name=f"C{index}", email=f"c{index}@example.com", position="Engineer", job_id=job.id
            )
            compliance.store_eeo_data(candidate.id, gender=gender)
            if advance_to_offer:
                for _ in range(3):
                    pipeline.advance(candidate.id, ActorRef.system())

        report = compliance.calculate_bias_metrics(job.id)
        assert report["total_applicants"] == 4
        assert report["period"]["end"] == date.today().isoformat()
        assert report["four_fifths_compliant"] is False

        empty = compliance.calculate_bias_metrics(
            job.id, period_start=date.today() - timedelta(days=90), period_end=date.today() - timedelta(days=60)
        )
        assert empty["total_applicants"] == 0

        with pytest.raises(NotFoundError):
            compliance.latest_audit(job.id)
        audit = compliance.create_bias_audit(
            job.id, period_start=date.today() - timedelta(days=30), period_end=date.today()
        )
        assert audit.audit_id.startswith("audit-")
        assert audit.status == "draft"
        assert compliance.latest_audit(job.id)["four_fifths_compliant"] is False
        assert compliance.update_audit_status(audit.id, "approved").status == "approved"


def test_threshold_setting_changes_outcome() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Engineer", department="Engineering", location="Remote")
        candidates = CandidateService(db)
        pipeline = PipelineService(db)
        compliance = ComplianceService(db)
        for index, (gender, selected) in enumerate(
            [("male", True), ("male", True), ("female", True), ("female", False)]
        ):
            candidate = candidates.create(
                name=f"C{index}", email=f"c{index}@example.com", position="Engineer", job_id=job.id
            )
            compliance.store_eeo_data(candidate.id, gender=gender)
            if selected:
                for _ in range(3):
                    pipeline.advance(candidate.id, ActorRef.system())

        compliance.update_setting("four_fifths_threshold", 0.5, category="eeo", updated_by="admin")
        assert compliance.calculate_bias_metrics(job.id)["four_fifths_compliant"] is True

        with pytest.raises(DomainValidationError):
            compliance.update_setting("four_fifths_threshold", 0.5, category="nope", updated_by="admin")


def test_period_without_selections_is_flagged_in_recommendations() -> None:
    rows = [_row("pending", race="asian"), _row("pending", race="white"), _row("pending", race="white")]
    metrics = compute_bias_metrics(rows)
    assert metrics["four_fifths_compliant"] is True
    assert metrics["recommendations"][0].startswith("Race: no group had any selections")
    assert metrics["recommendations"][1:] == BASE_RECOMMENDATIONS
