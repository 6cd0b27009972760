from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, date, datetime, timedelta
from typing import Any, get_args

from sqlalchemy.orm import Session

from evalats.core.activity import ActorRef
from evalats.db.models import BiasAudit, Candidate, ComplianceSetting, EEOData, Job
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError
from evalats.types import AuditStatus, BiasGroupMetric, ComplianceCategory, DisabilityStatus, Gender, Race, VeteranStatus

logger = logging.getLogger(__name__)

DECLINED = "decline_to_answer"
DEFAULT_THRESHOLD = 0.8
CATEGORIES: list[tuple[str, str]] = [
    ("Race", "race"),
    ("Gender", "gender"),
    ("Veteran Status", "veteran_status"),
    ("Disability", "disability_status"),
]
ALLOWED_VALUES: dict[str, set[str]] = {
    "race": set(get_args(Race)),
    "gender": set(get_args(Gender)),
    "veteran_status": set(get_args(VeteranStatus)),
    "disability_status": set(get_args(DisabilityStatus)),
}
SETTING_CATEGORIES = set(get_args(ComplianceCategory))
AUDIT_STATUSES = set(get_args(AuditStatus))

BASE_RECOMMENDATIONS = [
    "Continue monitoring selection rates across all protected categories",
    "Provide unconscious bias training to all hiring team members",
    "Document all hiring decisions and the rationale behind them",
]
FAILING_RECOMMENDATIONS = [
    "Review job requirements to ensure they are essential and job-related",
    "Expand recruitment sources to reach more diverse candidate pools",
    "Implement structured interviews with standardized questions",
    "Consider using blind resume review for initial screening",
]
CATEGORY_RECOMMENDATIONS = {
    "Gender": [
        "Review job descriptions for gendered language that may discourage applicants",
        "Ensure diverse interview panels",
    ],
    "Race": [
        "Partner with diverse professional organizations and universities",
        "Review recruitment materials for inclusive imagery and language",
    ],
    "Disability": [
        "Ensure job postings include accommodation statements",
        "Review physical requirements to ensure they are essential",
    ],
}


def selection_rates(rows: list[dict[str, Any]], category: str, field: str) -> list[dict[str, Any]]:
    groups: dict[str, dict[str, int]] = {}
    for row in rows:
        value = row.get(field)
        if not value or value == DECLINED:
            continue
        stats = groups.setdefault(value, {"selected": 0, "total": 0})
        stats["total"] += 1
        if row.get("status") == "approved":
            stats["selected"] += 1
    return [
        {
            "category": category,
            "group": group,
            "selected": stats["selected"],
            "total": stats["total"],
            "rate": stats["selected"] / stats["total"] if stats["total"] else 0.0,
        }
        for group, stats in groups.items()
    ]


def impact_ratios(rates: list[dict[str, Any]], threshold: float = DEFAULT_THRESHOLD) -> list[dict[str, Any]]:
    if len(rates) < 2:
        return []
    reference = max(rates, key=lambda item: item["rate"])
    ratios = []
    for group in rates:
        if group is reference:
            continue
        # nobody selected in any group: reported as 1.0 and flagged, not evaluated
        no_selections = reference["rate"] <= 0
        ratio = 1.0 if no_selections else group["rate"] / reference["rate"]
        ratios.append(
            {
                "category": group["category"],
                "group": group["group"],
                "reference_group": reference["group"],
                "ratio": round(ratio, 4),
                "passes_four_fifths": ratio >= threshold,
                "no_selections": no_selections,
            }
        )
    return ratios


def generate_recommendations(ratios: list[dict[str, Any]]) -> list[str]:
    failing = {item["category"] for item in ratios if not item["passes_four_fifths"]}
    recommendations: list[str] = []
    for category in sorted({item["category"] for item in ratios if item.get("no_selections")}):
        recommendations.append(
            f"{category}: no group had any selections in this period; impact ratios are reported as 1.0 and were not evaluated"
        )
    if failing:
        recommendations.extend(FAILING_RECOMMENDATIONS)
        for category in ("Gender", "Race", "Disability"):
            if category in failing:
                recommendations.extend(CATEGORY_RECOMMENDATIONS[category])
    recommendations.extend(BASE_RECOMMENDATIONS)
    return recommendations


def compute_bias_metrics(rows: list[dict[str, Any]], threshold: float = DEFAULT_THRESHOLD) -> dict[str, Any]:
    by_group: list[dict[str, Any]] = []
    ratios: list[dict[str, Any]] = []
    for category, field in CATEGORIES:
        rates = selection_rates(rows, category, field)
        by_group.extend(rates)
        ratios.extend(impact_ratios(rates, threshold))

    total = len(rows)
    selected = sum(1 for row in rows if row.get("status") == "approved")

    ratio_lookup = {(item["category"], item["group"]): item for item in ratios}
    groups = []
    for rate in by_group:
        ratio = ratio_lookup.get((rate["category"], rate["group"]))
        groups.append(
            BiasGroupMetric(
                category=rate["category"],
                group=rate["group"],
                applicants=rate["total"],
                selected=rate["selected"],
                selection_rate=round(rate["rate"], 4),
                impact_ratio=ratio["ratio"] if ratio else 1.0,
                passes_four_fifths=ratio["passes_four_fifths"] if ratio else True,
            ).model_dump()
        )

    return {
        "overall_selection_rate": round(selected / total, 4) if total else 0.0,
        "groups": groups,
        "impact_ratios": ratios,
        "four_fifths_compliant": all(item["passes_four_fifths"] for item in ratios),
        "recommendations": generate_recommendations(ratios),
    }


def serialize_audit(audit: BiasAudit) -> dict[str, Any]:
    return {
        "id": audit.id,
        "audit_id": audit.audit_id,
        "job_id": audit.job_id,
        "audit_date": audit.audit_date.isoformat() if audit.audit_date else None,
        "period": {"start": audit.period_start.isoformat(), "end": audit.period_end.isoformat()},
        "metrics": list(audit.metrics_json or []),
        "overall_selection_rate": audit.overall_selection_rate,
        "four_fifths_compliant": audit.four_fifths_compliant,
        "recommendations": list(audit.recommendations_json or []),
        "status": audit.status,
    }


def serialize_setting(row: ComplianceSetting) -> dict[str, Any]:
    return {
        "setting_key": row.setting_key,
        "value": row.value_json,
        "category": row.category,
        "description": row.description,
        "updated_by": row.updated_by,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


class ComplianceService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = Repository(session)

    def store_eeo_data(
        self,
        candidate_id: int,
        *,
        race: str | None = None,
        gender: str | None = None,
        veteran_status: str | None = None,
        disability_status: str | None = None,
    ) -> EEOData:
        values = {
            "race": race,
            "gender": gender,
            "veteran_status": veteran_status,
            "disability_status": disability_status,
        }
        for field, value in values.items():
            if value is not None and value not in ALLOWED_VALUES[field]:
                raise DomainValidationError(f"Invalid {field} value '{value}'")

        with transaction(self.session):
            self.repo.require(Candidate, candidate_id, "Candidate")
            row = self.repo.get_eeo_data(candidate_id)
            if row is None:
                row = self.repo.add(EEOData(candidate_id=candidate_id, is_voluntary=True, **values))
            else:
                for field, value in values.items():
                    setattr(row, field, value)
                row.collected_date = datetime.now(UTC)
        return row

    def calculate_bias_metrics(
        self,
        job_id: int,
        *,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> dict[str, Any]:
        self.repo.require(Job, job_id, "Job")
        period_end = period_end or date.today()
        period_start = period_start or period_end - timedelta(days=30)
        if period_start > period_end:
            raise DomainValidationError("period_start must not be after period_end")

        applications = [
            row
            for row in self.repo.list_applications_for_job(job_id)
            if period_start <= row.applied_date <= period_end
        ]
        eeo = {row.candidate_id: row for row in self.repo.list_eeo_data([app.candidate_id for app in applications])}
        rows = []
        for application in applications:
            data = eeo.get(application.candidate_id)
            rows.append(
                {
                    "candidate_id": application.candidate_id,
                    "status": application.status,
                    "race": data.race if data else None,
                    "gender": data.gender if data else None,
                    "veteran_status": data.veteran_status if data else None,
                    "disability_status": data.disability_status if data else None,
                }
            )

        metrics = compute_bias_metrics(rows, self._threshold())
        return {
            "job_id": job_id,
            "period": {"start": period_start.isoformat(), "end": period_end.isoformat()},
            "total_applicants": len(rows),
            **metrics,
        }

    def create_bias_audit(
        self,
        job_id: int | None,
        *,
        period_start: date,
        period_end: date,
        actor: ActorRef | None = None,
    ) -> BiasAudit:
        if job_id is not None:
            report = self.calculate_bias_metrics(job_id, period_start=period_start, period_end=period_end)
        else:
            report = compute_bias_metrics([], self._threshold())

        with transaction(self.session):
            audit = self.repo.add(
                BiasAudit(
                    audit_id=f"audit-{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:6]}",
                    job_id=job_id,
                    period_start=period_start,
                    period_end=period_end,
                    metrics_json=report["groups"],
                    overall_selection_rate=report["overall_selection_rate"],
                    four_fifths_compliant=report["four_fifths_compliant"],
                    recommendations_json=report["recommendations"],
                    status="draft",
                )
            )
        logger.info(
            "Bias audit %s created job=%s compliant=%s by=%s",
            audit.audit_id,
            job_id,
            audit.four_fifths_compliant,
            actor.team_member_id if actor else None,
        )
        return audit

    def update_audit_status(self, audit_id: int, status: str) -> BiasAudit:
        if status not in AUDIT_STATUSES:
            raise DomainValidationError(f"Audit status must be one of {sorted(AUDIT_STATUSES)}")
        with transaction(self.session):
            audit = self.repo.require(BiasAudit, audit_id, "Audit")
            audit.status = status
        return audit

    def latest_audit(self, job_id: int | None = None) -> dict[str, Any]:
        audit = self.repo.get_latest_audit(job_id)
        if audit is None:
            raise NotFoundError("Audit not found")
        return serialize_audit(audit)

    def update_setting(
        self,
        setting_key: str,
        value: Any,
        *,
        category: str,
        updated_by: str,
        description: str = "",
    ) -> ComplianceSetting:
        if category not in SETTING_CATEGORIES:
            raise DomainValidationError(f"Category must be one of {sorted(SETTING_CATEGORIES)}")
        with transaction(self.session):
            row = self.repo.get_setting(setting_key)
            if row is None:
                row = self.repo.add(
                    ComplianceSetting(
                        setting_key=setting_key,
                        value_json=value,
                        category=category,
                        description=description,
                        updated_by=updated_by,
                    )
                )
            else:
                row.value_json = value
                row.category = category
                row.updated_by = updated_by
                if description:
                    row.description = description
        return row

    def list_settings(self, category: str | None = None) -> list[dict[str, Any]]:
        return [serialize_setting(row) for row in self.repo.list_settings(category)]

    def _threshold(self) -> float:
        row = self.repo.get_setting("four_fifths_threshold")
        if row is None:
            return DEFAULT_THRESHOLD
        try:
            return float(row.value_json)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid four_fifths_threshold=%r", row.value_json)
            return DEFAULT_THRESHOLD
