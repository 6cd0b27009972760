from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from evalats.api.deps import get_actor, get_db
from evalats.api.schemas import (
    AuditStatusRequest,
    BiasAuditRequest,
    ComplianceSettingRequest,
    EEODataRequest,
    EmailSendRequest,
    TemplateCreateRequest,
    TemplateRenderRequest,
    TemplateUpdateRequest,
)
from evalats.core.activity import ActorRef
from evalats.core.analytics import AnalyticsService
from evalats.core.compliance import ComplianceService, serialize_audit, serialize_setting
from evalats.core.emails import EmailService, serialize_email, serialize_template

router = APIRouter(prefix="/api", tags=["reports"])


# analytics


@router.get("/analytics/hiring")
def hiring_metrics(db: Session = Depends(get_db)) -> dict:
    return AnalyticsService(db).hiring_metrics()


@router.get("/analytics/funnel")
def funnel_analysis(db: Session = Depends(get_db)) -> list[dict]:
    return AnalyticsService(db).funnel_analysis()


@router.get("/analytics/time-to-hire")
def time_to_hire(db: Session = Depends(get_db)) -> dict:
    return AnalyticsService(db).time_to_hire()


@router.get("/analytics/sources")
def source_effectiveness(db: Session = Depends(get_db)) -> list[dict]:
    return AnalyticsService(db).source_effectiveness()


@router.get("/analytics/interviews")
def interview_metrics(db: Session = Depends(get_db)) -> dict:
    return AnalyticsService(db).interview_metrics()


@router.get("/analytics/dashboard")
def dashboard(db: Session = Depends(get_db)) -> dict:
    return AnalyticsService(db).dashboard()


# email


@router.get("/email/templates")
def list_templates(
    type: str | None = None,
    category: str | None = None,
    active_only: bool = True,
    db: Session = Depends(get_db),
) -> list[dict]:
    return EmailService(db).list_templates(template_type=type, category=category, active_only=active_only)


@router.post("/email/templates", status_code=201)
def create_template(payload: TemplateCreateRequest, db: Session = Depends(get_db)) -> dict:
    template = EmailService(db).create_template(
        name=payload.name,
        category=payload.category,
        template_type=payload.type,
        subject=payload.subject,
        content=payload.content,
        variables=payload.variables,
        tags=payload.tags,
    )
    return serialize_template(template)


@router.patch("/email/templates/{template_id}")
def update_template(template_id: int, payload: TemplateUpdateRequest, db: Session = Depends(get_db)) -> dict:
    values = payload.model_dump(exclude_none=True)
    return serialize_template(EmailService(db).update_template(template_id, values))


@router.post("/email/templates/{template_id}/duplicate", status_code=201)
def duplicate_template(template_id: int, db: Session = Depends(get_db)) -> dict:
    return serialize_template(EmailService(db).duplicate_template(template_id))


@router.delete("/email/templates/{template_id}")
def delete_template(template_id: int, db: Session = Depends(get_db)) -> dict:
    EmailService(db).delete_template(template_id)
    return {"deleted": template_id}


@router.post("/email/templates/{template_id}/render")
def render_template(template_id: int, payload: TemplateRenderRequest, db: Session = Depends(get_db)) -> dict:
    return EmailService(db).render_template(
        template_id,
        payload.variables,
        candidate_id=payload.candidate_id,
        job_id=payload.job_id,
    )


@router.post("/email/send", status_code=201)
def send_email(
    payload: EmailSendRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    email = EmailService(db).send_email(
        to=payload.to,
        sender=actor,
        subject=payload.subject,
        content=payload.content,
        candidate_id=payload.candidate_id,
        job_id=payload.job_id,
        template_id=payload.template_id,
        variables=payload.variables,
        cc=payload.cc,
        bcc=payload.bcc,
        thread_id=payload.thread_id,
        reply_to_id=payload.reply_to_id,
        attachments=payload.attachments,
    )
    return serialize_email(email)


@router.get("/email/candidates/{candidate_id}")
def candidate_emails(candidate_id: int, db: Session = Depends(get_db)) -> list[dict]:
    return EmailService(db).emails_for_candidate(candidate_id)


@router.get("/email/threads/{thread_id}")
def email_thread(thread_id: str, db: Session = Depends(get_db)) -> list[dict]:
    return EmailService(db).thread(thread_id)


@router.post("/email/{email_id}/read")
def mark_email_read(email_id: int, db: Session = Depends(get_db)) -> dict:
    return serialize_email(EmailService(db).mark_read(email_id))


# compliance


@router.put("/compliance/eeo/{candidate_id}")
def store_eeo_data(candidate_id: int, payload: EEODataRequest, db: Session = Depends(get_db)) -> dict:
    row = ComplianceService(db).store_eeo_data(candidate_id, **payload.model_dump())
    return {"candidate_id": row.candidate_id, "is_voluntary": row.is_voluntary, "stored": True}


@router.get("/compliance/bias/{job_id}")
def bias_metrics(
    job_id: int,
    period_start: date | None = None,
    period_end: date | None = None,
    db: Session = Depends(get_db),
) -> dict:
    return ComplianceService(db).calculate_bias_metrics(job_id, period_start=period_start, period_end=period_end)


@router.post("/compliance/audits", status_code=201)
def create_bias_audit(
    payload: BiasAuditRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    audit = ComplianceService(db).create_bias_audit(
        payload.job_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        actor=actor,
    )
    return serialize_audit(audit)


@router.get("/compliance/audits/latest")
def latest_audit(job_id: int | None = None, db: Session = Depends(get_db)) -> dict:
    return ComplianceService(db).latest_audit(job_id)


@router.patch("/compliance/audits/{audit_id}")
def update_audit_status(audit_id: int, payload: AuditStatusRequest, db: Session = Depends(get_db)) -> dict:
    return serialize_audit(ComplianceService(db).update_audit_status(audit_id, payload.status))


@router.get("/compliance/settings")
def list_settings(category: str | None = None, db: Session = Depends(get_db)) -> list[dict]:
    return ComplianceService(db).list_settings(category)


@router.put("/compliance/settings/{setting_key}")
def update_setting(setting_key: str, payload: ComplianceSettingRequest, db: Session = Depends(get_db)) -> dict:
    row = ComplianceService(db).update_setting(
        setting_key,
        payload.value,
        category=payload.category,
        updated_by=payload.updated_by,
        description=payload.description,
    )
    return serialize_setting(row)
