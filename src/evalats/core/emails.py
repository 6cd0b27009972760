from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from bs4 import BeautifulSoup
from jinja2 import TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.core.activity import ActorRef
from evalats.db.models import Candidate, Email, EmailTemplate, Job, TeamMember
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)

_ENV = SandboxedEnvironment(autoescape=False, keep_trailing_newline=True)


def render_text(source: str, variables: dict[str, Any]) -> str:
    """Render ``{{ name }}`` placeholders; unknown names render as empty strings."""
    try:
        return _ENV.from_string(source).render(**variables)
    except TemplateSyntaxError as exc:
        raise DomainValidationError(f"Invalid template syntax: {exc.message}") from exc


def validate_template(source: str) -> None:
    try:
        _ENV.parse(source)
    except TemplateSyntaxError as exc:
        raise DomainValidationError(f"Invalid template syntax: {exc.message}") from exc


def html_to_text(content: str) -> str:
    if "<" not in content or ">" not in content:
        return content
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style"]):
        tag.extract()
    lines = [line.strip() for line in soup.get_text("\n").splitlines() if line.strip()]
    return "\n".join(lines)


class EmailSender(Protocol):
    def send(self, email: dict[str, Any]) -> None: ...


class LoggingEmailSender:
    def send(self, email: dict[str, Any]) -> None:
        logger.info("Email to=%s subject=%s thread=%s", ",".join(email["to"]), email["subject"], email["thread_id"])


def serialize_template(row: EmailTemplate) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "category": row.category,
        "type": row.type,
        "subject": row.subject,
        "content": row.content,
        "variables": list(row.variables_json or []),
        "tags": list(row.tags_json or []),
        "is_active": row.is_active,
        "use_count": row.use_count,
        "last_used": row.last_used.isoformat() if row.last_used else None,
    }


def serialize_email(row: Email) -> dict[str, Any]:
    return {
        "id": row.id,
        "candidate_id": row.candidate_id,
        "job_id": row.job_id,
        "from": row.sender_address,
        "to": list(row.to_json or []),
        "cc": list(row.cc_json or []),
        "bcc": list(row.bcc_json or []),
        "subject": row.subject,
        "content": row.content,
        "text_content": row.text_content,
        "template_id": row.template_id,
        "status": row.status,
        "sent_at": row.sent_at.isoformat() if row.sent_at else None,
        "read_at": row.read_at.isoformat() if row.read_at else None,
        "thread_id": row.thread_id,
        "reply_to_id": row.reply_to_id,
        "attachments": list(row.attachments_json or []),
        "sender_id": row.sender_id,
    }


class EmailService:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        sender: EmailSender | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.sender = sender or LoggingEmailSender()

    def create_template(
        self,
        *,
        name: str,
        category: str,
        template_type: str,
        subject: str,
        content: str,
        variables: list[str] | None = None,
        tags: list[str] | None = None,
    ) -> EmailTemplate:
        validate_template(subject)
        validate_template(content)
        with transaction(self.session):
            if self.repo.get_template_by_name(name) is not None:
                raise DomainValidationError(f"Template '{name}' already exists")
            template = self.repo.add(
                EmailTemplate(
                    name=name,
                    category=category,
                    type=template_type,
                    subject=subject,
                    content=content,
                    variables_json=list(variables or []),
                    tags_json=list(tags or []),
                    is_active=True,
                )
            )
        return template

    def list_templates(
        self,
        template_type: str | None = None,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[dict[str, Any]]:
        rows = self.repo.list_templates(template_type=template_type, category=category, active_only=active_only)
        return [serialize_template(row) for row in rows]

    def update_template(self, template_id: int, values: dict[str, Any]) -> EmailTemplate:
        allowed = {"name", "category", "type", "subject", "content", "variables", "tags", "is_active"}
        unknown = set(values) - allowed
        if unknown:
            raise DomainValidationError(f"Unknown template fields: {sorted(unknown)}")
        for key in ("subject", "content"):
            if key in values:
                validate_template(values[key])

        with transaction(self.session):
            template = self.repo.require(EmailTemplate, template_id, "Template")
            for key, value in values.items():
                column = {"variables": "variables_json", "tags": "tags_json"}.get(key, key)
                setattr(template, column, list(value) if key in {"variables", "tags"} else value)
        return template

    def duplicate_template(self, template_id: int) -> EmailTemplate:
        with transaction(self.session):
            source = self.repo.require(EmailTemplate, template_id, "Template")
            copy = self.repo.add(
                EmailTemplate(
                    name=f"{source.name} (Copy)",
                    category=source.category,
                    type=source.type,
                    subject=source.subject,
                    content=source.content,
                    variables_json=list(source.variables_json or []),
                    tags_json=list(source.tags_json or []),
                    is_active=source.is_active,
                )
            )
        return copy

    def delete_template(self, template_id: int) -> None:
        with transaction(self.session):
            template = self.repo.require(EmailTemplate, template_id, "Template")
            self.repo.delete(template)

    def render_template(
        self,
        template_id: int,
        variables: dict[str, Any] | None = None,
        *,
        candidate_id: int | None = None,
        job_id: int | None = None,
    ) -> dict[str, Any]:
        with transaction(self.session):
            template = self.repo.require(EmailTemplate, template_id, "Template")
            context = self._context(candidate_id, job_id)
            context.update(variables or {})
            subject = render_text(template.subject, context).strip()
            content = render_text(template.content, context)
            template.use_count = (template.use_count or 0) + 1
            template.last_used = datetime.now(UTC)
        return {"subject": subject, "content": content, "template": template.name}

    def send_email(
        self,
        *,
        to: list[str],
        sender: ActorRef,
        subject: str = "",
        content: str = "",
        candidate_id: int | None = None,
        job_id: int | None = None,
        template_id: int | None = None,
        variables: dict[str, Any] | None = None,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        thread_id: str | None = None,
        reply_to_id: int | None = None,
        attachments: list[dict[str, Any]] | None = None,
    ) -> Email:
        recipients = [address.strip() for address in to if address.strip()]
        if not recipients:
            raise DomainValidationError("At least one recipient is required")
        if any("@" not in address for address in recipients):
            raise DomainValidationError("Recipient addresses must be valid emails")

        if template_id is not None:
            rendered = self.render_template(template_id, variables, candidate_id=candidate_id, job_id=job_id)
            subject = subject or rendered["subject"]
            content = content or rendered["content"]
        if not subject.strip() or not content.strip():
            raise DomainValidationError("Email subject and content are required")

        with transaction(self.session):
            if candidate_id is not None:
                self.repo.require(Candidate, candidate_id, "Candidate")
            sender_address = self.settings.mail_from
            if not sender.is_system:
                member = self.repo.require(TeamMember, sender.team_member_id, "Team member")
                sender_address = member.email or sender_address

            if reply_to_id is not None:
                parent = self.repo.require(Email, reply_to_id, "Email")
                thread_id = thread_id or parent.thread_id

            email = self.repo.add(
                Email(
                    candidate_id=candidate_id,
                    job_id=job_id,
                    sender_address=sender_address,
                    to_json=recipients,
                    cc_json=list(cc or []),
                    bcc_json=list(bcc or []),
                    subject=subject,
                    content=content,
                    text_content=html_to_text(content),
                    template_id=template_id,
                    status="draft",
                    thread_id=thread_id or f"thread-{uuid.uuid4().hex[:16]}",
                    reply_to_id=reply_to_id,
                    attachments_json=list(attachments or []),
                    sender_id=sender.team_member_id,
                )
            )
        # delivered only once the draft row is committed
        try:
            self.sender.send(serialize_email(email))
        except Exception:
            logger.exception("Email delivery failed email_id=%s", email.id)
            status, sent_at = "failed", None
        else:
            status, sent_at = "sent", datetime.now(UTC)

        with transaction(self.session):
            email.status = status
            email.sent_at = sent_at
        return email

    def emails_for_candidate(self, candidate_id: int) -> list[dict[str, Any]]:
        return [serialize_email(row) for row in self.repo.list_emails_for_candidate(candidate_id)]

    def thread(self, thread_id: str) -> list[dict[str, Any]]:
        rows = self.repo.list_thread(thread_id)
        if not rows:
            raise NotFoundError("Email thread not found")
        return [serialize_email(row) for row in rows]

    def mark_read(self, email_id: int) -> Email:
        with transaction(self.session):
            email = self.repo.require(Email, email_id, "Email")
            if email.read_at is None:
                email.read_at = datetime.now(UTC)
        return email

    def _context(self, candidate_id: int | None, job_id: int | None) -> dict[str, Any]:
        context: dict[str, Any] = {"company_name": self.settings.company_name}
        if candidate_id is not None:
            candidate = self.repo.get_candidate(candidate_id)
            if candidate is None:
                raise NotFoundError("Candidate not found")
            context["candidate_name"] = candidate.name
            context["candidate_email"] = candidate.email
            context.setdefault("job_title", candidate.position)
        if job_id is not None:
            job = self.repo.get_job(job_id)
            if job is None:
                raise NotFoundError("Job not found")
            context["job_title"] = job.title
        return context
