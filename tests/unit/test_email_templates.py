import pytest

from evalats.core.activity import ActorRef
from evalats.core.emails import EmailService, html_to_text, render_text
from evalats.core.jobs import JobService
from evalats.core.pipeline import CandidateService
from evalats.db.models import Email
from evalats.db.repositories import Repository
from evalats.db.session import SessionLocal
from evalats.errors import DomainValidationError, NotFoundError


class _FailingSender:
    def send(self, email) -> None:
        raise ConnectionError("smtp down")


def test_render_text_fills_known_and_blanks_unknown() -> None:
    assert render_text("Hi {{ candidate_name }}{{ missing }}!", {"candidate_name": "Jane"}) == "Hi Jane!"


def test_render_text_reports_syntax_errors() -> None:
    with pytest.raises(DomainValidationError):
        render_text("Hello {{ name", {})


def test_html_to_text_strips_tags_and_scripts() -> None:
    html = "<p>Hello <b>Jane</b></p><script>alert(1)</script><p>Welcome</p>"
    assert html_to_text(html) == "Hello\nJane\nWelcome"
    assert html_to_text("plain text") == "plain text"


def test_render_seeded_template_with_candidate_context() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Product Designer", department="Design", location="Remote")
        candidate = CandidateService(db).create(name="Michael", email="michael@example.com", position=job.title)
        template = Repository(db).get_template_by_name("Application Acknowledgment")

        rendered = EmailService(db).render_template(template.id, candidate_id=candidate.id, job_id=job.id)
        assert rendered["subject"] == "Thank you for your application - Product Designer"
        assert rendered["content"].startswith("Dear Michael,")
        assert Repository(db).get_template_by_name("Application Acknowledgment").use_count == 1


def test_duplicate_template_appends_copy_suffix() -> None:
    with SessionLocal() as db:
        service = EmailService(db)
        template = Repository(db).get_template_by_name("Job Offer")
        copy = service.duplicate_template(template.id)
        assert copy.name == "Job Offer (Copy)"
        assert copy.id != template.id


def test_send_email_threads_replies_and_records_failures() -> None:
    with SessionLocal() as db:
        candidate = CandidateService(db).create(name="Jane", email="jane@example.com", position="Engineer")
        service = EmailService(db)
        first = service.send_email(
            to=["jane@example.com"],
            sender=ActorRef.system(),
            subject="Hello",
            content="<p>Hi Jane</p>",
            candidate_id=candidate.id,
        )
        assert first.status == "sent"
        assert first.text_content == "Hi Jane"

        reply = service.send_email(
            to=["jane@example.com"],
            sender=ActorRef.system(),
            subject="Re: Hello",
            content="Following up",
            candidate_id=candidate.id,
            reply_to_id=first.id,
        )
        assert reply.thread_id == first.thread_id
        assert len(service.thread(first.thread_id)) == 2

        failed = EmailService(db, sender=_FailingSender()).send_email(
            to=["jane@example.com"], sender=ActorRef.system(), subject="Hi", content="Body"
        )
        assert failed.status == "failed"
        assert failed.sent_at is None


def test_send_email_requires_valid_recipient() -> None:
    with SessionLocal() as db:
        with pytest.raises(DomainValidationError):
            EmailService(db).send_email(to=["nobody"], sender=ActorRef.system(), subject="Hi", content="Body")


class _CommittedRowSender:
    def __init__(self) -> None:
        self.seen: list[tuple[str, str | None]] = []

    def send(self, email) -> None:
        with SessionLocal() as other:
            row = other.get(Email, email["id"])
            self.seen.append((email["subject"], row.status if row else None))


def test_email_is_delivered_only_after_the_row_is_committed() -> None:
    sender = _CommittedRowSender()
    with SessionLocal() as db:
        service = EmailService(db, sender=sender)
        with pytest.raises(NotFoundError):
            service.send_email(
                to=["jane@example.com"], sender=ActorRef.system(), subject="Lost", content="Body", candidate_id=999
            )
        assert sender.seen == []

        sent = service.send_email(to=["jane@example.com"], sender=ActorRef.system(), subject="Hi", content="Body")
        assert sender.seen == [("Hi", "draft")]
        db.expire_all()
        assert db.get(Email, sent.id).status == "sent"
