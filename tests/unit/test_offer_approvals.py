from datetime import UTC, datetime, timedelta

import pytest

from evalats.config import get_settings
from evalats.core.activity import ActorRef
from evalats.core.collaboration import TeamService
from evalats.core.jobs import JobService
from evalats.core.offers import OfferService, aggregate_status
from evalats.core.pipeline import CandidateService, PipelineService
from evalats.db.models import Candidate
from evalats.db.session import SessionLocal
from evalats.errors import DomainValidationError, PreconditionFailedError


def test_aggregate_status_any_rejection_returns_to_draft() -> None:
    assert aggregate_status(["approved", "rejected"], "pending_approval") == "draft"


def test_aggregate_status_counts_required_approvals() -> None:
    assert aggregate_status(["approved"], "draft", required_approvals=1) == "approved"
    assert aggregate_status(["approved"], "draft", required_approvals=2) == "pending_approval"
    assert aggregate_status(["approved", "approved"], "pending_approval", required_approvals=2) == "approved"


def test_aggregate_status_without_votes_keeps_current() -> None:
    assert aggregate_status([], "draft") == "draft"


def _setup(db, status="interview"):
    team = TeamService(db)
    manager = team.upsert_member(user_id="u-manager", email="m@example.com", name="Morgan", role="hiring_manager")
    director = team.upsert_member(user_id="u-director", email="d@example.com", name="Dana", role="admin")
    job = JobService(db).create(title="Data Scientist", department="Data", location="NYC")
    candidate = CandidateService(db).create(name="Emily", email="emily@example.com", position=job.title, job_id=job.id)
    pipeline = PipelineService(db)
    while candidate.status != status:
        pipeline.advance(candidate.id, ActorRef.system())
    return manager, director, job, candidate


def test_upsert_validates_details() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        with pytest.raises(DomainValidationError):
            OfferService(db).upsert_offer(
                candidate_id=candidate.id,
                job_id=job.id,
                details={"salary": -5},
                created_by=ActorRef(manager.id),
            )


def test_review_then_send_moves_candidate_to_offer() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 150000, "start_date": "2026-12-01"},
            created_by=ActorRef(manager.id),
        )
        assert offer.status == "draft"

        with pytest.raises(PreconditionFailedError):
            service.send_offer(offer.id, letter_url="", actor=ActorRef(manager.id))

        offer = service.review_offer(offer.id, approver_id=manager.id, status="approved")
        assert offer.status == "approved"

        offer = service.send_offer(offer.id, letter_url="https://files.example.com/offer.pdf", actor=ActorRef(manager.id))
        assert offer.status == "sent"
        assert offer.sent_at is not None
        assert db.get(Candidate, candidate.id).status == "offer"


def test_send_fails_atomically_for_screening_candidate() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db, status="screening")
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 120000},
            created_by=ActorRef(manager.id),
        )
        service.review_offer(offer.id, approver_id=manager.id, status="approved")

        with pytest.raises(PreconditionFailedError):
            service.send_offer(offer.id, letter_url="", actor=ActorRef(manager.id))

        db.expire_all()
        assert service.get_offer(offer.id)["status"] == "approved"
        assert db.get(Candidate, candidate.id).status == "screening"


def test_rejection_vote_returns_offer_to_draft_and_resubmitted_vote_replaces(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "offer_required_approvals", 2)
    with SessionLocal() as db:
        manager, director, job, candidate = _setup(db)
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 140000},
            created_by=ActorRef(manager.id),
        )

        assert service.review_offer(offer.id, approver_id=manager.id, status="approved").status == "pending_approval"
        assert service.review_offer(offer.id, approver_id=director.id, status="rejected").status == "draft"
        assert service.review_offer(offer.id, approver_id=director.id, status="approved").status == "approved"

        approvals = service.get_offer(offer.id)["approvals"]
        assert len(approvals) == 2
        assert {row["status"] for row in approvals} == {"approved"}


def test_accepting_offer_hires_candidate() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 150000},
            created_by=ActorRef(manager.id),
        )
        service.review_offer(offer.id, approver_id=manager.id, status="approved")
        service.send_offer(offer.id, letter_url="", actor=ActorRef(manager.id))
        service.mark_viewed(offer.id)

        offer = service.respond_to_offer(offer.id, accepted=True, actor=ActorRef.system())
        assert offer.status == "accepted"
        assert db.get(Candidate, candidate.id).status == "hired"

        with pytest.raises(PreconditionFailedError):
            service.upsert_offer(
                candidate_id=candidate.id,
                job_id=job.id,
                details={"salary": 160000},
                created_by=ActorRef(manager.id),
            )


def test_expire_offers_only_touches_sent_offers_past_expiry() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        service = OfferService(db)
        now = datetime.now(UTC)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 150000},
            created_by=ActorRef(manager.id),
            expires_at=now + timedelta(days=1),
        )
        service.review_offer(offer.id, approver_id=manager.id, status="approved")
        assert service.expire_offers(now + timedelta(days=2)) == []

        service.send_offer(offer.id, letter_url="", actor=ActorRef(manager.id))
        assert service.expire_offers(now) == []
        assert service.expire_offers(now + timedelta(days=2)) == [offer.id]
        assert service.get_offer(offer.id)["status"] == "expired"


def test_aggregate_status_rejection_first_still_returns_to_draft() -> None:
    assert aggregate_status(["rejected", "approved"], "pending_approval") == "draft"
    assert aggregate_status(["rejected", "approved"], "approved", required_approvals=1) == "draft"


def test_rejection_before_approval_keeps_offer_in_draft(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "offer_required_approvals", 2)
    with SessionLocal() as db:
        manager, director, job, candidate = _setup(db)
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 130000},
            created_by=ActorRef(manager.id),
        )

        assert service.review_offer(offer.id, approver_id=director.id, status="rejected").status == "draft"
        assert service.review_offer(offer.id, approver_id=manager.id, status="approved").status == "draft"


def test_upsert_on_open_offer_updates_terms_in_place() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        service = OfferService(db)
        first = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 120000},
            created_by=ActorRef(manager.id),
        )
        service.review_offer(first.id, approver_id=manager.id, status="approved")

        second = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 135000},
            created_by=ActorRef(manager.id),
        )
        assert second.id == first.id
        assert second.status == "draft"

        offers = service.list_offers(candidate_id=candidate.id)
        assert len(offers) == 1
        assert offers[0]["details"]["salary"] == 135000
        assert offers[0]["status"] == "draft"


def test_response_is_refused_once_candidate_left_offer_stage() -> None:
    with SessionLocal() as db:
        manager, _director, job, candidate = _setup(db)
        service = OfferService(db)
        offer = service.upsert_offer(
            candidate_id=candidate.id,
            job_id=job.id,
            details={"salary": 150000},
            created_by=ActorRef(manager.id),
        )
        service.review_offer(offer.id, approver_id=manager.id, status="approved")
        service.send_offer(offer.id, letter_url="", actor=ActorRef(manager.id))
        PipelineService(db).reject(candidate.id, ActorRef.system(), reason="Failed reference check")

        with pytest.raises(PreconditionFailedError):
            service.respond_to_offer(offer.id, accepted=True, actor=ActorRef.system())

        db.expire_all()
        assert service.get_offer(offer.id)["status"] == "sent"
        assert db.get(Candidate, candidate.id).status == "rejected"
