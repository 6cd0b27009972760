import pytest

from evalats.core.activity import ActivityLogger, ActivityService, ActorRef, resolve_actor
from evalats.core.collaboration import TeamService
from evalats.core.pipeline import CandidateService
from evalats.db.models import Candidate
from evalats.db.repositories import Repository
from evalats.db.session import SessionLocal, transaction
from evalats.errors import DomainError, ErrorKind, NotFoundError, PreconditionFailedError


def test_domain_errors_serialize_kind_and_detail() -> None:
    error = PreconditionFailedError("Offer must be approved before sending")
    assert isinstance(error, ValueError)
    assert error.to_dict() == {"error": "precondition_failed", "detail": "Offer must be approved before sending"}
    assert DomainError("x", kind=ErrorKind.NOT_FOUND).kind == ErrorKind.NOT_FOUND


def test_resolve_actor_maps_user_id_to_member() -> None:
    with SessionLocal() as db:
        member = TeamService(db).upsert_member(user_id="u-1", email="a@example.com", name="Avery", role="recruiter")
        repo = Repository(db)
        assert resolve_actor(repo, None).is_system
        assert resolve_actor(repo, "u-1") == ActorRef(member.id)
        with pytest.raises(NotFoundError):
            resolve_actor(repo, "u-missing")


def test_names_are_frozen_at_write_time() -> None:
    with SessionLocal() as db:
        member = TeamService(db).upsert_member(user_id="u-1", email="a@example.com", name="Avery", role="recruiter")
        candidate = CandidateService(db).create(name="Jane", email="jane@example.com", position="Engineer")
        logger = ActivityLogger(db)
        with transaction(db):
            logger.log("status_changed", ActorRef(member.id), "candidate", candidate.id)

        with transaction(db):
            db.get(Candidate, candidate.id).name = "Jane Renamed"
        TeamService(db).upsert_member(user_id="u-1", email="a@example.com", name="Avery Renamed", role="recruiter")

        entry = ActivityService(db).feed()[0]
        assert entry["actor"]["name"] == "Avery"
        assert entry["target"]["name"] == "Jane"


def test_system_actor_and_missing_target_names() -> None:
    with SessionLocal() as db:
        with transaction(db):
            entry = ActivityLogger(db).log("status_changed", ActorRef.system(), "candidate", 424242)
        assert entry.actor_name == "System"
        assert entry.target_name == "Unknown"


def test_idempotency_key_deduplicates_entries() -> None:
    with SessionLocal() as db:
        candidate = CandidateService(db).create(name="Jane", email="jane@example.com", position="Engineer")
        logger = ActivityLogger(db)
        with transaction(db):
            first = logger.log("candidate_applied", ActorRef.system(), "candidate", candidate.id, idempotency_key="k1")
            second = logger.log("candidate_applied", ActorRef.system(), "candidate", candidate.id, idempotency_key="k1")
        assert first.id == second.id
        assert len(ActivityService(db).feed()) == 1


def test_rolled_back_notifications_are_not_delivered(notifications) -> None:
    with SessionLocal() as db:
        member = TeamService(db).upsert_member(user_id="u-1", email="a@example.com", name="Avery", role="recruiter")
        logger = ActivityLogger(db)
        with pytest.raises(RuntimeError):
            with transaction(db):
                logger.notify(member.id, "status_update", ActorRef.system(), message="moved")
                raise RuntimeError("boom")
        assert notifications.delivered == []
        assert ActivityService(db).notifications_for(member.id) == []

        with transaction(db):
            logger.notify(member.id, "status_update", ActorRef.system(), message="moved")
        assert [item["message"] for item in notifications.delivered] == ["moved"]


def test_feed_filters_by_job_and_marks_read() -> None:
    with SessionLocal() as db:
        logger = ActivityLogger(db)
        with transaction(db):
            logger.log("team_member_added", ActorRef.system(), "job", 1, job_id=1)
            logger.log("team_member_added", ActorRef.system(), "job", 2, job_id=2)
        service = ActivityService(db)
        feed = service.feed(job_id=2)
        assert [item["job_id"] for item in feed] == [2]
        assert service.mark_read(feed[0]["id"])["is_read"] is True
