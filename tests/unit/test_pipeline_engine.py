import pytest

from evalats.core.activity import ActorRef
from evalats.core.jobs import JobService
from evalats.core.pipeline import (
    CandidateService,
    PipelineService,
    can_advance,
    can_reject,
    next_status,
)
from evalats.db.models import Application, Candidate
from evalats.db.repositories import Repository
from evalats.db.session import SessionLocal
from evalats.errors import DomainValidationError, ErrorKind, InvalidTransitionError


def _candidate(db, job_id=None):
    return CandidateService(db).create(
        name="Jane Doe",
        email="jane@example.com",
        position="Backend Engineer",
        job_id=job_id,
        source="LinkedIn",
    )


def test_next_status_follows_linear_order() -> None:
    assert next_status("applied") == "screening"
    assert next_status("screening") == "interview"
    assert next_status("interview") == "offer"
    assert next_status("offer") == "hired"
    assert next_status("hired") is None
    assert next_status("rejected") is None


def test_terminal_statuses_cannot_move() -> None:
    for status in ("hired", "rejected", "withdrawn"):
        assert not can_advance(status)
        assert not can_reject(status)
    assert can_reject("offer")
    assert not can_reject("unknown")


def test_create_writes_single_applied_timeline_entry() -> None:
    with SessionLocal() as db:
        candidate = _candidate(db)
        timeline = Repository(db).list_timeline(candidate.id)
        assert candidate.status == "applied"
        assert [entry.type for entry in timeline] == ["applied"]
        assert timeline[0].title == "Application Received"


def test_create_rejects_bad_email() -> None:
    with SessionLocal() as db:
        with pytest.raises(DomainValidationError):
            CandidateService(db).create(name="Bad", email="not-an-email", position="Engineer")


def test_advance_through_pipeline_appends_one_entry_per_move() -> None:
    with SessionLocal() as db:
        candidate = _candidate(db)
        pipeline = PipelineService(db)
        for expected in ("screening", "interview", "offer", "hired"):
            candidate = pipeline.advance(candidate.id, ActorRef.system())
            assert candidate.status == expected

        timeline = Repository(db).list_timeline(candidate.id)
        assert [entry.type for entry in timeline] == ["applied", "screening", "interview", "offer", "hired"]
        assert candidate.hired_at is not None


def test_advance_from_hired_is_invalid_and_leaves_state_untouched() -> None:
    with SessionLocal() as db:
        candidate = _candidate(db)
        pipeline = PipelineService(db)
        for _ in range(4):
            pipeline.advance(candidate.id, ActorRef.system())

        with pytest.raises(InvalidTransitionError) as excinfo:
            pipeline.advance(candidate.id, ActorRef.system())
        assert excinfo.value.kind == ErrorKind.INVALID_TRANSITION

        db.expire_all()
        assert db.get(Candidate, candidate.id).status == "hired"
        assert len(Repository(db).list_timeline(candidate.id)) == 5


def test_reject_with_reason_records_description_and_blocks_further_moves() -> None:
    with SessionLocal() as db:
        candidate = _candidate(db)
        pipeline = PipelineService(db)
        pipeline.advance(candidate.id, ActorRef.system())
        candidate = pipeline.reject(candidate.id, ActorRef.system(), reason="Not a fit")

        assert candidate.status == "rejected"
        last = Repository(db).list_timeline(candidate.id)[-1]
        assert last.type == "rejected"
        assert "Not a fit" in last.description

        with pytest.raises(InvalidTransitionError):
            pipeline.reject(candidate.id, ActorRef.system())
        with pytest.raises(InvalidTransitionError):
            pipeline.withdraw(candidate.id, ActorRef.system())
        with pytest.raises(InvalidTransitionError):
            pipeline.advance(candidate.id, ActorRef.system())

        db.expire_all()
        assert db.get(Candidate, candidate.id).status == "rejected"
        assert len(Repository(db).list_timeline(candidate.id)) == 3


def test_status_change_syncs_application_status() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Backend Engineer", department="Engineering", location="Remote")
        candidate = _candidate(db, job_id=job.id)
        pipeline = PipelineService(db)

        application = Repository(db).get_application(candidate.id, job.id)
        assert application.status == "pending"

        pipeline.advance(candidate.id, ActorRef.system())
        db.refresh(application)
        assert application.status == "reviewing"

        pipeline.reject(candidate.id, ActorRef.system())
        assert db.get(Application, application.id).status == "rejected"


def test_apply_to_same_job_twice_is_rejected() -> None:
    with SessionLocal() as db:
        job = JobService(db).create(title="Designer", department="Design", location="Remote")
        candidate = _candidate(db, job_id=job.id)
        with pytest.raises(DomainValidationError):
            CandidateService(db).apply_to_job(candidate.id, job.id, ActorRef.system())
        assert db.get(type(job), job.id).applicant_count == 1


def test_evaluation_scores_must_be_in_range() -> None:
    with SessionLocal() as db:
        candidate = _candidate(db)
        service = CandidateService(db)
        service.update_evaluation(candidate.id, {"overall": 90, "technical": 80, "cultural": 70, "communication": 60})
        assert db.get(Candidate, candidate.id).evaluation_overall == 90

        with pytest.raises(DomainValidationError):
            service.update_evaluation(candidate.id, {"overall": 101})
