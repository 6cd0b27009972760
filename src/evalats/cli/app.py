from __future__ import annotations

import json
from datetime import datetime

import typer
import uvicorn
from sqlalchemy.orm import Session

from evalats.api.app import create_app
from evalats.config import get_settings
from evalats.core.activity import ActivityService, ActorRef, resolve_actor
from evalats.core.analytics import AnalyticsService
from evalats.core.demo import seed_demo_data
from evalats.core.offers import OfferService
from evalats.core.pipeline import CandidateService, PipelineService, serialize_candidate
from evalats.db.init import init_database
from evalats.db.repositories import Repository
from evalats.db.session import SessionLocal
from evalats.errors import DomainError
from evalats.logging_config import configure_logging

app = typer.Typer(help="EvalATS CLI")
candidate_app = typer.Typer(help="Candidate pipeline commands")
offer_app = typer.Typer(help="Offer approval and delivery")
analytics_app = typer.Typer(help="Hiring analytics")
activity_app = typer.Typer(help="Activity feed")

app.add_typer(candidate_app, name="candidate")
app.add_typer(offer_app, name="offer")
app.add_typer(analytics_app, name="analytics")
app.add_typer(activity_app, name="activity")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _fail(exc: DomainError) -> None:
    typer.echo(json.dumps(exc.to_dict(), indent=2), err=True)
    raise typer.Exit(code=1)


def _actor(db: Session, user_id: str | None) -> ActorRef:
    return resolve_actor(Repository(db), user_id)


@app.command("init")
def init_cmd() -> None:
    """Initialize database, directories, and default templates."""
    configure_logging()
    result = init_database()
    _echo({"ok": True, **result})


@app.command("seed")
def seed_cmd() -> None:
    """Load sample jobs, team members and candidates."""
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(seed_demo_data(db))


@candidate_app.command("list")
def candidate_list(
    status: str | None = typer.Option(None, "--status"),
    search: str | None = typer.Option(None, "--search"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(CandidateService(db).list_candidates(status=status, search=search))


@candidate_app.command("show")
def candidate_show(candidate_id: int = typer.Option(..., "--candidate-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            _echo(CandidateService(db).get_with_relations(candidate_id))
        except DomainError as exc:
            _fail(exc)


@candidate_app.command("create")
def candidate_create(
    name: str = typer.Option(..., "--name"),
    email: str = typer.Option(..., "--email"),
    position: str = typer.Option(..., "--position"),
    job_id: int | None = typer.Option(None, "--job-id"),
    source: str = typer.Option("", "--source"),
    user_id: str | None = typer.Option(None, "--as"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            candidate = CandidateService(db).create(
                name=name,
                email=email,
                position=position,
                job_id=job_id,
                source=source,
                actor=_actor(db, user_id),
            )
        except DomainError as exc:
            _fail(exc)
        _echo(serialize_candidate(candidate))


@candidate_app.command("advance")
def candidate_advance(
    candidate_id: int = typer.Option(..., "--candidate-id"),
    user_id: str | None = typer.Option(None, "--as"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            candidate = PipelineService(db).advance(candidate_id, _actor(db, user_id))
        except DomainError as exc:
            _fail(exc)
        _echo(serialize_candidate(candidate))


@candidate_app.command("reject")
def candidate_reject(
    candidate_id: int = typer.Option(..., "--candidate-id"),
    reason: str = typer.Option("", "--reason"),
    user_id: str | None = typer.Option(None, "--as"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            candidate = PipelineService(db).reject(candidate_id, _actor(db, user_id), reason=reason)
        except DomainError as exc:
            _fail(exc)
        _echo(serialize_candidate(candidate))


@offer_app.command("list")
def offer_list(
    candidate_id: int | None = typer.Option(None, "--candidate-id"),
    status: str | None = typer.Option(None, "--status"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(OfferService(db).list_offers(candidate_id=candidate_id, status=status))


@offer_app.command("create")
def offer_create(
    candidate_id: int = typer.Option(..., "--candidate-id"),
    job_id: int = typer.Option(..., "--job-id"),
    salary: int = typer.Option(..., "--salary"),
    currency: str = typer.Option("USD", "--currency"),
    start_date: str = typer.Option("", "--start-date"),
    user_id: str | None = typer.Option(None, "--as"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        service = OfferService(db)
        try:
            offer = service.upsert_offer(
                candidate_id=candidate_id,
                job_id=job_id,
                details={"salary": salary, "currency": currency, "start_date": start_date},
                created_by=_actor(db, user_id),
            )
        except DomainError as exc:
            _fail(exc)
        _echo(service.get_offer(offer.id))


@offer_app.command("review")
def offer_review(
    offer_id: int = typer.Option(..., "--offer-id"),
    approver_id: int = typer.Option(..., "--approver-id"),
    status: str = typer.Option(..., "--status"),
    comments: str = typer.Option("", "--comments"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        service = OfferService(db)
        try:
            service.review_offer(offer_id, approver_id=approver_id, status=status, comments=comments)
        except DomainError as exc:
            _fail(exc)
        _echo(service.get_offer(offer_id))


@offer_app.command("send")
def offer_send(
    offer_id: int = typer.Option(..., "--offer-id"),
    letter_url: str = typer.Option("", "--letter-url"),
    user_id: str | None = typer.Option(None, "--as"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        service = OfferService(db)
        try:
            service.send_offer(offer_id, letter_url=letter_url, actor=_actor(db, user_id))
        except DomainError as exc:
            _fail(exc)
        _echo(service.get_offer(offer_id))


@offer_app.command("expire")
def offer_expire() -> None:
    """Mark sent offers past their expiry as expired."""
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo({"expired": OfferService(db).expire_offers(datetime.now().astimezone())})


@analytics_app.command("dashboard")
def analytics_dashboard() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(AnalyticsService(db).dashboard())


@analytics_app.command("funnel")
def analytics_funnel() -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(AnalyticsService(db).funnel_analysis())


@activity_app.command("feed")
def activity_feed(
    job_id: int | None = typer.Option(None, "--job-id"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        _echo(ActivityService(db).feed(job_id=job_id, limit=limit))


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
