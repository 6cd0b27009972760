from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.core.activity import ActivityLogger, ActorRef
from evalats.core.pipeline import PipelineService
from evalats.db.base import ensure_utc
from evalats.db.models import Candidate, Job, Offer, OfferApproval, TeamMember
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError, PreconditionFailedError
from evalats.types import OfferDetails

logger = logging.getLogger(__name__)

APPROVAL_VOTES = {"approved", "rejected"}
RESPONDABLE_STATUSES = {"sent", "viewed"}
FINAL_STATUSES = {"accepted", "declined", "expired", "withdrawn"}


def aggregate_status(votes: list[str], current: str, required_approvals: int = 1) -> str:
    """Recompute the offer status from the full set of approver votes.

    Any rejection sends the offer back to draft. Otherwise it is approved once
    ``required_approvals`` distinct approvers said yes, and pending while
    some but not enough votes are in.
    """
    if not votes:
        return current
    if "rejected" in votes:
        return "draft"
    approved = sum(1 for vote in votes if vote == "approved")
    if approved >= required_approvals:
        return "approved"
    return "pending_approval"


def serialize_offer(offer: Offer, approvals: list[OfferApproval]) -> dict[str, Any]:
    return {
        "id": offer.id,
        "candidate_id": offer.candidate_id,
        "job_id": offer.job_id,
        "details": dict(offer.details_json or {}),
        "custom_terms": offer.custom_terms,
        "status": offer.status,
        "letter_url": offer.letter_url,
        "sent_at": offer.sent_at.isoformat() if offer.sent_at else None,
        "responded_at": offer.responded_at.isoformat() if offer.responded_at else None,
        "expires_at": offer.expires_at.isoformat() if offer.expires_at else None,
        "created_by": offer.created_by,
        "approvals": [
            {
                "approver_id": row.approver_id,
                "role": row.role,
                "status": row.status,
                "comments": row.comments,
                "timestamp": row.timestamp.isoformat() if row.timestamp else None,
            }
            for row in approvals
        ],
    }


class OfferService:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        activity: ActivityLogger | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)
        self.pipeline = PipelineService(session, activity=self.activity)

    def upsert_offer(
        self,
        *,
        candidate_id: int,
        job_id: int,
        details: dict[str, Any],
        created_by: ActorRef,
        custom_terms: str = "",
        expires_at: datetime | None = None,
    ) -> Offer:
        try:
            parsed = OfferDetails.model_validate(details)
        except ValidationError as exc:
            raise DomainValidationError(f"Invalid offer details: {exc.errors()[0]['msg']}") from exc

        if expires_at is not None:
            expires_at = ensure_utc(expires_at).astimezone(UTC)

        with transaction(self.session):
            self.repo.require(Candidate, candidate_id, "Candidate")
            self.repo.require(Job, job_id, "Job")
            offer = self.repo.get_offer_for(candidate_id, job_id)
            if offer is None:
                offer = self.repo.add(
                    Offer(
                        candidate_id=candidate_id,
                        job_id=job_id,
                        details_json=parsed.model_dump(),
                        custom_terms=custom_terms,
                        status="draft",
                        expires_at=expires_at,
                        created_by=created_by.team_member_id,
                    )
                )
            else:
                if offer.status in FINAL_STATUSES | {"sent", "viewed"}:
                    raise PreconditionFailedError(f"Offer already {offer.status}; it can no longer be edited")
                # earlier approval votes are kept; the new terms must be re-reviewed
                offer.details_json = parsed.model_dump()
                offer.custom_terms = custom_terms
                offer.expires_at = expires_at
                offer.status = "draft"
        return offer

    def review_offer(
        self,
        offer_id: int,
        *,
        approver_id: int,
        status: str,
        comments: str = "",
    ) -> Offer:
        if status not in APPROVAL_VOTES:
            raise DomainValidationError("Approval status must be 'approved' or 'rejected'")

        with transaction(self.session):
            offer = self.repo.require(Offer, offer_id, "Offer")
            approver = self.repo.require(TeamMember, approver_id, "Approver")
            if offer.status not in {"draft", "pending_approval", "approved"}:
                raise PreconditionFailedError(f"Offer in status '{offer.status}' cannot be reviewed")

            approval = self.repo.get_approval(offer.id, approver.id)
            if approval is None:
                self.repo.add(
                    OfferApproval(
                        offer_id=offer.id,
                        approver_id=approver.id,
                        role=approver.role,
                        status=status,
                        comments=comments,
                    )
                )
            else:
                approval.status = status
                approval.comments = comments
                approval.timestamp = datetime.now(UTC)
                self.session.flush()

            votes = [row.status for row in self.repo.list_approvals(offer.id)]
            offer.status = aggregate_status(votes, offer.status, self.settings.offer_required_approvals)
            logger.info("Offer %s reviewed by %s vote=%s status=%s", offer.id, approver.id, status, offer.status)
        return offer

    def send_offer(self, offer_id: int, *, letter_url: str, actor: ActorRef) -> Offer:
        with transaction(self.session):
            offer = self.repo.require(Offer, offer_id, "Offer")
            if offer.status != "approved":
                raise PreconditionFailedError("Offer must be approved before sending")

            candidate = self.repo.require(Candidate, offer.candidate_id, "Candidate")
            if candidate.status == "interview":
                self.pipeline.apply_transition(candidate, "offer", actor)
            elif candidate.status != "offer":
                raise PreconditionFailedError(
                    f"Candidate in status '{candidate.status}' cannot receive an offer"
                )

            offer.status = "sent"
            offer.sent_at = datetime.now(UTC)
            offer.letter_url = letter_url
            self.activity.log(
                "offer_sent",
                actor,
                "candidate",
                candidate.id,
                job_id=offer.job_id,
                metadata={"offer_id": offer.id, "salary": offer.details_json.get("salary")},
            )
        return offer

    def mark_viewed(self, offer_id: int) -> Offer:
        with transaction(self.session):
            offer = self.repo.require(Offer, offer_id, "Offer")
            if offer.status == "sent":
                offer.status = "viewed"
        return offer

    def respond_to_offer(self, offer_id: int, *, accepted: bool, actor: ActorRef) -> Offer:
        with transaction(self.session):
            offer = self.repo.require(Offer, offer_id, "Offer")
            if offer.status not in RESPONDABLE_STATUSES:
                raise PreconditionFailedError(f"Offer in status '{offer.status}' cannot be answered")
            candidate = self.repo.require(Candidate, offer.candidate_id, "Candidate")
            if candidate.status != "offer":
                raise PreconditionFailedError(
                    f"Candidate is '{candidate.status}'; only a candidate at the offer stage can answer an offer"
                )

            offer.status = "accepted" if accepted else "declined"
            offer.responded_at = datetime.now(UTC)
            if accepted:
                self.pipeline.apply_transition(candidate, "hired", actor)
            else:
                self.pipeline.apply_transition(candidate, "withdrawn", actor, reason="Offer declined")

            self.activity.log(
                "offer_responded",
                actor,
                "offer",
                offer.id,
                job_id=offer.job_id,
                metadata={"offer_id": offer.id, "accepted": accepted},
            )
        return offer

    def withdraw_offer(self, offer_id: int, *, actor: ActorRef) -> Offer:
        with transaction(self.session):
            offer = self.repo.require(Offer, offer_id, "Offer")
            if offer.status in FINAL_STATUSES:
                raise PreconditionFailedError(f"Offer already {offer.status}")
            offer.status = "withdrawn"
            logger.info("Offer %s withdrawn by %s", offer.id, actor.team_member_id)
        return offer

    def expire_offers(self, now: datetime | None = None) -> list[int]:
        now = ensure_utc(now) or datetime.now(UTC)
        with transaction(self.session):
            expired = []
            for offer in self.repo.list_expirable_offers(now):
                offer.status = "expired"
                expired.append(offer.id)
        if expired:
            logger.info("Expired %s offers: %s", len(expired), expired)
        return expired

    def get_offer(self, offer_id: int) -> dict[str, Any]:
        offer = self.repo.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("Offer not found")
        return serialize_offer(offer, self.repo.list_approvals(offer.id))

    def list_offers(self, candidate_id: int | None = None, status: str | None = None) -> list[dict[str, Any]]:
        return [
            serialize_offer(row, self.repo.list_approvals(row.id))
            for row in self.repo.list_offers(candidate_id=candidate_id, status=status)
        ]
