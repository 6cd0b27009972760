from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from evalats.api.deps import get_actor, get_db
from evalats.api.schemas import (
    ApplyRequest,
    CandidateCreateRequest,
    CommentCreateRequest,
    CommentEditRequest,
    EvaluationRequest,
    FeedbackSubmitRequest,
    FileAttachRequest,
    HiringTeamRequest,
    InterviewCreateRequest,
    InterviewResultRequest,
    InterviewStatusRequest,
    JobCreateRequest,
    JobStatusRequest,
    NoteCreateRequest,
    OfferRespondRequest,
    OfferReviewRequest,
    OfferSendRequest,
    OfferUpsertRequest,
    ReactionRequest,
    StatusReasonRequest,
    TaskCreateRequest,
    TaskStatusRequest,
    TeamMemberRequest,
)
from evalats.core.activity import ActivityService, ActorRef
from evalats.core.collaboration import (
    CommentService,
    TaskService,
    TeamService,
    serialize_comment,
    serialize_member,
    serialize_task,
)
from evalats.core.events import ACTIVITY_CHANNEL, job_channel, member_channel
from evalats.core.jobs import JobService, serialize_job
from evalats.core.offers import OfferService
from evalats.core.pipeline import CandidateService, PipelineService, serialize_candidate
from evalats.core.runtime import get_event_bus
from evalats.core.scheduling import InterviewService, serialize_interview

router = APIRouter(prefix="/api", tags=["api"])


# candidates


@router.post("/candidates", status_code=201)
def create_candidate(
    payload: CandidateCreateRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    candidate = CandidateService(db).create(actor=actor, **payload.model_dump())
    return serialize_candidate(candidate)


@router.get("/candidates")
def list_candidates(
    status: str | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    return CandidateService(db).list_candidates(status=status, search=search)


@router.get("/candidates/{candidate_id}")
def get_candidate(candidate_id: int, db: Session = Depends(get_db)) -> dict:
    return CandidateService(db).get_with_relations(candidate_id)


@router.post("/candidates/{candidate_id}/advance")
def advance_candidate(
    candidate_id: int,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return serialize_candidate(PipelineService(db).advance(candidate_id, actor))


@router.post("/candidates/{candidate_id}/reject")
def reject_candidate(
    candidate_id: int,
    payload: StatusReasonRequest | None = None,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    reason = payload.reason if payload else ""
    return serialize_candidate(PipelineService(db).reject(candidate_id, actor, reason=reason))


@router.post("/candidates/{candidate_id}/withdraw")
def withdraw_candidate(
    candidate_id: int,
    payload: StatusReasonRequest | None = None,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    reason = payload.reason if payload else ""
    return serialize_candidate(PipelineService(db).withdraw(candidate_id, actor, reason=reason))


@router.put("/candidates/{candidate_id}/evaluation")
def update_evaluation(candidate_id: int, payload: EvaluationRequest, db: Session = Depends(get_db)) -> dict:
    return serialize_candidate(CandidateService(db).update_evaluation(candidate_id, payload.model_dump()))


@router.post("/candidates/{candidate_id}/notes", status_code=201)
def add_note(candidate_id: int, payload: NoteCreateRequest, db: Session = Depends(get_db)) -> dict:
    note = CandidateService(db).add_note(
        candidate_id,
        author=payload.author,
        content=payload.content,
        role=payload.role,
    )
    return {"id": note.id, "author": note.author, "role": note.role, "content": note.content}


@router.post("/candidates/{candidate_id}/resume")
def attach_resume(candidate_id: int, payload: FileAttachRequest, db: Session = Depends(get_db)) -> dict:
    candidate = CandidateService(db).attach_resume(candidate_id, payload.storage_id, payload.filename)
    return serialize_candidate(candidate)


@router.post("/candidates/{candidate_id}/cover-letter")
def attach_cover_letter(candidate_id: int, payload: FileAttachRequest, db: Session = Depends(get_db)) -> dict:
    candidate = CandidateService(db).attach_cover_letter(candidate_id, payload.storage_id, payload.filename)
    return serialize_candidate(candidate)


@router.post("/candidates/{candidate_id}/applications", status_code=201)
def apply_to_job(
    candidate_id: int,
    payload: ApplyRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return CandidateService(db).apply_to_job(candidate_id, payload.job_id, actor)


# jobs


@router.post("/jobs", status_code=201)
def create_job(payload: JobCreateRequest, db: Session = Depends(get_db)) -> dict:
    job = JobService(db).create(
        title=payload.title,
        department=payload.department,
        location=payload.location,
        job_type=payload.type,
        description=payload.description,
        requirements=payload.requirements,
        urgency=payload.urgency,
        salary_min=payload.salary_min,
        salary_max=payload.salary_max,
    )
    return serialize_job(job)


@router.get("/jobs")
def list_jobs(status: str | None = None, search: str | None = None, db: Session = Depends(get_db)) -> list[dict]:
    return JobService(db).list_jobs(status=status, search=search)


@router.get("/jobs/{job_id}")
def get_job(job_id: int, db: Session = Depends(get_db)) -> dict:
    return JobService(db).get_with_applicants(job_id)


@router.patch("/jobs/{job_id}/status")
def update_job_status(job_id: int, payload: JobStatusRequest, db: Session = Depends(get_db)) -> dict:
    return serialize_job(JobService(db).update_status(job_id, payload.status))


@router.get("/jobs/{job_id}/team")
def get_hiring_team(job_id: int, db: Session = Depends(get_db)) -> list[dict]:
    return TeamService(db).get_hiring_team(job_id)


@router.post("/jobs/{job_id}/team", status_code=201)
def add_to_hiring_team(
    job_id: int,
    payload: HiringTeamRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    assignment = TeamService(db).add_to_hiring_team(
        job_id=job_id,
        member_id=payload.member_id,
        role=payload.role,
        actor=actor,
        is_primary=payload.is_primary,
    )
    return {
        "id": assignment.id,
        "job_id": assignment.job_id,
        "team_member_id": assignment.team_member_id,
        "role": assignment.role,
        "is_primary": assignment.is_primary,
    }


# interviews


@router.post("/interviews", status_code=201)
def schedule_interview(
    payload: InterviewCreateRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    interview = InterviewService(db).schedule(
        candidate_id=payload.candidate_id,
        job_id=payload.job_id,
        interview_type=payload.type,
        day=payload.scheduled_date,
        time_value=payload.scheduled_time,
        actor=actor,
        duration_minutes=payload.duration_minutes,
        interviewers=payload.interviewers,
        location=payload.location,
        meeting_link=payload.meeting_link,
    )
    return serialize_interview(interview)


@router.get("/interviews")
def list_interviews(
    status: str | None = None,
    on_date: date | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    return InterviewService(db).list_interviews(status=status, on_date=on_date, search=search)


@router.get("/interviews/slots")
def interview_slots(
    day: date,
    duration_minutes: int = 60,
    interviewers: list[str] = Query(default=[]),
    candidate_id: int | None = None,
    db: Session = Depends(get_db),
) -> dict:
    slots = InterviewService(db).slots(
        day,
        duration_minutes=duration_minutes,
        interviewers=interviewers,
        candidate_id=candidate_id,
        now=datetime.now(),
    )
    return {"date": day.isoformat(), "duration_minutes": duration_minutes, "slots": slots}


@router.get("/interviews/{interview_id}")
def get_interview(interview_id: int, db: Session = Depends(get_db)) -> dict:
    return InterviewService(db).get(interview_id)


@router.patch("/interviews/{interview_id}/status")
def update_interview_status(
    interview_id: int,
    payload: InterviewStatusRequest,
    db: Session = Depends(get_db),
) -> dict:
    return serialize_interview(InterviewService(db).update_status(interview_id, payload.status))


@router.post("/interviews/{interview_id}/result")
def record_interview_result(
    interview_id: int,
    payload: InterviewResultRequest,
    db: Session = Depends(get_db),
) -> dict:
    interview = InterviewService(db).add_feedback(
        interview_id,
        feedback=payload.feedback,
        rating=payload.rating,
        scores=payload.scores,
        recommendation=payload.recommendation,
    )
    return serialize_interview(interview)


@router.post("/interviews/{interview_id}/feedback", status_code=201)
def submit_interview_feedback(
    interview_id: int,
    payload: FeedbackSubmitRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    row = InterviewService(db).submit_feedback(
        interview_id,
        interviewer=actor,
        ratings=payload.ratings,
        recommendation=payload.recommendation,
        strengths=payload.strengths,
        concerns=payload.concerns,
        questions=payload.questions,
        notes=payload.notes,
    )
    return {
        "id": row.id,
        "interview_id": row.interview_id,
        "interviewer_id": row.interviewer_id,
        "ratings": dict(row.ratings_json or {}),
        "recommendation": row.recommendation,
        "submitted_at": row.submitted_at.isoformat() if row.submitted_at else None,
    }


# team


@router.post("/team/members")
def upsert_team_member(payload: TeamMemberRequest, db: Session = Depends(get_db)) -> dict:
    member = TeamService(db).upsert_member(**payload.model_dump())
    return serialize_member(member)


@router.get("/team/members")
def list_team_members(active_only: bool = True, db: Session = Depends(get_db)) -> list[dict]:
    return TeamService(db).list_members(active_only=active_only)


@router.delete("/team/members/{member_id}")
def deactivate_team_member(member_id: int, db: Session = Depends(get_db)) -> dict:
    return serialize_member(TeamService(db).deactivate_member(member_id))


@router.get("/team/members/{member_id}/notifications")
def list_notifications(member_id: int, unread_only: bool = False, db: Session = Depends(get_db)) -> list[dict]:
    return ActivityService(db).notifications_for(member_id, unread_only=unread_only)


@router.get("/team/members/{member_id}/tasks")
def list_tasks(member_id: int, status: str | None = None, db: Session = Depends(get_db)) -> list[dict]:
    return TaskService(db).tasks_for(member_id, status=status)


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)) -> dict:
    return ActivityService(db).mark_notification_read(notification_id)


# comments


@router.post("/comments", status_code=201)
def add_comment(
    payload: CommentCreateRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    comment = CommentService(db).add_comment(
        entity_type=payload.entity_type,
        entity_id=payload.entity_id,
        author=actor,
        content=payload.content,
        parent_id=payload.parent_id,
        mentions=payload.mentions,
    )
    return serialize_comment(comment)


@router.get("/comments")
def get_comments(
    entity_type: str,
    entity_id: int,
    threaded: bool = True,
    db: Session = Depends(get_db),
) -> list[dict]:
    service = CommentService(db)
    if threaded:
        return service.get_thread(entity_type, entity_id)
    return service.get_comments(entity_type, entity_id)


@router.patch("/comments/{comment_id}")
def edit_comment(
    comment_id: int,
    payload: CommentEditRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return serialize_comment(CommentService(db).edit_comment(comment_id, actor, payload.content))


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return serialize_comment(CommentService(db).delete_comment(comment_id, actor))


@router.post("/comments/{comment_id}/reactions")
def add_reaction(
    comment_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    reaction = CommentService(db).add_reaction(comment_id, actor, payload.emoji)
    return {"id": reaction.id, "comment_id": reaction.comment_id, "user_id": reaction.user_id, "emoji": reaction.emoji}


@router.delete("/comments/{comment_id}/reactions/{emoji}")
def remove_reaction(
    comment_id: int,
    emoji: str,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return {"removed": CommentService(db).remove_reaction(comment_id, actor, emoji)}


# tasks


@router.post("/tasks", status_code=201)
def create_task(
    payload: TaskCreateRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    task = TaskService(db).create_task(
        title=payload.title,
        assignee_id=payload.assignee_id,
        creator=actor,
        task_type=payload.type,
        description=payload.description,
        priority=payload.priority,
        related_type=payload.related_type,
        related_id=payload.related_id,
        due_date=payload.due_date,
    )
    return serialize_task(task)


@router.patch("/tasks/{task_id}/status")
def update_task_status(
    task_id: int,
    payload: TaskStatusRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    return serialize_task(TaskService(db).update_task_status(task_id, payload.status, actor))


# offers


@router.put("/offers")
def upsert_offer(
    payload: OfferUpsertRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    service = OfferService(db)
    offer = service.upsert_offer(
        candidate_id=payload.candidate_id,
        job_id=payload.job_id,
        details=payload.details,
        created_by=actor,
        custom_terms=payload.custom_terms,
        expires_at=payload.expires_at,
    )
    return service.get_offer(offer.id)


@router.get("/offers")
def list_offers(
    candidate_id: int | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    return OfferService(db).list_offers(candidate_id=candidate_id, status=status)


@router.post("/offers/expire")
def expire_offers(db: Session = Depends(get_db)) -> dict:
    return {"expired": OfferService(db).expire_offers()}


@router.get("/offers/{offer_id}")
def get_offer(offer_id: int, db: Session = Depends(get_db)) -> dict:
    return OfferService(db).get_offer(offer_id)


@router.post("/offers/{offer_id}/review")
def review_offer(offer_id: int, payload: OfferReviewRequest, db: Session = Depends(get_db)) -> dict:
    service = OfferService(db)
    service.review_offer(
        offer_id,
        approver_id=payload.approver_id,
        status=payload.status,
        comments=payload.comments,
    )
    return service.get_offer(offer_id)


@router.post("/offers/{offer_id}/send")
def send_offer(
    offer_id: int,
    payload: OfferSendRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    service = OfferService(db)
    service.send_offer(offer_id, letter_url=payload.letter_url, actor=actor)
    return service.get_offer(offer_id)


@router.post("/offers/{offer_id}/view")
def mark_offer_viewed(offer_id: int, db: Session = Depends(get_db)) -> dict:
    service = OfferService(db)
    service.mark_viewed(offer_id)
    return service.get_offer(offer_id)


@router.post("/offers/{offer_id}/respond")
def respond_to_offer(
    offer_id: int,
    payload: OfferRespondRequest,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    service = OfferService(db)
    service.respond_to_offer(offer_id, accepted=payload.accepted, actor=actor)
    return service.get_offer(offer_id)


@router.post("/offers/{offer_id}/withdraw")
def withdraw_offer(
    offer_id: int,
    db: Session = Depends(get_db),
    actor: ActorRef = Depends(get_actor),
) -> dict:
    service = OfferService(db)
    service.withdraw_offer(offer_id, actor=actor)
    return service.get_offer(offer_id)


# activity


@router.get("/activity")
def activity_feed(job_id: int | None = None, limit: int | None = None, db: Session = Depends(get_db)) -> list[dict]:
    return ActivityService(db).feed(job_id=job_id, limit=limit)


@router.post("/activity/{entry_id}/read")
def mark_activity_read(entry_id: int, db: Session = Depends(get_db)) -> dict:
    return ActivityService(db).mark_read(entry_id)


@router.websocket("/activity/stream")
async def stream_activity(
    websocket: WebSocket,
    job_id: int | None = None,
    member_id: int | None = None,
) -> None:
    if member_id is not None:
        channel = member_channel(member_id)
    elif job_id is not None:
        channel = job_channel(job_id)
    else:
        channel = ACTIVITY_CHANNEL

    event_bus = get_event_bus()
    # registered before accept so nothing published after the handshake is missed
    queue = event_bus.register(channel)
    try:
        await websocket.accept()
        while True:
            await websocket.send_json(await queue.get())
    except WebSocketDisconnect:
        return
    finally:
        event_bus.unregister(channel, queue)
