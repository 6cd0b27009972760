from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.core.activity import ActivityLogger, ActorRef
from evalats.db.models import (
    Candidate,
    Comment,
    CommentReaction,
    HiringTeamAssignment,
    Interview,
    Job,
    Task,
    TeamMember,
)
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)

TEAM_ROLES = {"admin", "hiring_manager", "recruiter", "interviewer", "coordinator", "viewer"}
COMMENT_ENTITY_TYPES = {"candidate": Candidate, "job": Job, "interview": Interview}
TASK_STATUSES = {"pending", "in_progress", "completed", "cancelled"}
TASK_PRIORITIES = {"urgent", "high", "medium", "low"}
TASK_TYPES = {
    "review_application",
    "schedule_interview",
    "provide_feedback",
    "check_references",
    "send_offer",
    "follow_up",
    "custom",
}

DEFAULT_PERMISSIONS: dict[str, list[str]] = {
    "admin": ["all"],
    "hiring_manager": [
        "view_candidates",
        "edit_candidates",
        "schedule_interviews",
        "provide_feedback",
        "make_decisions",
        "view_analytics",
    ],
    "recruiter": [
        "view_candidates",
        "edit_candidates",
        "schedule_interviews",
        "provide_feedback",
        "send_emails",
        "manage_pipeline",
    ],
    "interviewer": ["view_assigned_candidates", "provide_feedback"],
    "coordinator": ["view_candidates", "schedule_interviews", "send_emails"],
    "viewer": ["view_candidates", "view_analytics"],
}


def default_permissions(role: str) -> list[str]:
    return list(DEFAULT_PERMISSIONS.get(role, []))


def serialize_member(member: TeamMember) -> dict[str, Any]:
    return {
        "id": member.id,
        "user_id": member.user_id,
        "email": member.email,
        "name": member.name,
        "role": member.role,
        "department": member.department,
        "avatar": member.avatar,
        "is_active": member.is_active,
        "permissions": list(member.permissions_json or []),
    }


def serialize_comment(comment: Comment) -> dict[str, Any]:
    return {
        "id": comment.id,
        "entity_type": comment.entity_type,
        "entity_id": comment.entity_id,
        "author_id": comment.author_id,
        "content": comment.content,
        "parent_id": comment.parent_id,
        "mentions": list(comment.mentions_json or []),
        "is_edited": comment.is_edited,
        "is_deleted": comment.is_deleted,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


def build_thread(comments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Nest flat serialized comments under their parents.

    Roots keep the incoming order; replies are ordered oldest first. A reply
    whose parent is missing from the list is promoted to a root.
    """
    by_id: dict[int, dict[str, Any]] = {}
    for item in comments:
        by_id[item["id"]] = {**item, "replies": []}

    roots: list[dict[str, Any]] = []
    for item in comments:
        node = by_id[item["id"]]
        parent = by_id.get(item.get("parent_id")) if item.get("parent_id") else None
        if parent is None:
            roots.append(node)
        else:
            parent["replies"].append(node)

    for node in by_id.values():
        node["replies"].sort(key=lambda reply: (reply.get("created_at") or "", reply["id"]))
    return roots


class TeamService:
    def __init__(self, session: Session, *, activity: ActivityLogger | None = None):
        self.session = session
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)

    def upsert_member(
        self,
        *,
        user_id: str,
        email: str,
        name: str,
        role: str,
        department: str = "",
        avatar: str = "",
    ) -> TeamMember:
        if role not in TEAM_ROLES:
            raise DomainValidationError(f"Role must be one of {sorted(TEAM_ROLES)}")

        with transaction(self.session):
            member = self.repo.get_team_member_by_user_id(user_id)
            if member is None:
                member = self.repo.add(
                    TeamMember(
                        user_id=user_id,
                        email=email,
                        name=name,
                        role=role,
                        department=department,
                        avatar=avatar,
                        is_active=True,
                        permissions_json=default_permissions(role),
                    )
                )
            else:
                # permissions are fixed at creation and not recomputed from a new role
                member.email = email
                member.name = name
                member.role = role
                member.department = department
                member.avatar = avatar
        return member

    def list_members(self, active_only: bool = True) -> list[dict[str, Any]]:
        return [serialize_member(row) for row in self.repo.list_team_members(active_only=active_only)]

    def deactivate_member(self, member_id: int) -> TeamMember:
        with transaction(self.session):
            member = self.repo.require(TeamMember, member_id, "Team member")
            member.is_active = False
        return member

    def add_to_hiring_team(
        self,
        *,
        job_id: int,
        member_id: int,
        role: str,
        actor: ActorRef,
        is_primary: bool = False,
    ) -> HiringTeamAssignment:
        with transaction(self.session):
            self.repo.require(Job, job_id, "Job")
            self.repo.require(TeamMember, member_id, "Team member")
            assignment = self.repo.get_hiring_assignment(job_id, member_id)
            if assignment is not None:
                assignment.role = role
                assignment.is_primary = is_primary
                return assignment

            assignment = self.repo.add(
                HiringTeamAssignment(
                    job_id=job_id,
                    team_member_id=member_id,
                    role=role,
                    is_primary=is_primary,
                    added_by=actor.team_member_id,
                )
            )
            self.activity.log(
                "team_member_added",
                actor,
                "job",
                job_id,
                job_id=job_id,
                metadata={"team_member_id": member_id, "role": role},
            )
        return assignment

    def get_hiring_team(self, job_id: int) -> list[dict[str, Any]]:
        self.repo.require(Job, job_id, "Job")
        team = []
        for assignment in self.repo.list_hiring_team(job_id):
            member = self.repo.get_team_member(assignment.team_member_id)
            team.append(
                {
                    "id": assignment.id,
                    "role": assignment.role,
                    "is_primary": assignment.is_primary,
                    "member": serialize_member(member) if member else None,
                }
            )
        return team


class CommentService:
    def __init__(self, session: Session, *, activity: ActivityLogger | None = None):
        self.session = session
        self.repo = Repository(session)
        self.activity = activity or ActivityLogger(session)

    def add_comment(
        self,
        *,
        entity_type: str,
        entity_id: int,
        author: ActorRef,
        content: str,
        parent_id: int | None = None,
        mentions: list[int] | tuple[int, ...] = (),
    ) -> Comment:
        if author.is_system:
            raise DomainValidationError("Comments require a team member author")
        if not content.strip():
            raise DomainValidationError("Comment content is required")

        with transaction(self.session):
            self._require_entity(entity_type, entity_id)
            self.repo.require(TeamMember, author.team_member_id, "Team member")

            parent = None
            if parent_id is not None:
                parent = self.repo.get_comment(parent_id)
                if parent is None or parent.is_deleted:
                    raise NotFoundError("Parent comment not found")
                if parent.entity_type != entity_type or parent.entity_id != entity_id:
                    raise DomainValidationError("Reply must target the same entity as its parent")

            mentioned = list(OrderedDict.fromkeys(int(member_id) for member_id in mentions))
            known = self.repo.get_team_members(mentioned)
            missing = [member_id for member_id in mentioned if member_id not in known]
            if missing:
                raise NotFoundError(f"Mentioned team members not found: {missing}")

            comment = self.repo.add(
                Comment(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    author_id=author.team_member_id,
                    content=content.strip(),
                    parent_id=parent_id,
                    mentions_json=mentioned,
                )
            )

            author_member = self.repo.get_team_member(author.team_member_id)
            for member_id in mentioned:
                if member_id == author.team_member_id:
                    continue
                self.activity.notify(
                    member_id,
                    "mention",
                    author,
                    message=f"{author_member.name} mentioned you in a comment",
                    entity_type=entity_type,
                    entity_id=entity_id,
                    comment_id=comment.id,
                )
            if parent is not None and parent.author_id not in mentioned and parent.author_id != author.team_member_id:
                self.activity.notify(
                    parent.author_id,
                    "comment_reply",
                    author,
                    message=f"{author_member.name} replied to your comment",
                    entity_type=entity_type,
                    entity_id=entity_id,
                    comment_id=comment.id,
                )

            self.activity.log(
                "comment_added",
                author,
                entity_type,
                entity_id,
                job_id=self._job_for(entity_type, entity_id),
                metadata={"comment_id": comment.id, "preview": comment.content[:120]},
            )
        return comment

    def get_comments(self, entity_type: str, entity_id: int) -> list[dict[str, Any]]:
        comments = self.repo.list_comments(entity_type, entity_id)
        member_ids = {row.author_id for row in comments}
        for row in comments:
            member_ids.update(row.mentions_json or [])
        members = self.repo.get_team_members(list(member_ids))
        reactions = self._reactions_by_comment([row.id for row in comments])

        result = []
        for row in comments:
            author = members.get(row.author_id)
            result.append(
                {
                    "id": row.id,
                    "entity_type": row.entity_type,
                    "entity_id": row.entity_id,
                    "content": row.content,
                    "parent_id": row.parent_id,
                    "is_edited": row.is_edited,
                    "edited_at": row.edited_at.isoformat() if row.edited_at else None,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                    "author": serialize_member(author) if author else None,
                    "mentioned_users": [
                        serialize_member(members[member_id])
                        for member_id in row.mentions_json or []
                        if member_id in members
                    ],
                    "reactions": reactions.get(row.id, []),
                }
            )
        return result

    def get_thread(self, entity_type: str, entity_id: int) -> list[dict[str, Any]]:
        return build_thread(self.get_comments(entity_type, entity_id))

    def edit_comment(self, comment_id: int, editor: ActorRef, content: str) -> Comment:
        if not content.strip():
            raise DomainValidationError("Comment content is required")
        with transaction(self.session):
            comment = self._require_comment(comment_id)
            if comment.author_id != editor.team_member_id:
                raise DomainValidationError("Only the author can edit a comment")
            comment.content = content.strip()
            comment.is_edited = True
            comment.edited_at = datetime.now(UTC)
        return comment

    def delete_comment(self, comment_id: int, actor: ActorRef) -> Comment:
        with transaction(self.session):
            comment = self._require_comment(comment_id)
            if comment.author_id != actor.team_member_id:
                raise DomainValidationError("Only the author can delete a comment")
            comment.is_deleted = True
        return comment

    def add_reaction(self, comment_id: int, user: ActorRef, emoji: str) -> CommentReaction:
        if user.is_system:
            raise DomainValidationError("Reactions require a team member")
        if not emoji.strip():
            raise DomainValidationError("Emoji is required")

        try:
            with transaction(self.session):
                self._require_comment(comment_id)
                self.repo.require(TeamMember, user.team_member_id, "Team member")
                existing = self.repo.get_reaction(comment_id, user.team_member_id, emoji)
                if existing is not None:
                    return existing
                reaction = self.repo.add(
                    CommentReaction(comment_id=comment_id, user_id=user.team_member_id, emoji=emoji)
                )
        except IntegrityError:
            # a concurrent writer inserted the same key first
            reaction = self.repo.get_reaction(comment_id, user.team_member_id, emoji)
            if reaction is None:
                raise
        return reaction

    def remove_reaction(self, comment_id: int, user: ActorRef, emoji: str) -> bool:
        with transaction(self.session):
            self._require_comment(comment_id)
            existing = self.repo.get_reaction(comment_id, user.team_member_id, emoji)
            if existing is None:
                return False
            self.repo.delete(existing)
        return True

    def _reactions_by_comment(self, comment_ids: list[int]) -> dict[int, list[dict[str, Any]]]:
        grouped: dict[int, OrderedDict[str, list[int]]] = {}
        for reaction in self.repo.list_reactions(comment_ids):
            grouped.setdefault(reaction.comment_id, OrderedDict()).setdefault(reaction.emoji, []).append(
                reaction.user_id
            )
        return {
            comment_id: [
                {"emoji": emoji, "count": len(user_ids), "user_ids": user_ids}
                for emoji, user_ids in by_emoji.items()
            ]
            for comment_id, by_emoji in grouped.items()
        }

    def _require_comment(self, comment_id: int) -> Comment:
        comment = self.repo.get_comment(comment_id)
        if comment is None or comment.is_deleted:
            raise NotFoundError("Comment not found")
        return comment

    def _require_entity(self, entity_type: str, entity_id: int) -> None:
        model = COMMENT_ENTITY_TYPES.get(entity_type)
        if model is None:
            raise DomainValidationError(f"Entity type must be one of {sorted(COMMENT_ENTITY_TYPES)}")
        self.repo.require(model, entity_id, entity_type.capitalize())

    def _job_for(self, entity_type: str, entity_id: int) -> int | None:
        if entity_type == "job":
            return entity_id
        if entity_type == "interview":
            interview = self.repo.get_interview(entity_id)
            return interview.job_id if interview else None
        return None


def serialize_task(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "type": task.type,
        "assignee_id": task.assignee_id,
        "creator_id": task.creator_id,
        "related_to": {"type": task.related_type, "id": task.related_id} if task.related_type else None,
        "priority": task.priority,
        "status": task.status,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "created_at": task.created_at.isoformat() if task.created_at else None,
    }


class TaskService:
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

    def create_task(
        self,
        *,
        title: str,
        assignee_id: int,
        creator: ActorRef,
        task_type: str = "custom",
        description: str = "",
        priority: str = "medium",
        related_type: str | None = None,
        related_id: int | None = None,
        due_date: datetime | None = None,
    ) -> Task:
        if creator.is_system:
            raise DomainValidationError("Tasks require a team member creator")
        if task_type not in TASK_TYPES:
            raise DomainValidationError(f"Task type must be one of {sorted(TASK_TYPES)}")
        if priority not in TASK_PRIORITIES:
            raise DomainValidationError(f"Priority must be one of {sorted(TASK_PRIORITIES)}")
        if (related_type is None) != (related_id is None):
            raise DomainValidationError("related_type and related_id must be given together")

        with transaction(self.session):
            assignee = self.repo.require(TeamMember, assignee_id, "Assignee")
            creator_member = self.repo.require(TeamMember, creator.team_member_id, "Team member")
            if related_type is not None:
                model = COMMENT_ENTITY_TYPES.get(related_type)
                if model is None:
                    raise DomainValidationError(f"Related type must be one of {sorted(COMMENT_ENTITY_TYPES)}")
                self.repo.require(model, related_id, related_type.capitalize())

            task = self.repo.add(
                Task(
                    title=title,
                    description=description,
                    type=task_type,
                    assignee_id=assignee.id,
                    creator_id=creator_member.id,
                    related_type=related_type,
                    related_id=related_id,
                    priority=priority,
                    status="pending",
                    due_date=due_date,
                )
            )
            if assignee.id != creator_member.id:
                self.activity.notify(
                    assignee.id,
                    "task_assigned",
                    creator,
                    message=f"{creator_member.name} assigned you a task: {title}",
                    entity_type=related_type or "",
                    entity_id=related_id,
                    task_id=task.id,
                )
        return task

    def update_task_status(self, task_id: int, status: str, actor: ActorRef) -> Task:
        if status not in TASK_STATUSES:
            raise DomainValidationError(f"Task status must be one of {sorted(TASK_STATUSES)}")

        with transaction(self.session):
            task = self.repo.require(Task, task_id, "Task")
            was_completed = task.status == "completed"
            task.status = status
            if status == "completed" and not was_completed:
                task.completed_at = datetime.now(UTC)
                if task.related_type in {"candidate", "job", "interview"}:
                    target_type, target_id = task.related_type, task.related_id
                else:
                    target_type, target_id = "task", task.id
                self.activity.log(
                    "task_completed",
                    actor,
                    target_type,
                    target_id,
                    metadata={"task_id": task.id, "title": task.title},
                )
            elif status != "completed":
                task.completed_at = None
        return task

    def tasks_for(self, member_id: int, status: str | None = None) -> list[dict[str, Any]]:
        self.repo.require(TeamMember, member_id, "Team member")
        rows = self.repo.list_tasks_for(member_id, status=status, limit=self.settings.default_task_limit)
        creators = self.repo.get_team_members(list({row.creator_id for row in rows}))

        result = []
        for row in rows:
            payload = serialize_task(row)
            creator = creators.get(row.creator_id)
            payload["creator"] = serialize_member(creator) if creator else None
            payload["related_entity"] = self._related_summary(row.related_type, row.related_id)
            result.append(payload)
        return result

    def _related_summary(self, related_type: str | None, related_id: int | None) -> dict[str, Any] | None:
        if related_type is None or related_id is None:
            return None
        if related_type == "candidate":
            candidate = self.repo.get_candidate(related_id)
            return {"type": "candidate", "id": related_id, "name": candidate.name} if candidate else None
        if related_type == "job":
            job = self.repo.get_job(related_id)
            return {"type": "job", "id": related_id, "name": job.title} if job else None
        interview = self.repo.get_interview(related_id)
        return {"type": "interview", "id": related_id, "name": interview.type} if interview else None
