from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from evalats.core.activity import ActorRef, resolve_actor
from evalats.db.repositories import Repository
from evalats.db.session import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_actor(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> ActorRef:
    return resolve_actor(Repository(db), x_user_id)
