from __future__ import annotations

from pathlib import Path

from evalats.config import get_settings
from evalats.db.base import Base
from evalats.db.session import SessionLocal, engine
from evalats.db import models  # noqa: F401
from evalats.db.seed import seed_compliance_settings, seed_email_templates


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [settings.data_dir, settings.blob_dir]
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, int]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as session:
        templates = seed_email_templates(session)
        settings = seed_compliance_settings(session)
    return {"seeded_templates": templates, "seeded_settings": settings}
