from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="evalats-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{(_TEST_ROOT / 'evalats.db').as_posix()}"
os.environ["DATA_DIR"] = str(_TEST_ROOT)
os.environ["BLOB_DIR"] = str(_TEST_ROOT / "blobs")
os.environ["OPENAI_API_KEY"] = ""

import pytest  # noqa: E402

from evalats.core.activity import InMemoryNotificationSink, set_notification_sink  # noqa: E402
from evalats.db.base import Base  # noqa: E402
from evalats.db.init import ensure_data_directories  # noqa: E402
from evalats.db.seed import seed_compliance_settings, seed_email_templates  # noqa: E402
from evalats.db.session import SessionLocal, engine  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db() -> None:
    ensure_data_directories()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_email_templates(session)
        seed_compliance_settings(session)
    yield


@pytest.fixture
def notifications() -> InMemoryNotificationSink:
    sink = InMemoryNotificationSink()
    previous = set_notification_sink(sink)
    yield sink
    set_notification_sink(previous)
