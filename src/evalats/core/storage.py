from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from pathlib import Path
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from evalats.config import Settings, get_settings
from evalats.db.models import StoredFile
from evalats.db.repositories import Repository
from evalats.db.session import transaction
from evalats.errors import DomainValidationError, NotFoundError

logger = logging.getLogger(__name__)

UPLOAD = "upload"
DOWNLOAD = "download"


def new_storage_id() -> str:
    return uuid.uuid4().hex


def _valid_storage_id(storage_id: str) -> bool:
    return bool(storage_id) and storage_id.isalnum() and len(storage_id) <= 120


class BlobStore:
    def __init__(self, session: Session, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.root = Path(self.settings.blob_dir)

    def sign(self, action: str, storage_id: str, expires: int) -> str:
        message = f"{action}:{storage_id}:{expires}".encode("utf-8")
        return hmac.new(self.settings.secret_key.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_signature(
        self,
        storage_id: str,
        expires: int,
        signature: str,
        *,
        action: str = DOWNLOAD,
        now: float | None = None,
    ) -> bool:
        if expires < int(now if now is not None else time.time()):
            return False
        return hmac.compare_digest(self.sign(action, storage_id, expires), signature or "")

    def _signed_url(self, action: str, path: str, storage_id: str) -> str:
        expires = int(time.time()) + self.settings.signed_url_ttl_sec
        query = urlencode({"expires": expires, "signature": self.sign(action, storage_id, expires)})
        return f"{self.settings.public_base_url.rstrip('/')}/api/files/{path}/{storage_id}?{query}"

    def generate_upload_url(self) -> dict[str, str]:
        storage_id = new_storage_id()
        return {"storage_id": storage_id, "upload_url": self._signed_url(UPLOAD, "upload", storage_id)}

    def put(
        self,
        storage_id: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        filename: str = "",
    ) -> StoredFile:
        if not _valid_storage_id(storage_id):
            raise DomainValidationError("Invalid storage id")
        if len(data) > self.settings.max_upload_bytes:
            raise DomainValidationError(f"File exceeds {self.settings.max_upload_bytes} bytes")

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / storage_id
        path.write_bytes(data)

        with transaction(self.session):
            row = self.repo.get_stored_file(storage_id)
            if row is None:
                row = self.repo.add(StoredFile(storage_id=storage_id))
            row.filename = Path(filename).name if filename else row.filename
            row.content_type = content_type or "application/octet-stream"
            row.size_bytes = len(data)
            row.checksum = hashlib.sha256(data).hexdigest()
            row.path = str(path)
        logger.info("Stored blob %s (%s bytes, %s)", storage_id, row.size_bytes, row.content_type)
        return row

    def get_url(self, storage_id: str) -> str | None:
        if self.repo.get_stored_file(storage_id) is None:
            return None
        return self._signed_url(DOWNLOAD, "blob", storage_id)

    def open(self, storage_id: str) -> tuple[StoredFile, bytes]:
        row = self.repo.get_stored_file(storage_id)
        if row is None:
            raise NotFoundError("File not found")
        path = Path(row.path)
        if not path.exists():
            raise NotFoundError("File not found")
        return row, path.read_bytes()

    def delete(self, storage_id: str) -> bool:
        with transaction(self.session):
            row = self.repo.get_stored_file(storage_id)
            if row is None:
                return False
            Path(row.path).unlink(missing_ok=True)
            self.repo.delete(row)
        return True
