from __future__ import annotations

import logging
from urllib.parse import quote

import requests
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from evalats.api.deps import get_db
from evalats.api.schemas import ResumeParseResponse
from evalats.config import get_settings
from evalats.core.resume_parser import extract_text, match_score
from evalats.core.storage import UPLOAD, BlobStore, new_storage_id
from evalats.db.models import Job, StoredFile
from evalats.db.repositories import Repository
from evalats.errors import DomainValidationError
from evalats.llm.router import ResumeAIParser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])


def _read_limited(upload: UploadFile, limit: int) -> bytes:
    data = upload.file.read(limit + 1)
    if len(data) > limit:
        raise DomainValidationError(f"File size exceeds {limit // (1024 * 1024)}MB limit")
    return data


def _stored_payload(row: StoredFile) -> dict:
    return {
        "storage_id": row.storage_id,
        "filename": row.filename,
        "content_type": row.content_type,
        "size_bytes": row.size_bytes,
        "checksum": row.checksum,
    }


@router.post("/files/upload-url")
def generate_upload_url(db: Session = Depends(get_db)) -> dict:
    return BlobStore(db).generate_upload_url()


@router.post("/files/upload/{storage_id}", status_code=201)
def upload_signed(
    storage_id: str,
    expires: int,
    signature: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
) -> dict:
    store = BlobStore(db)
    if not store.verify_signature(storage_id, expires, signature, action=UPLOAD):
        raise HTTPException(status_code=403, detail="Invalid or expired upload signature")
    data = _read_limited(file, store.settings.max_upload_bytes)
    row = store.put(
        storage_id,
        data,
        content_type=file.content_type or "application/octet-stream",
        filename=file.filename or "",
    )
    return _stored_payload(row)


@router.post("/files", status_code=201)
def upload_file(file: UploadFile = File(...), db: Session = Depends(get_db)) -> dict:
    store = BlobStore(db)
    data = _read_limited(file, store.settings.max_upload_bytes)
    row = store.put(
        new_storage_id(),
        data,
        content_type=file.content_type or "application/octet-stream",
        filename=file.filename or "",
    )
    return _stored_payload(row)


@router.get("/files/download/{storage_id}")
def download_file(storage_id: str, db: Session = Depends(get_db)) -> Response:
    url = BlobStore(db).get_url(storage_id)
    if not url:
        return JSONResponse({"error": "File not found"}, status_code=404)

    try:
        response = requests.get(url, timeout=get_settings().download_timeout_sec)
    except requests.RequestException as exc:
        logger.error("File download failed storage_id=%s error=%s", storage_id, exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    if not response.ok:
        logger.warning("File fetch returned %s for storage_id=%s", response.status_code, storage_id)
        return JSONResponse({"error": "Failed to fetch file"}, status_code=500)

    content = response.content
    return Response(
        content=content,
        media_type=response.headers.get("content-type") or "application/octet-stream",
        headers={"Content-Length": str(len(content))},
    )


def content_disposition(filename: str, disposition: str = "inline") -> str:
    # header values must stay latin-1; non-ASCII names go in filename* (RFC 5987)
    name = filename.replace('"', "").replace("\r", "").replace("\n", "")
    fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    if fallback == name:
        return f'{disposition}; filename="{name}"'
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"


@router.get("/files/blob/{storage_id}")
def serve_blob(storage_id: str, expires: int, signature: str, db: Session = Depends(get_db)) -> Response:
    store = BlobStore(db)
    if not store.verify_signature(storage_id, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")
    row, data = store.open(storage_id)
    headers = {"Content-Length": str(len(data))}
    if row.filename:
        headers["Content-Disposition"] = content_disposition(row.filename)
    return Response(content=data, media_type=row.content_type, headers=headers)


@router.delete("/files/{storage_id}")
def delete_file(storage_id: str, db: Session = Depends(get_db)) -> dict:
    return {"success": BlobStore(db).delete(storage_id)}


@router.get("/resumes/status")
def resume_parser_status() -> dict:
    enabled = ResumeAIParser().ai_enabled
    message = (
        "AI resume parsing is enabled"
        if enabled
        else "AI parsing not configured. Using basic parser. Set OPENAI_API_KEY to enable AI parsing."
    )
    return {"ai_enabled": enabled, "message": message}


@router.post("/resumes/parse", response_model=ResumeParseResponse)
def parse_resume(
    file: UploadFile = File(...),
    job_id: int | None = Form(default=None),
    db: Session = Depends(get_db),
) -> ResumeParseResponse:
    data = _read_limited(file, get_settings().max_upload_bytes)
    text = extract_text(file.filename or "", data)
    if not text.strip():
        raise DomainValidationError("No text could be extracted from the file")

    parser = ResumeAIParser()
    parsed = parser.parse(text)

    score = None
    if job_id is not None:
        job = Repository(db).require(Job, job_id, "Job")
        score = match_score(parsed, list(job.requirements_json or []))

    preview = text[:500] + ("..." if len(text) > 500 else "")
    return ResumeParseResponse(
        data=parsed.model_dump(),
        ai_enabled=parser.ai_enabled,
        raw_text_preview=preview,
        match_score=score,
    )
