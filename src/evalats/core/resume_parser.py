from __future__ import annotations

import io
import math
import re
from pathlib import Path
from typing import Any

import docx
import fitz
from bs4 import BeautifulSoup

from evalats.errors import DomainValidationError
from evalats.types import ParsedResume

_EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w+")
_PHONE_PATTERN = re.compile(r"\+?\(?\d[\d().\s-]{6,}\d{4}")
_LINKEDIN_PATTERN = re.compile(r"linkedin\.com/in/[\w-]+", re.IGNORECASE)
_GITHUB_PATTERN = re.compile(r"github\.com/[\w-]+", re.IGNORECASE)
_YEARS_PATTERN = re.compile(r"(\d+)\+?\s*years?\s*(?:of\s*)?experience", re.IGNORECASE)

KNOWN_SKILLS = [
    "JavaScript",
    "TypeScript",
    "Python",
    "Java",
    "C++",
    "React",
    "Node.js",
    "AWS",
    "Docker",
    "Kubernetes",
    "SQL",
    "MongoDB",
    "Git",
    "CI/CD",
    "Machine Learning",
    "Data Science",
    "DevOps",
    "Agile",
    "Scrum",
]
_SKILL_PATTERNS = {
    skill: re.compile(rf"(?<![A-Za-z0-9]){re.escape(skill)}(?![A-Za-z0-9+])", re.IGNORECASE)
    for skill in KNOWN_SKILLS
}

SUPPORTED_EXTENSIONS = {".txt", ".html", ".htm", ".pdf", ".docx"}


def extract_text(filename: str, data: bytes) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise DomainValidationError(
            f"Unsupported file type '{suffix or filename}'. Upload a .txt, .html, .pdf or .docx file."
        )

    if suffix == ".txt":
        return data.decode("utf-8", errors="replace")

    if suffix in {".html", ".htm"}:
        soup = BeautifulSoup(data, "html.parser")
        for tag in soup(["script", "style"]):
            tag.extract()
        return "\n".join(line.strip() for line in soup.get_text("\n").splitlines() if line.strip())

    try:
        if suffix == ".pdf":
            return _pdf_text(data)
        return "\n".join(paragraph.text for paragraph in docx.Document(io.BytesIO(data)).paragraphs)
    except DomainValidationError:
        raise
    except Exception as exc:
        raise DomainValidationError(f"Failed to read {suffix[1:].upper()} file: {exc}") from exc


def _pdf_text(data: bytes) -> str:
    blocks: list[Any] = []
    with fitz.open(stream=data, filetype="pdf") as document:
        for page in document:
            blocks.extend(page.get_text("blocks"))
    # reading order: top to bottom, then left to right
    blocks.sort(key=lambda block: (block[1], block[0]))
    return "\n".join(block[4] for block in blocks)


def basic_parse(text: str) -> ParsedResume:
    lines = [line.strip() for line in text.splitlines() if line.strip()]

    email_match = _EMAIL_PATTERN.search(text)
    phone_match = _PHONE_PATTERN.search(text)
    linkedin_match = _LINKEDIN_PATTERN.search(text)
    github_match = _GITHUB_PATTERN.search(text)
    years_match = _YEARS_PATTERN.search(text)

    name = lines[0] if lines else ""
    if email_match and email_match.group(0) in name:
        name = ""

    return ParsedResume(
        name=name,
        email=email_match.group(0) if email_match else "",
        phone=phone_match.group(0).strip() if phone_match else "",
        linkedin=f"https://{linkedin_match.group(0)}" if linkedin_match else "",
        github=f"https://{github_match.group(0)}" if github_match else "",
        skills=[skill for skill, pattern in _SKILL_PATTERNS.items() if pattern.search(text)],
        total_experience_years=int(years_match.group(1)) if years_match else 0,
        strategy="basic",
    )


def match_score(parsed: ParsedResume, requirements: list[str]) -> int:
    wanted = [item.strip().lower() for item in requirements if item.strip()]
    if not wanted:
        return 0
    haystack = parsed.model_dump_json().lower()
    matches = sum(1 for item in wanted if item in haystack)
    return math.floor(matches / len(wanted) * 100 + 0.5)
