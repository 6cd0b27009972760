import io

import docx
import pytest

from evalats.config import Settings
from evalats.core.resume_parser import basic_parse, extract_text, match_score
from evalats.errors import DomainValidationError
from evalats.llm.providers import parse_json
from evalats.llm.router import ResumeAIParser

RESUME = """Sarah Chen
sarah.chen@email.com | +1 (415) 555-0123
linkedin.com/in/sarahchen  github.com/sarahchen

Senior engineer with 7 years of experience building React and TypeScript apps on AWS.
Skills: JavaScript, Node.js, Docker, CI/CD
"""


class _StubProvider:
    class config:
        name = "stub"

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error

    def complete_json(self, **kwargs):
        if self.error:
            raise self.error
        return self.payload


class _StubPool:
    def __init__(self, provider, enabled=True):
        self.provider = provider
        self.openai_enabled = enabled

    def openai(self):
        return self.provider


def test_basic_parse_extracts_contact_and_skills() -> None:
    parsed = basic_parse(RESUME)
    assert parsed.name == "Sarah Chen"
    assert parsed.email == "sarah.chen@email.com"
    assert parsed.phone.startswith("+1 (415)")
    assert parsed.linkedin == "https://linkedin.com/in/sarahchen"
    assert parsed.github == "https://github.com/sarahchen"
    assert parsed.total_experience_years == 7
    assert parsed.strategy == "basic"
    assert {"React", "TypeScript", "AWS", "JavaScript", "Node.js", "Docker", "CI/CD"} <= set(parsed.skills)


def test_skill_matching_respects_word_boundaries() -> None:
    parsed = basic_parse("Jordan\nWrites JavaScript daily")
    assert "JavaScript" in parsed.skills
    assert "Java" not in parsed.skills


def test_match_score_is_rounded_percentage() -> None:
    parsed = basic_parse(RESUME)
    assert match_score(parsed, ["React", "TypeScript", "Kubernetes"]) == 67
    assert match_score(parsed, []) == 0


def test_extract_text_handles_txt_html_and_docx() -> None:
    assert extract_text("cv.txt", b"Hello") == "Hello"
    assert extract_text("cv.html", b"<h1>Jane</h1><style>p{}</style><p>Python</p>") == "Jane\nPython"

    document = docx.Document()
    document.add_paragraph("Jane Doe")
    document.add_paragraph("Python developer")
    buffer = io.BytesIO()
    document.save(buffer)
    assert "Jane Doe\nPython developer" in extract_text("cv.docx", buffer.getvalue())


def test_extract_text_rejects_unsupported_and_corrupt_files() -> None:
    with pytest.raises(DomainValidationError):
        extract_text("cv.exe", b"MZ")
    with pytest.raises(DomainValidationError):
        extract_text("cv.pdf", b"not a pdf")


def test_parse_json_accepts_fenced_output() -> None:
    assert parse_json('```json\n{"name": "Jane"}\n```') == {"name": "Jane"}
    assert parse_json("not json") == {}


def test_ai_parser_normalizes_model_output() -> None:
    provider = _StubProvider(
        {"name": "Jane", "skills": "Python, SQL", "total_experience_years": "4.5", "email": None}
    )
    parser = ResumeAIParser(Settings(openai_api_key="sk-test"), pool=_StubPool(provider))
    parsed = parser.parse("Jane\nPython")
    assert parsed.strategy == "ai"
    assert parsed.skills == ["Python", "SQL"]
    assert parsed.total_experience_years == 4
    assert parsed.email == ""


def test_ai_parser_falls_back_on_provider_error() -> None:
    provider = _StubProvider(error=RuntimeError("rate limited"))
    parser = ResumeAIParser(Settings(openai_api_key="sk-test"), pool=_StubPool(provider))
    parsed = parser.parse(RESUME)
    assert parsed.strategy == "basic"
    assert parsed.email == "sarah.chen@email.com"


def test_ai_parser_disabled_uses_basic_parser() -> None:
    parser = ResumeAIParser(Settings(openai_api_key=""))
    assert parser.ai_enabled is False
    assert parser.parse(RESUME).strategy == "basic"
