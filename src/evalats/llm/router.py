from __future__ import annotations

import logging
from typing import Any

from evalats.config import Settings, get_settings
from evalats.core.resume_parser import basic_parse
from evalats.llm.prompts import RESUME_PARSE_PROMPT, RESUME_PARSE_SYSTEM
from evalats.llm.providers import ProviderPool
from evalats.types import ParsedResume

logger = logging.getLogger(__name__)

MAX_RESUME_CHARS = 20000


class ResumeAIParser:

    def __init__(self, settings: Settings | None = None, pool: ProviderPool | None = None):
        self.settings = settings or get_settings()
        self.pool = pool or ProviderPool(self.settings)

    @property
    def ai_enabled(self) -> bool:
        return self.pool.openai_enabled

    def parse(self, resume_text: str) -> ParsedResume:
        if not self.ai_enabled:
            return basic_parse(resume_text)

        data = self._call_json(RESUME_PARSE_PROMPT.format(resume_text=resume_text[:MAX_RESUME_CHARS]))
        if not data:
            return basic_parse(resume_text)

        try:
            parsed = ParsedResume.model_validate({**_normalize(data), "strategy": "ai"})
        except Exception:
            logger.warning("Invalid structured resume output; falling back to basic parser")
            return basic_parse(resume_text)
        return parsed

    def _call_json(self, prompt: str) -> dict[str, Any]:
        provider = self.pool.openai()
        try:
            return provider.complete_json(
                model=self.settings.openai_model_resume,
                prompt=prompt,
                system=RESUME_PARSE_SYSTEM,
            )
        except Exception as exc:
            logger.warning("LLM JSON call failed provider=%s error=%s", provider.config.name, exc)
            return {}


def _normalize(data: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in data.items() if value is not None}
    for key in ("name", "email", "phone", "location", "linkedin", "github", "portfolio", "summary"):
        if key in payload and not isinstance(payload[key], str):
            payload[key] = str(payload[key])
    for key in ("skills", "certifications", "languages"):
        value = payload.get(key)
        if isinstance(value, str):
            payload[key] = [item.strip() for item in value.split(",") if item.strip()]
    for key in ("experience", "education"):
        value = payload.get(key)
        if isinstance(value, list):
            payload[key] = [item for item in value if isinstance(item, dict)]
    try:
        payload["total_experience_years"] = int(float(payload.get("total_experience_years", 0) or 0))
    except (TypeError, ValueError):
        payload["total_experience_years"] = 0
    return payload
