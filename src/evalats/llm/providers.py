from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from evalats.config import Settings
from evalats.types import ModelResponse

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int


class LLMProvider:

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = OpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
        )

    def complete_text(
        self,
        *,
        model: str,
        prompt: str,
        system: str | None = None,
        json_mode: bool = False,
        temperature: float = 0.1,
    ) -> ModelResponse:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(**kwargs)

        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        usage = raw.get("usage") if isinstance(raw, dict) else None
        logger.debug("provider=%s model=%s usage=%s", self.config.name, model, usage)
        return ModelResponse(content=first_message_text(response), raw=raw if isinstance(raw, dict) else {})

    def complete_json(self, *, model: str, prompt: str, system: str | None = None) -> dict[str, Any]:
        return parse_json(self.complete_text(model=model, prompt=prompt, system=system, json_mode=True).content)


def first_message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    message = getattr(choices[0], "message", None) if choices else None
    content = getattr(message, "content", None)
    return content if isinstance(content, str) else ""


def parse_json(content: str) -> dict[str, Any]:
    """Decode a model reply into a dict, unwrapping a fenced ```json block if present."""
    text = content.strip()
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        text = fenced.group(1)
    if not text:
        return {}

    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Model output was not valid JSON (%s chars)", len(text))
        return {}
    return value if isinstance(value, dict) else {}


class ProviderPool:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._openai: LLMProvider | None = None

    @property
    def openai_enabled(self) -> bool:
        return self.settings.resume_ai_enabled and bool(self.settings.openai_api_key)

    def openai(self) -> LLMProvider:
        if self._openai is None:
            self._openai = LLMProvider(
                ProviderConfig(
                    name="openai",
                    base_url=self.settings.openai_base_url,
                    api_key=self.settings.openai_api_key,
                    timeout_sec=self.settings.openai_timeout_sec,
                )
            )
        return self._openai
