import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from biowell.db.models import ModelUsageStat

PROVIDER = "openai"
OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_OPENAI_MODEL = "gpt-4"
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_CONNECT_TIMEOUT_SECONDS = float(os.getenv("LLM_CONNECT_TIMEOUT_SECONDS", "10"))
LLM_RETRY_COUNT = int(os.getenv("LLM_RETRY_COUNT", "1"))
LLM_RETRY_BACKOFF_SECONDS = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "0.75"))
LLM_MAX_TOKENS_CHAT = int(os.getenv("LLM_MAX_TOKENS_CHAT", "1500"))
LLM_MAX_TOKENS_PLAN = int(os.getenv("LLM_MAX_TOKENS_PLAN", "900"))
CHAT_TEMPERATURE = 0.7
PLAN_TEMPERATURE = 0.4
# Base gpt-4 answers response_format=json_object with a 400.
JSON_MODE_MODEL_PREFIXES = ("gpt-4o", "gpt-4.1", "gpt-4-turbo", "gpt-4-1106", "gpt-4-0125", "gpt-5")


class LLMRequestError(RuntimeError):
    def __init__(self, provider: str, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class LLMConfigError(LLMRequestError):
    """Raised before any request is made when the provider key is absent."""


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_payload(cls, usage: Optional[dict[str, Any]]) -> "TokenUsage":
        usage = usage or {}
        prompt = max(0, int(usage.get("prompt_tokens") or 0))
        completion = max(0, int(usage.get("completion_tokens") or 0))
        total = max(0, int(usage.get("total_tokens") or prompt + completion))
        return cls(prompt, completion, total)


def parse_llm_json(raw_text: str) -> dict[str, Any]:
    """Decode a JSON object, tolerating prose around it (``Here you go: {...}``)."""
    candidates = [raw_text]
    start, end = raw_text.find("{"), raw_text.rfind("}")
    if 0 <= start < end:
        candidates.append(raw_text[start : end + 1])
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("Invalid JSON response from LLM")


def _openai_settings() -> tuple[str, str]:
    model = os.getenv("OPENAI_MODEL", "").strip() or DEFAULT_OPENAI_MODEL
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    if not api_key:
        raise LLMConfigError(PROVIDER, model, "OpenAI API key not configured. Set OPENAI_API_KEY.")
    return model, api_key


def supports_json_mode(model: str) -> bool:
    return model.startswith(JSON_MODE_MODEL_PREFIXES)


def _backoff(attempt: int) -> None:
    time.sleep(LLM_RETRY_BACKOFF_SECONDS * (attempt + 1))


def _post_completion(model: str, api_key: str, body: dict[str, Any]) -> dict[str, Any]:
    """POST to chat completions, retrying timeouts, 5xx and transport errors."""
    attempts = max(1, LLM_RETRY_COUNT + 1)
    timeout = httpx.Timeout(LLM_TIMEOUT_SECONDS, connect=LLM_CONNECT_TIMEOUT_SECONDS)
    for attempt in range(attempts):
        final = attempt == attempts - 1
        try:
            response = httpx.post(
                OPENAI_CHAT_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json=body,
                timeout=timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            if final:
                raise LLMRequestError(
                    PROVIDER, model, "OpenAI request timed out while waiting for response."
                ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if final or status < 500:
                body_text = (exc.response.text or "").strip()[:220] or "no response body"
                raise LLMRequestError(
                    PROVIDER, model, f"OpenAI request failed (status={status}): {body_text}", status
                ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            if final:
                raise LLMRequestError(PROVIDER, model, f"OpenAI request failed: {str(exc)[:220]}") from exc
        _backoff(attempt)
    raise LLMRequestError(PROVIDER, model, "OpenAI request failed: retries exhausted")


def _completion_text(model: str, data: Any) -> str:
    choices = data.get("choices") if isinstance(data, dict) else None
    message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise LLMRequestError(PROVIDER, model, "Invalid response format from OpenAI")
    text = str(message.get("content") or "").strip()
    if not text:
        raise LLMRequestError(PROVIDER, model, "OpenAI chat completion returned empty content")
    return text


def _record_usage(db: Session, user_id: int, model: str, usage: TokenUsage) -> None:
    stat = (
        db.query(ModelUsageStat)
        .filter(
            ModelUsageStat.user_id == user_id,
            ModelUsageStat.provider == PROVIDER,
            ModelUsageStat.model == model,
        )
        .first()
    )
    if stat is None:
        stat = ModelUsageStat(
            user_id=user_id,
            provider=PROVIDER,
            model=model,
            request_count=0,
            prompt_tokens=0,
            completion_tokens=0,
            total_tokens=0,
        )
        db.add(stat)
    stat.request_count += 1
    stat.prompt_tokens += usage.prompt_tokens
    stat.completion_tokens += usage.completion_tokens
    stat.total_tokens += usage.total_tokens
    stat.last_used_at = datetime.now(timezone.utc)


class LLMClient(Protocol):
    def chat(self, db: Session, user_id: int, messages: list[dict[str, str]]) -> str:
        ...

    def generate_json(
        self, db: Session, user_id: int, prompt: str, system_instruction: str = ""
    ) -> dict[str, Any]:
        ...


class OpenAIClient:
    def _complete(
        self,
        db: Session,
        user_id: int,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        json_mode: bool = False,
    ) -> str:
        model, api_key = _openai_settings()
        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "presence_penalty": 0.1,
            "frequency_penalty": 0.1,
        }
        if json_mode and supports_json_mode(model):
            body["response_format"] = {"type": "json_object"}
        data = _post_completion(model, api_key, body)
        text = _completion_text(model, data)
        _record_usage(db, user_id, model, TokenUsage.from_payload(data.get("usage")))
        db.commit()
        return text

    def chat(self, db: Session, user_id: int, messages: list[dict[str, str]]) -> str:
        return self._complete(db, user_id, messages, LLM_MAX_TOKENS_CHAT, CHAT_TEMPERATURE)

    def generate_json(
        self, db: Session, user_id: int, prompt: str, system_instruction: str = ""
    ) -> dict[str, Any]:
        messages = [{"role": "system", "content": system_instruction}] if system_instruction else []
        messages.append({"role": "user", "content": prompt})
        raw = self._complete(db, user_id, messages, LLM_MAX_TOKENS_PLAN, PLAN_TEMPERATURE, json_mode=True)
        return parse_llm_json(raw)


def get_llm_client() -> LLMClient:
    return OpenAIClient()
