"""OpenRouter chat completion client with retry, cost tracking and request logging."""

from __future__ import annotations

import json
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import requests
from sqlalchemy.orm import Session

from . import models

# purpose: single outbound seam for every LLM call made by the capture workflow
# status: active

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-5-nano"

# USD per 1K tokens
MODEL_COST_PER_1K: dict[str, float] = {
    "openai/gpt-5-nano": 0.00005,
    "openai/gpt-4o-mini": 0.00015,
    "openai/gpt-5-mini": 0.00025,
    "anthropic/claude-3-haiku": 0.00025,
    "openai/gpt-4.1-nano": 0.002,
    "openai/gpt-4": 0.03,
    "anthropic/claude-3-sonnet": 0.003,
}
DEFAULT_COST_PER_1K = 0.00005

_FENCED_JSON = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_FENCED_ANY = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


class LLMError(RuntimeError):
    """Raised when the LLM provider cannot produce a completion."""


@dataclass
class LLMRequest:
    prompt: str
    operation: str
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1000
    correlation_id: str = field(default_factory=lambda: new_correlation_id())


@dataclass
class LLMResponse:
    content: str
    model: str
    correlation_id: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    processing_time_ms: int = 0
    finish_reason: str | None = None


def new_correlation_id(prefix: str = "ai") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def default_model() -> str:
    return os.getenv("LLM_DEFAULT_MODEL", DEFAULT_MODEL)


def estimate_cost(model: str, tokens: int) -> float:
    rate = MODEL_COST_PER_1K.get(model, DEFAULT_COST_PER_1K)
    return round(tokens / 1000 * rate, 8)


def extract_json(text: str) -> Any:
    """Parse JSON from a completion, tolerating markdown code fences."""
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    payload = match.group(1) if match else text.strip()
    return json.loads(payload)


class OpenRouterClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        http: requests.Session | None = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("OPENROUTER_API_KEY", "")
        self.base_url = (base_url or os.getenv("OPENROUTER_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout or float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
        self.max_retries = max_retries or int(os.getenv("LLM_MAX_RETRIES", "3"))
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _post(self, payload: dict) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": "incidentdesk",
        }
        r = self.http.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        if r.status_code in (401, 403):
            raise LLMError(f"LLM provider rejected credentials ({r.status_code})")
        r.raise_for_status()
        return r.json()

    def complete(self, request: LLMRequest) -> LLMResponse:
        if not self.configured:
            raise LLMError("OPENROUTER_API_KEY is not configured")
        model = request.model or default_model()
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        start = time.monotonic()
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                data = self._post(payload)
                choice = data["choices"][0]
                content = choice["message"]["content"] or ""
                tokens = int(data.get("usage", {}).get("total_tokens", 0))
                elapsed = int((time.monotonic() - start) * 1000)
                logger.info(
                    "llm completion ok correlation_id=%s model=%s attempt=%d ms=%d",
                    request.correlation_id,
                    model,
                    attempt,
                    elapsed,
                )
                return LLMResponse(
                    content=content,
                    model=data.get("model", model),
                    correlation_id=request.correlation_id,
                    tokens_used=tokens,
                    cost_usd=estimate_cost(model, tokens),
                    processing_time_ms=elapsed,
                    finish_reason=choice.get("finish_reason"),
                )
            except LLMError:
                raise
            except (requests.RequestException, KeyError, IndexError, ValueError) as exc:
                last_error = exc
                logger.warning(
                    "llm attempt %d/%d failed correlation_id=%s: %s",
                    attempt,
                    self.max_retries,
                    request.correlation_id,
                    exc,
                )
                if attempt < self.max_retries:
                    time.sleep(2 ** (attempt - 1))
        raise LLMError(f"LLM request failed after {self.max_retries} attempts: {last_error}")


_client: OpenRouterClient | None = None


def get_client() -> OpenRouterClient:
    global _client
    if _client is None:
        _client = OpenRouterClient()
    return _client


def log_request(
    db: Session,
    *,
    correlation_id: str,
    operation: str,
    model: str | None,
    prompt_template: str | None,
    input_data: dict | None,
    output_data: Any = None,
    processing_time_ms: int = 0,
    tokens_used: int | None = None,
    cost_usd: float | None = None,
    success: bool = True,
    error_message: str | None = None,
    user_id=None,
    incident_id=None,
) -> models.AIRequestLog:
    entry = models.AIRequestLog(
        correlation_id=correlation_id,
        operation=operation,
        model=model,
        prompt_template=prompt_template,
        input_data=input_data or {},
        output_data=output_data,
        processing_time_ms=processing_time_ms,
        tokens_used=tokens_used,
        cost_usd=cost_usd,
        success=success,
        error_message=error_message,
        user_id=user_id,
        incident_id=incident_id,
    )
    db.add(entry)
    db.commit()
    return entry
