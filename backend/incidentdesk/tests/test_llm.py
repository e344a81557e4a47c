import pytest
import requests

from incidentdesk import llm


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeHTTP:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


OK = FakeResponse(
    payload={
        "model": "openai/gpt-5-nano",
        "choices": [{"message": {"content": "hello"}, "finish_reason": "stop"}],
        "usage": {"total_tokens": 2000},
    }
)


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []
    monkeypatch.setattr(llm.time, "sleep", delays.append)
    return delays


def test_complete_posts_chat_payload(no_sleep):
    http = FakeHTTP([OK])
    client = llm.OpenRouterClient(api_key="key", base_url="https://llm.example.com/v1/", http=http)
    response = client.complete(llm.LLMRequest(prompt="hi", operation="test", temperature=0.1, max_tokens=50))
    assert response.content == "hello"
    assert response.tokens_used == 2000
    assert response.cost_usd == pytest.approx(0.0001)
    assert response.finish_reason == "stop"
    call = http.calls[0]
    assert call["url"] == "https://llm.example.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer key"
    assert call["json"]["model"] == llm.DEFAULT_MODEL
    assert call["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert no_sleep == []


def test_retries_with_backoff_then_succeeds(no_sleep):
    http = FakeHTTP([requests.ConnectionError("reset"), FakeResponse(500), OK])
    client = llm.OpenRouterClient(api_key="key", max_retries=3, http=http)
    response = client.complete(llm.LLMRequest(prompt="hi", operation="test"))
    assert response.content == "hello"
    assert no_sleep == [1, 2]


def test_gives_up_after_max_retries(no_sleep):
    http = FakeHTTP([FakeResponse(502), FakeResponse(502)])
    client = llm.OpenRouterClient(api_key="key", max_retries=2, http=http)
    with pytest.raises(llm.LLMError, match="after 2 attempts"):
        client.complete(llm.LLMRequest(prompt="hi", operation="test"))
    assert no_sleep == [1]


def test_auth_errors_are_not_retried(no_sleep):
    http = FakeHTTP([FakeResponse(401), OK])
    client = llm.OpenRouterClient(api_key="bad", http=http)
    with pytest.raises(llm.LLMError, match="rejected credentials"):
        client.complete(llm.LLMRequest(prompt="hi", operation="test"))
    assert len(http.calls) == 1


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    client = llm.OpenRouterClient(http=FakeHTTP([]))
    assert client.configured is False
    with pytest.raises(llm.LLMError, match="OPENROUTER_API_KEY"):
        client.complete(llm.LLMRequest(prompt="hi", operation="test"))


def test_extract_json_variants():
    assert llm.extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert llm.extract_json('prefix ```\n[1, 2]\n``` suffix') == [1, 2]
    assert llm.extract_json('  [3]  ') == [3]
    with pytest.raises(ValueError):
        llm.extract_json("not json")


def test_estimate_cost_uses_fallback_rate():
    assert llm.estimate_cost("openai/gpt-4", 1000) == pytest.approx(0.03)
    assert llm.estimate_cost("unknown/model", 1000) == pytest.approx(llm.DEFAULT_COST_PER_1K)


def test_correlation_ids_are_unique():
    first = llm.new_correlation_id()
    assert first.startswith("ai-")
    assert first != llm.new_correlation_id()
    assert llm.LLMRequest(prompt="p", operation="o").correlation_id.startswith("ai-")
