import httpx
import pytest
from langchain_core.messages import AIMessage

from services.llm import LLMError, OllamaClient, RateLimitedError


class StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class ScriptedChat:
    """Replays ainvoke outcomes; exceptions are raised."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def ainvoke(self, messages):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(chat, **kwargs):
    return OllamaClient(base_url="http://localhost:11434/v1", model="llama3", llm=chat, retry_delay=0, **kwargs)


def test_strips_openai_suffix_and_sets_auth_header():
    client = _client(ScriptedChat(), api_key="secret")

    assert client.base_url == "http://localhost:11434"
    assert client._headers == {"Authorization": "Bearer secret"}


@pytest.mark.asyncio
async def test_evaluate_reports_usage():
    message = AIMessage(
        content='{"bookmarks": []}',
        usage_metadata={"input_tokens": 120, "output_tokens": 30, "total_tokens": 150},
    )

    result = await _client(ScriptedChat(message)).evaluate("prompt")

    assert result["content"] == '{"bookmarks": []}'
    assert (result["input_tokens"], result["output_tokens"]) == (120, 30)


@pytest.mark.asyncio
async def test_missing_usage_is_zero():
    result = await _client(ScriptedChat(AIMessage(content="{}"))).evaluate("prompt")

    assert (result["input_tokens"], result["output_tokens"]) == (0, 0)


@pytest.mark.asyncio
async def test_429_is_rate_limited_and_not_retried():
    chat = ScriptedChat(StatusError("too many requests", 429))

    with pytest.raises(RateLimitedError):
        await _client(chat).evaluate("prompt")

    assert chat.calls == 1


@pytest.mark.asyncio
async def test_connection_errors_are_retried():
    chat = ScriptedChat(httpx.ConnectError("refused"), AIMessage(content="{}"))

    result = await _client(chat).evaluate("prompt")

    assert result["content"] == "{}"
    assert chat.calls == 2


@pytest.mark.asyncio
async def test_connection_errors_exhaust_retries():
    chat = ScriptedChat(*(httpx.ConnectError("refused") for _ in range(3)))

    with pytest.raises(LLMError, match="All connection attempts failed"):
        await _client(chat).evaluate("prompt")

    assert chat.calls == 3


@pytest.mark.asyncio
async def test_other_errors_fail_fast():
    chat = ScriptedChat(StatusError("model not found", 404))

    with pytest.raises(LLMError, match="model not found") as excinfo:
        await _client(chat).evaluate("prompt")

    assert not isinstance(excinfo.value, RateLimitedError)
    assert chat.calls == 1


@pytest.mark.asyncio
async def test_health_check(monkeypatch):
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "llama3"}]})

    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)

    assert await _client(ScriptedChat()).health_check() is True


@pytest.mark.asyncio
async def test_health_check_reports_unreachable_server(monkeypatch):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(httpx, "AsyncClient", lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw))

    assert await _client(ScriptedChat()).health_check() is False
