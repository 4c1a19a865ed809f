"""
Client for the summarization service (Ollama via LangChain).
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_ollama import ChatOllama

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when the summarization service cannot produce a response."""


class RateLimitedError(LLMError):
    """The service explicitly reported that its rate limit was exceeded."""


def _status_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "status_code", None)
    if isinstance(code, int):
        return code
    response = getattr(exc, "response", None)
    code = getattr(response, "status_code", None)
    return code if isinstance(code, int) else None


def is_rate_limited(exc: BaseException) -> bool:
    return _status_code(exc) == 429


def is_connection_error(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.TransportError, ConnectionError)) or "connect" in str(exc).lower()


def native_base_url(base_url: str) -> str:
    """ChatOllama talks to the native API; drop an OpenAI-style /v1 suffix."""
    url = base_url.rstrip("/")
    if url.endswith("/v1"):
        url = url[:-3]
    return url


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_message(cls, message: Any) -> "TokenUsage":
        usage = getattr(message, "usage_metadata", None) or {}
        return cls(
            input_tokens=int(usage.get("input_tokens", 0) or 0),
            output_tokens=int(usage.get("output_tokens", 0) or 0),
        )


class OllamaClient:
    """
    Sends one prompt per call and returns the JSON text the model produced.

    Connection failures and timeouts are retried with linear backoff. A
    rate-limit response (HTTP 429, e.g. from a hosted endpoint) is raised
    as RateLimitedError at once; the caller owns that retry policy.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        timeout: float = 300.0,
        llm: Optional[Any] = None,
    ):
        self.base_url = native_base_url(base_url)
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

        # Bookmarks are long; the default 2048-token context truncates batches.
        self.llm = llm or ChatOllama(
            base_url=self.base_url,
            model=model,
            temperature=temperature,
            num_predict=max_tokens,
            num_ctx=8192,
            format="json",
            client_kwargs={"headers": self._headers} if self._headers else {},
        )

    async def _send(self, messages: List[BaseMessage]) -> Any:
        failure: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
            except asyncio.TimeoutError:
                failure = LLMError(f"Request timed out after {self.timeout}s")
                logger.warning(f"Attempt {attempt}/{self.max_retries}: no response within {self.timeout}s")
            except Exception as e:
                if is_rate_limited(e):
                    raise RateLimitedError(f"Rate limit exceeded: {e}") from e
                if not is_connection_error(e):
                    raise LLMError(f"LLM call failed: {e}") from e
                failure = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries}: cannot reach {self.base_url} ({self.model}): {e}"
                )

            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)

        raise LLMError(f"All connection attempts failed: {failure}") from failure

    async def evaluate(self, prompt: str) -> Dict[str, Any]:
        """
        Send `prompt` and return the response text, latency and reported token usage.
        Usage is zero when the server does not report it.
        """
        started = time.perf_counter()
        message = await self._send([HumanMessage(content=prompt)])
        usage = TokenUsage.from_message(message)

        return {
            "raw": message,
            "content": message.content,
            "latency_ms": int((time.perf_counter() - started) * 1000),
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
        }

    async def health_check(self) -> bool:
        """
        Check that the server answers /api/tags and lists the configured model.
        """
        url = f"{self.base_url}/api/tags"
        try:
            async with httpx.AsyncClient(timeout=5.0, headers=self._headers) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Ollama health check error: {e} (url={url})")
            return False

        if resp.status_code != 200:
            logger.error(f"Ollama health check failed: {resp.status_code} {resp.text}")
            return False

        names = {m.get("name") for m in resp.json().get("models", [])}
        if self.model not in names:
            logger.warning(f"Model {self.model} not found on {self.base_url}")
        return True
