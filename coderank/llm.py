"""LiteLLM Proxy client for chat completions."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from coderank.constants import DEFAULT_LLM_MODEL

logger = structlog.get_logger()

# Model used for relevance scoring and compression unless one is passed.
DEFAULT_MODEL: str = DEFAULT_LLM_MODEL


class LLMError(Exception):
    """Raised when the LLM proxy returns an error response or cannot be reached."""

    def __init__(self, status_code: int, model: str, body: str) -> None:
        self.status_code = status_code
        self.model = model
        self.body = body
        short = body[:500] if len(body) > 500 else body
        super().__init__(f"LiteLLM {status_code} for model={model}: {short}")


@dataclass(frozen=True)
class CompletionResponse:
    """Parsed response from an LLM completion call."""

    content: str
    tokens_in: int
    tokens_out: int
    model: str
    cost_usd: float = 0.0


class LiteLLMClient:
    """HTTP client for the LiteLLM Proxy (OpenAI-compatible API)."""

    def __init__(self, base_url: str = "http://localhost:4000", api_key: str = "", timeout: float = 120.0) -> None:
        self._base_url = base_url.rstrip("/")
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(base_url=self._base_url, headers=headers, timeout=timeout)

    async def completion(
        self,
        prompt: str,
        model: str = DEFAULT_MODEL,
        system: str = "",
        temperature: float = 0.2,
        max_tokens: int | None = None,
        response_format: dict[str, object] | None = None,
    ) -> CompletionResponse:
        """Send a single-turn chat completion request.

        When *response_format* is given (e.g. ``{"type": "json_object"}``) it
        is forwarded so the model is asked for structured output.
        """
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, object] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if response_format is not None:
            payload["response_format"] = response_format

        logger.debug("llm completion request", model=model, temperature=temperature, prompt_len=len(prompt))

        try:
            resp = await self._client.post("/v1/chat/completions", json=payload)
        except httpx.HTTPError as exc:
            raise LLMError(0, model, f"{type(exc).__name__}: {exc}") from exc
        if resp.status_code >= 400:
            body = resp.text
            logger.error("litellm error", status=resp.status_code, model=model, body=body[:1000])
            raise LLMError(resp.status_code, model, body)
        data: dict[str, object] = resp.json()

        try:
            litellm_cost = float(resp.headers.get("x-litellm-response-cost", "0"))
        except (ValueError, TypeError):
            litellm_cost = 0.0

        choices = data.get("choices", [])
        if not isinstance(choices, list) or len(choices) == 0:
            return CompletionResponse(content="", tokens_in=0, tokens_out=0, model=model, cost_usd=litellm_cost)

        message = choices[0].get("message", {})
        content = (message.get("content") or "") if isinstance(message, dict) else ""

        usage = data.get("usage", {})
        tokens_in = usage.get("prompt_tokens", 0) if isinstance(usage, dict) else 0
        tokens_out = usage.get("completion_tokens", 0) if isinstance(usage, dict) else 0

        return CompletionResponse(
            content=str(content),
            tokens_in=int(tokens_in),
            tokens_out=int(tokens_out),
            model=model,
            cost_usd=litellm_cost,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
