"""
Model endpoint providers.

Every provider exposes `chat(messages, tools) -> dict` and returns the
assistant message as a plain dict: `{"role", "content", "tool_calls"?}`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
import litellm
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    BudgetExceededError,
    ContextWindowExceededError,
    NotFoundError,
    RateLimitError,
    ServiceUnavailableError,
)

from mcpfs.models.config import DriverConfig

# Suppress LiteLLM debug messages (e.g., "Provider List: ...")
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ModelEndpointError(Exception):
    """User-friendly model endpoint error. Ends the current turn only."""

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)


class ModelTimeoutError(ModelEndpointError):
    """A model call exceeded its deadline."""


def _extract_error_message(error: Exception) -> str:
    """Extract the most useful part of an endpoint error message."""
    msg = str(error)
    match = re.search(r'"(?:message|error)"\s*:\s*"([^"]+)"', msg)
    if match:
        return match.group(1)
    if len(msg) > 200:
        return msg[:200] + "..."
    return msg


class LLMProvider(ABC):
    """A chat endpoint that can request tool calls."""

    def __init__(
        self,
        model: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        retry_backoff: float = 2.0,
    ):
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Send the transcript and tool schemas; return the assistant message.

        Raises:
            ModelEndpointError: When the endpoint fails after retries
        """

    async def aclose(self) -> None:
        return None

    async def _backoff(self, attempt: int, delay: float, error: Exception) -> float:
        logger.warning(
            "LLM call failed (attempt %d/%d, model %s): %s. Retrying in %.1fs...",
            attempt + 1,
            self.max_retries + 1,
            self.model,
            error,
            delay,
        )
        await asyncio.sleep(delay)
        return delay * self.retry_backoff


class OllamaProvider(LLMProvider):
    """
    Native Ollama `/api/chat` provider.

    Tool calls from Ollama carry their arguments as an object and usually
    no id.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        retry_backoff: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        super().__init__(model, max_retries, retry_delay, retry_backoff)
        self.api_url = api_url
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        body = {
            "model": self.model,
            "messages": messages,
            "tools": tools or [],
            "think": False,
            "stream": False,
        }
        logger.debug(
            "ollama request: model=%s messages=%d tools=%d",
            self.model, len(messages), len(tools or []),
        )

        delay = self.retry_delay
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.post(self.api_url, json=body)
            except httpx.RequestError as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = await self._backoff(attempt, delay, e)
                continue

            if response.status_code in RETRYABLE_STATUS:
                last_error = httpx.HTTPStatusError(
                    f"HTTP {response.status_code}: {response.text}",
                    request=response.request,
                    response=response,
                )
                if attempt < self.max_retries:
                    delay = await self._backoff(attempt, delay, last_error)
                continue

            if response.status_code >= 400:
                raise ModelEndpointError(
                    f"Model endpoint rejected the request for '{self.model}' "
                    f"(HTTP {response.status_code}): {_extract_error_message(Exception(response.text))}"
                )
            return self._parse(response)

        if isinstance(last_error, httpx.RequestError):
            raise ModelEndpointError(
                f"Cannot connect to the model endpoint at {self.api_url}.\n"
                f"  Is Ollama running? Set LLM_API_URL to point elsewhere.",
                original=last_error,
            ) from last_error
        raise ModelEndpointError(
            f"Model endpoint unavailable for '{self.model}': "
            f"{_extract_error_message(last_error)}",
            original=last_error,
        ) from last_error

    def _parse(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ModelEndpointError(
                f"Model endpoint returned invalid JSON: {response.text[:200]}", original=e
            ) from e
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ModelEndpointError("No message received")
        message.setdefault("role", "assistant")
        message.setdefault("content", "")
        return message


class LiteLLMProvider(LLMProvider):
    """Any model LiteLLM can reach (openai/gpt-4o, anthropic/..., ollama/...)."""

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        delay = self.retry_delay
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                response = await litellm.acompletion(**kwargs)
                return self._normalize(response)
            except (
                AuthenticationError,
                NotFoundError,
                BudgetExceededError,
                BadRequestError,
                ContextWindowExceededError,
            ) as e:
                raise _friendly_litellm_error(self.model, e) from e
            except (RateLimitError, ServiceUnavailableError, APIConnectionError, APIError) as e:
                msg = str(e).lower()
                if any(kw in msg for kw in ["402", "credits", "insufficient", "budget"]):
                    raise _friendly_litellm_error(self.model, e) from e
                last_error = e
                if attempt < self.max_retries:
                    delay = await self._backoff(attempt, delay, e)

        raise _friendly_litellm_error(self.model, last_error) from last_error

    @staticmethod
    def _normalize(response: Any) -> dict[str, Any]:
        choices = getattr(response, "choices", None)
        if not choices:
            raise ModelEndpointError("No message received")
        msg = choices[0].message
        result: dict[str, Any] = {"role": "assistant", "content": msg.content or ""}
        tool_calls = getattr(msg, "tool_calls", None)
        if tool_calls:
            result["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.function.name,
                        "arguments": tc.function.arguments,
                    },
                }
                for tc in tool_calls
            ]
        return result


def _friendly_litellm_error(model: str, error: Exception | None) -> ModelEndpointError:
    """Convert a LiteLLM exception to a user-friendly error message."""
    provider = model.split("/")[0].lower()

    if isinstance(error, AuthenticationError):
        return ModelEndpointError(
            f"Authentication failed for '{model}'. Check the {provider.upper()}_API_KEY "
            f"environment variable.",
            original=error,
        )
    if isinstance(error, NotFoundError):
        return ModelEndpointError(
            f"Model '{model}' not found. LiteLLM format: provider/model "
            f"(e.g., openai/gpt-4o, ollama/mistral-nemo).",
            original=error,
        )
    if isinstance(error, RateLimitError):
        return ModelEndpointError(
            f"Rate limit exceeded for '{model}'. Wait a moment and try again.",
            original=error,
        )
    if isinstance(error, ContextWindowExceededError):
        return ModelEndpointError(
            f"Context too large for '{model}'. Start a new chat to clear the history.",
            original=error,
        )
    if isinstance(error, BadRequestError):
        return ModelEndpointError(
            f"Model '{model}' rejected the request: {_extract_error_message(error)}",
            original=error,
        )
    if isinstance(error, APIConnectionError):
        return ModelEndpointError(
            f"Cannot connect to {provider} API. If using a custom endpoint, verify the URL.",
            original=error,
        )
    if isinstance(error, ServiceUnavailableError):
        return ModelEndpointError(
            f"The {provider} API is temporarily unavailable. Try again in a moment.",
            original=error,
        )
    if error is None:
        return ModelEndpointError(f"No response from '{model}'")
    return ModelEndpointError(
        f"LLM error ({type(error).__name__}): {_extract_error_message(error)}",
        original=error,
    )


def create_provider(
    config: DriverConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    """Build the provider selected by `config.provider`."""
    if config.provider == "litellm":
        return LiteLLMProvider(
            config.llm_model,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            retry_backoff=config.retry_backoff,
        )
    return OllamaProvider(
        config.llm_api_url,
        config.llm_model,
        max_retries=config.max_retries,
        retry_delay=config.retry_delay,
        retry_backoff=config.retry_backoff,
        transport=transport,
        timeout=config.model_timeout_seconds,
    )
