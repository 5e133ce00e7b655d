"""OpenAI-compatible chat completion client with retries and streaming."""

import hashlib
import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from wadi.config import settings
from wadi.errors import ProviderError
from wadi.services.embeddings import EmbeddingService
from wadi.services.model_catalog import resolve_model

logger = logging.getLogger(__name__)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.retryable


class ProviderClient:
    """Uniform client for the generation backend (Groq by default).

    Messages are plain ``{"role", "content"}`` dicts. Friendly model names
    are translated through the model catalog before hitting the backend.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        backend: Optional[str] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        embedding_service: Optional[EmbeddingService] = None,
        transport: Optional[httpx.BaseTransport] = None,
        retry_wait=None,
    ):
        """Initialize the provider client."""
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.base_url = base_url or settings.LLM_BASE_URL
        self.backend = backend or settings.LLM_BACKEND
        self.max_attempts = max_attempts or settings.LLM_MAX_ATTEMPTS
        self.timeout = timeout or settings.LLM_TIMEOUT
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.temperature = settings.LLM_TEMPERATURE
        self.embedding_service = embedding_service or EmbeddingService()
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)
        self._transport = transport

    def _hash_text(self, text: str) -> str:
        """Hash text using SHA256."""
        return hashlib.sha256(text.encode()).hexdigest()

    def _build_headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ProviderError("Missing LLM API key. Please check LLM_API_KEY", retryable=False)
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(
        self, messages: List[Dict[str, str]], model: str, stream: bool = False
    ) -> Dict[str, Any]:
        payload = {
            "model": resolve_model(model, self.backend),
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if stream:
            payload["stream"] = True

        request_hash = self._hash_text(json.dumps(payload, sort_keys=True))
        logger.info(f"LLM request to {payload['model']} (as {model}), hash: {request_hash[:16]}")
        return payload

    def _error_from_response(self, response: httpx.Response, model: str) -> ProviderError:
        """Map an HTTP error response onto the provider error taxonomy."""
        status = response.status_code
        logger.error(f"LLM API error: {status}")

        if status == 429:
            return ProviderError(
                "Rate limit exceeded. Please try again later.", retryable=True, status=status, model=model
            )
        if status == 401:
            return ProviderError("Invalid LLM API key", retryable=False, status=status, model=model)

        message = "Unknown error"
        try:
            body = response.json()
            message = body.get("error", {}).get("message") or message
        except (ValueError, AttributeError):
            pass
        return ProviderError(f"LLM API error: {message}", retryable=False, status=status, model=model)

    def complete(self, messages: List[Dict[str, str]], model: str) -> str:
        """
        Non-streaming chat completion.

        Rate-limited calls are retried with exponential backoff; every other
        failure is raised immediately.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Friendly or native model name

        Returns:
            Response content as string

        Raises:
            ProviderError: On API errors (after retries for 429)
        """
        for attempt in Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return self._complete_once(messages, model)

    def _complete_once(self, messages: List[Dict[str, str]], model: str) -> str:
        headers = self._build_headers()
        payload = self._build_payload(messages, model)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"LLM service error: {e}")
            raise ProviderError(f"Failed to generate AI response: {e}", model=model) from e

        if response.status_code >= 400:
            raise self._error_from_response(response, model)

        result = response.json()
        choices = result.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise ProviderError("No response generated from LLM", model=model)

        logger.info(f"LLM response hash: {self._hash_text(content)[:16]}")
        return content

    def complete_stream(self, messages: List[Dict[str, str]], model: str) -> Iterator[str]:
        """
        Streaming chat completion.

        Yields non-empty text fragments as the provider produces them. The
        generator is single-pass and is never retried once opened.

        Raises:
            ProviderError: On API errors, before or during the stream
        """
        headers = self._build_headers()
        payload = self._build_payload(messages, model, stream=True)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=payload,
                ) as response:
                    if response.status_code >= 400:
                        response.read()
                        raise self._error_from_response(response, model)

                    for line in response.iter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break

                        content = self._parse_stream_chunk(data, model)
                        if content:
                            yield content
        except httpx.HTTPError as e:
            logger.error(f"LLM stream error: {e}")
            raise ProviderError(f"Failed to generate AI response: {e}", model=model) from e

    def _parse_stream_chunk(self, data: str, model: str) -> Optional[str]:
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            raise ProviderError("Malformed stream chunk from LLM", model=model) from e

        if chunk.get("error"):
            message = chunk["error"].get("message", "Unknown error")
            raise ProviderError(f"LLM API error: {message}", model=model)

        choices = chunk.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("delta") or {}).get("content")

    def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Embed text with the separately configured embedding backend."""
        return self.embedding_service.embed(text, model=model)
