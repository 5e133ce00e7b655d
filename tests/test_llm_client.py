"""Tests for the provider and embedding clients."""

import json

import httpx
import pytest
from tenacity import wait_none

from wadi.errors import EmbeddingError, ProviderError
from wadi.services.embeddings import EmbeddingService
from wadi.services.llm_client import ProviderClient

MESSAGES = [{"role": "user", "content": "hi"}]


def make_client(handler, **kwargs):
    return ProviderClient(
        api_key="test-key",
        base_url="https://llm.test/v1",
        backend="groq",
        transport=httpx.MockTransport(handler),
        retry_wait=wait_none(),
        **kwargs,
    )


def sse_body(*events):
    lines = [f"data: {json.dumps(e) if not isinstance(e, str) else e}\n\n" for e in events]
    return "".join(lines).encode()


def delta(text):
    return {"choices": [{"delta": {"content": text}}]}


def test_complete_returns_content_and_resolves_alias():
    """Test a successful completion sends the concrete model name."""
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hello!"}}]})

    assert make_client(handler).complete(MESSAGES, "gpt-4") == "Hello!"
    assert seen["body"]["model"] == "llama-3.3-70b-versatile"
    assert seen["body"]["messages"] == MESSAGES
    assert seen["auth"] == "Bearer test-key"


def test_rate_limit_is_retryable_and_retried():
    """Test 429 maps to a retryable error and is retried up to max attempts."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={"error": {"message": "slow down"}})

    with pytest.raises(ProviderError) as exc_info:
        make_client(handler, max_attempts=3).complete(MESSAGES, "gpt-3.5-turbo")

    assert exc_info.value.retryable
    assert exc_info.value.status == 429
    assert len(calls) == 3


def test_rate_limit_then_success():
    """Test a transient 429 recovers on retry."""
    responses = iter([
        httpx.Response(429, json={}),
        httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}),
    ])

    assert make_client(lambda request: next(responses)).complete(MESSAGES, "gpt-3.5-turbo") == "ok"


def test_unauthorized_is_not_retried():
    """Test 401 maps to a non-retryable error raised on the first attempt."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    with pytest.raises(ProviderError) as exc_info:
        make_client(handler).complete(MESSAGES, "gpt-3.5-turbo")

    assert not exc_info.value.retryable
    assert exc_info.value.message == "Invalid LLM API key"
    assert len(calls) == 1


def test_other_errors_pass_message_through():
    """Test provider error messages are surfaced."""

    def handler(request):
        return httpx.Response(500, json={"error": {"message": "model overloaded"}})

    with pytest.raises(ProviderError) as exc_info:
        make_client(handler).complete(MESSAGES, "gpt-3.5-turbo")

    assert exc_info.value.message == "LLM API error: model overloaded"
    assert not exc_info.value.retryable


def test_empty_completion_is_an_error():
    """Test an empty choice list raises."""

    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(ProviderError, match="No response generated"):
        make_client(handler).complete(MESSAGES, "gpt-3.5-turbo")


def test_missing_api_key():
    """Test calls fail fast without an API key."""
    client = ProviderClient(api_key="", transport=httpx.MockTransport(lambda r: httpx.Response(200)))

    with pytest.raises(ProviderError, match="Missing LLM API key"):
        client.complete(MESSAGES, "gpt-3.5-turbo")


def test_network_failure_maps_to_provider_error():
    """Test transport errors become ProviderError."""

    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(ProviderError, match="Failed to generate AI response"):
        make_client(handler).complete(MESSAGES, "gpt-3.5-turbo")


def test_stream_yields_non_empty_fragments():
    """Test SSE lines are parsed, empty deltas skipped and [DONE] ends the stream."""
    body = sse_body(
        delta("Hel"),
        {"choices": [{"delta": {"role": "assistant"}}]},
        delta(""),
        delta("lo"),
        "[DONE]",
        delta("ignored"),
    )

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    assert list(make_client(handler).complete_stream(MESSAGES, "gpt-3.5-turbo")) == ["Hel", "lo"]


def test_stream_is_lazy():
    """Test no request is made until the generator is consumed."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=sse_body(delta("x"), "[DONE]"))

    stream = make_client(handler).complete_stream(MESSAGES, "gpt-3.5-turbo")
    assert calls == []
    assert next(stream) == "x"
    assert len(calls) == 1


def test_stream_error_event_raises():
    """Test an error object mid-stream raises after earlier fragments."""
    body = sse_body(delta("partial"), {"error": {"message": "context too long"}})

    def handler(request):
        return httpx.Response(200, content=body)

    stream = make_client(handler).complete_stream(MESSAGES, "gpt-3.5-turbo")
    assert next(stream) == "partial"
    with pytest.raises(ProviderError, match="context too long"):
        next(stream)


def test_stream_http_error_is_not_retried():
    """Test a rate-limited stream raises immediately."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={})

    with pytest.raises(ProviderError) as exc_info:
        list(make_client(handler).complete_stream(MESSAGES, "gpt-3.5-turbo"))

    assert exc_info.value.retryable
    assert len(calls) == 1


def test_embedding_not_configured():
    """Test embedding without a key raises EmbeddingError."""
    service = EmbeddingService(api_key="")

    with pytest.raises(EmbeddingError):
        service.embed("hello")


def test_embedding_dimension_checked():
    """Test vectors of the wrong size are rejected."""

    def handler(request):
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2]}]})

    service = EmbeddingService(
        api_key="k", base_url="https://emb.test/v1", embed_dim=3, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(EmbeddingError, match="dimension mismatch"):
        service.embed("hello")


def test_provider_embed_delegates_to_embedding_service():
    """Test ProviderClient.embed uses the embedding backend."""

    def handler(request):
        assert request.url.path == "/v1/embeddings"
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2, 0.3]}]})

    service = EmbeddingService(
        api_key="k", base_url="https://emb.test/v1", embed_dim=3, transport=httpx.MockTransport(handler)
    )
    client = ProviderClient(api_key="", embedding_service=service)

    assert client.embed("hello") == [0.1, 0.2, 0.3]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>bad gateway</html>"),
        httpx.Response(200, json={"data": [{"index": 0}]}),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": None}]}),
    ],
)
def test_malformed_embedding_response(response):
    """Test unusable embedding bodies raise EmbeddingError."""
    service = EmbeddingService(
        api_key="k", base_url="https://emb.test/v1", embed_dim=3, transport=httpx.MockTransport(lambda r: response)
    )

    with pytest.raises(EmbeddingError, match="Invalid embedding response"):
        service.embed("hello")
