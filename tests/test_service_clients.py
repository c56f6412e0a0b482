import json

import httpx
import pytest

from classroom_bridge.ai.text_client import GatewayChatClient, TextAction, TextAIClient, system_prompt
from classroom_bridge.errors import (
    AIProcessingFailed,
    AIQuotaExhausted,
    AIRateLimited,
    FailureReason,
    TranscriptionFailed,
    TranscriptionQuotaExhausted,
    TranscriptionRateLimited,
    classify_service_failure,
)
from classroom_bridge.voice.transcription import HttpTranscriber, TranscriptionRequest


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_classify_service_failure():
    assert classify_service_failure(429) is FailureReason.RATE_LIMITED
    assert classify_service_failure(None, "Rate limit exceeded") is FailureReason.RATE_LIMITED
    assert classify_service_failure(402) is FailureReason.QUOTA_EXHAUSTED
    assert classify_service_failure(500, "Payment required") is FailureReason.QUOTA_EXHAUSTED
    assert classify_service_failure(500, "boom") is FailureReason.OTHER


@pytest.mark.asyncio
async def test_http_transcriber_posts_audio_and_mime_type():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"text": "  I am done  "})

    transcriber = HttpTranscriber("https://example.test/transcribe", api_key="secret")
    transcriber._client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        headers={"Authorization": "Bearer secret"},
    )

    result = await transcriber.transcribe(TranscriptionRequest(audio_base64="AAAA", mime_type="audio/wav"))
    await transcriber.close()

    assert result.text == "I am done"
    assert seen["body"] == {"audio": "AAAA", "mimeType": "audio/wav"}
    assert seen["auth"] == "Bearer secret"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,body,expected",
    [
        (429, {"error": "Rate limit exceeded"}, TranscriptionRateLimited),
        (402, {"error": "Payment required"}, TranscriptionQuotaExhausted),
        (500, {"error": "Rate limit exceeded upstream"}, TranscriptionRateLimited),
    ],
)
async def test_http_transcriber_maps_service_failures(status, body, expected):
    transcriber = HttpTranscriber("https://example.test/transcribe")
    transcriber._client = _mock_client(lambda request: httpx.Response(status, json=body))

    with pytest.raises(expected):
        await transcriber.transcribe(TranscriptionRequest(audio_base64="AAAA", mime_type="audio/wav"))


@pytest.mark.asyncio
async def test_http_transcriber_other_failures_keep_the_detail():
    transcriber = HttpTranscriber("https://example.test/transcribe")
    transcriber._client = _mock_client(lambda request: httpx.Response(500, json={"error": "decoder crashed"}))

    with pytest.raises(TranscriptionFailed) as exc:
        await transcriber.transcribe(TranscriptionRequest(audio_base64="AAAA", mime_type="audio/wav"))
    assert exc.value.reason is FailureReason.OTHER
    assert "decoder crashed" in exc.value.user_message


@pytest.mark.asyncio
async def test_http_transcriber_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transcriber = HttpTranscriber("https://example.test/transcribe")
    transcriber._client = _mock_client(handler)

    with pytest.raises(TranscriptionFailed):
        await transcriber.transcribe(TranscriptionRequest(audio_base64="AAAA", mime_type="audio/wav"))


def _completion(content: str) -> dict:
    return {
        "model": "google/gemini-2.5-flash",
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


@pytest.mark.asyncio
async def test_text_ai_simplify_sends_system_prompt_and_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion(" The cat sat. "))

    chat = GatewayChatClient("https://example.test/chat", model="google/gemini-2.5-flash")
    chat._client = _mock_client(handler)
    client = TextAIClient(chat)

    assert await client.simplify("The feline positioned itself upon the mat.") == "The cat sat."
    body = seen["body"]
    assert body["model"] == "google/gemini-2.5-flash"
    assert body["messages"][0] == {"role": "system", "content": system_prompt(TextAction.SIMPLIFY)}
    assert body["messages"][1] == {"role": "user", "content": "The feline positioned itself upon the mat."}


@pytest.mark.asyncio
async def test_text_ai_translate_defaults_to_spanish():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("Hola"))

    chat = GatewayChatClient("https://example.test/chat")
    chat._client = _mock_client(handler)
    result = await TextAIClient(chat).process("Hello", TextAction.TRANSLATE)

    assert result.result == "Hola"
    assert result.target_language == "Spanish"
    assert "Translate the following text to Spanish" in seen["body"]["messages"][0]["content"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status,expected", [(429, AIRateLimited), (402, AIQuotaExhausted)])
async def test_text_ai_service_failures(status, expected):
    chat = GatewayChatClient("https://example.test/chat")
    chat._client = _mock_client(lambda request: httpx.Response(status, text="error"))

    with pytest.raises(expected):
        await TextAIClient(chat).summarize("A long lesson about volcanoes.")


@pytest.mark.asyncio
async def test_text_ai_rejects_empty_input_and_empty_output():
    chat = GatewayChatClient("https://example.test/chat")
    chat._client = _mock_client(lambda request: httpx.Response(200, json=_completion("   ")))
    client = TextAIClient(chat)

    with pytest.raises(ValueError):
        await client.simplify("  ")
    with pytest.raises(AIProcessingFailed):
        await client.simplify("Something to simplify.")


@pytest.mark.asyncio
async def test_text_ai_unexpected_payload():
    chat = GatewayChatClient("https://example.test/chat")
    chat._client = _mock_client(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(AIProcessingFailed):
        await TextAIClient(chat).simplify("Hello there.")
