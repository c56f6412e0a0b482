"""Speech-to-text collaborators.

Two implementations:
- ``HttpTranscriber`` posts the clip to a hosted transcription function.
- ``WhisperTranscriber`` runs `faster-whisper` locally if installed.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from classroom_bridge.errors import TranscriptionFailed, transcription_error

logger = logging.getLogger(__name__)

_MIME_SUFFIXES: dict[str, str] = {
    "audio/webm": ".webm",
    "audio/mp4": ".m4a",
    "audio/ogg": ".ogg",
    "audio/wav": ".wav",
}


@dataclass(frozen=True)
class TranscriptionRequest:
    audio_base64: str
    mime_type: str


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    avg_logprob: float | None = None
    no_speech_prob: float | None = None


class Transcriber:
    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        raise NotImplementedError


class HttpTranscriber(Transcriber):
    """Client for an endpoint accepting ``{audio, mimeType}`` and returning ``{text}``."""

    def __init__(self, url: str, *, api_key: str = "", timeout: float = 60.0) -> None:
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=headers)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        client = await self._get_client()
        payload = {"audio": request.audio_base64, "mimeType": request.mime_type}

        try:
            response = await client.post(self._url, json=payload)
        except httpx.HTTPError as e:
            raise TranscriptionFailed(f"Transcription failed: {e}") from e

        if response.is_error:
            detail = _error_detail(response)
            logger.warning(f"[AUDIO] transcription error status={response.status_code} detail={detail}")
            raise transcription_error(response.status_code, detail)

        try:
            data = response.json()
        except ValueError as e:
            raise TranscriptionFailed("Transcription service returned invalid JSON.") from e

        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise transcription_error(None, str(data.get("error", "")) if isinstance(data, dict) else "")
        return TranscriptionResult(text=text.strip())


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")
    return ""


@dataclass(frozen=True)
class WhisperConfig:
    model_size: str = "small"
    # Default to CPU to avoid hard crashes when CUDA/cuDNN aren't present.
    device: str = "cpu"  # cpu|cuda|auto
    compute_type: str | None = None  # e.g. int8, float16
    language: str | None = None
    vad_filter: bool = True


class WhisperTranscriber(Transcriber):
    """faster-whisper wrapper."""

    def __init__(self, config: WhisperConfig | None = None) -> None:
        self._config = config or WhisperConfig()
        self._model = None

    @property
    def config(self) -> WhisperConfig:
        return self._config

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from faster_whisper import WhisperModel  # type: ignore
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "faster-whisper is required for local transcription. Install with: pip install -e '.[voice]'"
            ) from e

        device = self._config.device
        if device == "auto":
            # Be conservative: prefer CPU unless user explicitly requests CUDA.
            device = "cpu"

        kwargs = {}
        if self._config.compute_type:
            kwargs["compute_type"] = self._config.compute_type

        self._model = WhisperModel(self._config.model_size, device=device, **kwargs)
        return self._model

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        base_mime = request.mime_type.split(";")[0].strip()
        suffix = _MIME_SUFFIXES.get(base_mime, ".wav")
        audio = base64.b64decode(request.audio_base64)

        def _run() -> TranscriptionResult:
            model = self._load_model()
            with tempfile.TemporaryDirectory() as tmp:
                clip_path = Path(tmp) / f"clip{suffix}"
                clip_path.write_bytes(audio)
                segments, info = model.transcribe(
                    str(clip_path),
                    language=self._config.language,
                    vad_filter=self._config.vad_filter,
                )
                text_parts = [s.text.strip() for s in segments if s.text]
            text = " ".join(t for t in text_parts if t).strip()
            avg_logprob = getattr(info, "avg_logprob", None)
            no_speech_prob = getattr(info, "no_speech_prob", None)
            return TranscriptionResult(text=text, avg_logprob=avg_logprob, no_speech_prob=no_speech_prob)

        try:
            return await asyncio.to_thread(_run)
        except Exception as e:
            raise TranscriptionFailed(f"Transcription failed: {e}") from e
