"""Audio clip encoding.

Buffered PCM chunks are concatenated into one clip and encoded in the most
preferred container the encoder supports.
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)

# Descending preference.
MIME_PREFERENCES: tuple[str, ...] = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/mp4",
    "audio/ogg;codecs=opus",
    "audio/wav",
)


def select_mime_type(
    is_supported: Callable[[str], bool],
    preferences: Sequence[str] = MIME_PREFERENCES,
) -> str | None:
    """Return the first supported mime type, or None to use the encoder default."""
    for mime in preferences:
        if is_supported(mime):
            return mime
    return None


@dataclass(frozen=True)
class AudioClip:
    data: bytes
    mime_type: str
    duration_s: float

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class ClipEncoder(Protocol):
    default_mime_type: str

    def is_type_supported(self, mime_type: str) -> bool: ...

    def encode(
        self,
        chunks: Sequence[np.ndarray],
        *,
        mime_type: str | None,
        sample_rate: int,
        channels: int,
    ) -> AudioClip: ...


def concat_chunks(chunks: Sequence[np.ndarray], channels: int) -> np.ndarray:
    if not chunks:
        return np.zeros((0, channels), dtype=np.int16)
    audio = np.concatenate(list(chunks), axis=0)
    if audio.ndim == 1:
        audio = audio[:, None]
    return audio


class SoundFileEncoder:
    """libsndfile encoder (via soundfile): Ogg/Opus when available, else WAV."""

    _FORMATS: dict[str, tuple[str, str]] = {
        "audio/ogg;codecs=opus": ("OGG", "OPUS"),
        "audio/wav": ("WAV", "PCM_16"),
    }
    default_mime_type = "audio/wav"

    def _require_soundfile(self):
        try:
            import soundfile as sf  # type: ignore

            return sf
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "soundfile is required for voice mode. Install with: pip install -e '.[voice]'"
            ) from e

    def is_type_supported(self, mime_type: str) -> bool:
        fmt = self._FORMATS.get(mime_type)
        if fmt is None:
            return False
        sf = self._require_soundfile()
        return bool(sf.check_format(*fmt))

    def encode(
        self,
        chunks: Sequence[np.ndarray],
        *,
        mime_type: str | None,
        sample_rate: int,
        channels: int,
    ) -> AudioClip:
        sf = self._require_soundfile()
        mime = mime_type or self.default_mime_type
        fmt, subtype = self._FORMATS[mime]

        audio = concat_chunks(chunks, channels)
        buf = io.BytesIO()
        sf.write(buf, audio, sample_rate, format=fmt, subtype=subtype)
        data = buf.getvalue()

        duration = audio.shape[0] / float(sample_rate) if sample_rate else 0.0
        logger.debug(f"[AUDIO] clip encoded mime={mime} bytes={len(data)} duration={duration:.2f}s")
        return AudioClip(data=data, mime_type=mime, duration_s=duration)
