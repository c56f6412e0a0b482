"""Text-to-speech (offline).

Default implementation uses `piper` via subprocess if available. Voices are
Piper ``*.onnx`` models; the language is read from the file name
(``en_US-lessac-medium.onnx`` -> ``en-US``).
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from classroom_bridge.voice.audio_io import AudioPlayer

logger = logging.getLogger(__name__)

_VOICE_NAME = re.compile(r"^(?P<lang>[a-z]{2,3})(?:_(?P<region>[A-Z]{2}))?-(?P<name>.+)$")


@dataclass(frozen=True)
class Voice:
    name: str
    lang: str  # BCP-47, e.g. en-US
    model_path: str | None = None


@dataclass(frozen=True)
class Utterance:
    text: str
    lang: str
    voice: Voice | None = None
    rate: float = 1.0


@dataclass(frozen=True)
class TTSConfig:
    piper_bin: str = "piper"
    model_path: str | None = None  # default voice, path to *.onnx
    voices_dir: str | None = None
    speaker_id: int | None = None
    max_chars_per_chunk: int = 350
    timeout_s: float = 60.0


def voice_from_model_path(path: str | Path) -> Voice | None:
    """Parse a Piper model file name into a Voice, or None if it does not follow the convention."""
    path = Path(path)
    match = _VOICE_NAME.match(path.stem)
    if not match:
        return None
    lang = match.group("lang")
    if match.group("region"):
        lang = f"{lang}-{match.group('region')}"
    return Voice(name=match.group("name"), lang=lang, model_path=str(path))


class SpeechEngine:
    """Playback engine used by the speech output controller."""

    def voices(self) -> list[Voice]:
        return []

    def on_voices_changed(self, listener: Callable[[], None]) -> None:
        """Register a callback fired whenever the voice catalog changes."""

    async def play(self, utterance: Utterance) -> None:
        """Speak one utterance and return when playback ends. Cancellable."""
        raise NotImplementedError

    def cancel(self) -> None:
        """Stop audio output immediately."""
        raise NotImplementedError


class PiperTTS:
    def __init__(self, config: TTSConfig | None = None) -> None:
        self._config = config or TTSConfig()
        self._validated_piper_path: str | None = None

    @property
    def config(self) -> TTSConfig:
        return self._config

    def is_available(self) -> tuple[bool, str]:
        try:
            _ = self._require_piper()
            return True, "ok"
        except Exception as e:
            return False, str(e)

    def _looks_like_piper_tts(self, piper_path: str) -> bool:
        try:
            r = subprocess.run(
                [piper_path, "--help"],
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                timeout=5,
            )
        except Exception:
            return False

        out = (r.stdout or "").lower()
        # Piper TTS CLI typically supports these flags.
        return ("--model" in out or "--output_file" in out) and "application options" not in out

    def _require_piper(self) -> str:
        if self._validated_piper_path:
            return self._validated_piper_path

        p = shutil.which(self._config.piper_bin)
        if not p:  # pragma: no cover
            raise RuntimeError(
                "piper CLI not found. Install piper (binary) and ensure it's on PATH, "
                "or set PIPER_BIN."
            )
        if not self._looks_like_piper_tts(p):  # pragma: no cover
            raise RuntimeError(
                "Found a `piper` binary, but it does not look like the Piper TTS CLI (common on Linux: /usr/bin/piper is a GTK app). "
                "Install Piper TTS and set PIPER_BIN to that binary path, then retry."
            )

        self._validated_piper_path = p
        return p

    def list_voices(self) -> list[Voice]:
        voices_dir = self._config.voices_dir
        if not voices_dir or not Path(voices_dir).is_dir():
            return []
        voices = [voice_from_model_path(p) for p in sorted(Path(voices_dir).glob("*.onnx"))]
        return [v for v in voices if v is not None]

    def _chunk_text(self, text: str) -> list[str]:
        t = (text or "").strip()
        if not t:
            return []

        # Split on sentence-ish boundaries, then re-pack into chunks.
        parts = [p.strip() for p in re.split(r"(?<=[.!?])\s+", t) if p.strip()]
        chunks: list[str] = []
        current = ""
        for p in parts:
            if not current:
                current = p
                continue
            if len(current) + 1 + len(p) <= self._config.max_chars_per_chunk:
                current = current + " " + p
            else:
                chunks.append(current)
                current = p
        if current:
            chunks.append(current)

        return chunks

    async def synthesize_to_wavs(
        self,
        text: str,
        out_dir: str | Path,
        base_name: str,
        *,
        model_path: str | None = None,
        length_scale: float | None = None,
    ) -> list[Path]:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        model = model_path or self._config.model_path
        if not model:  # pragma: no cover
            raise RuntimeError("No Piper voice available. Set PIPER_VOICES_DIR or TTSConfig(model_path=...).")

        piper_bin = self._require_piper()
        chunks = self._chunk_text(text)
        if not chunks:
            return []

        cmd_base = [piper_bin, "--model", str(model)]
        if self._config.speaker_id is not None:
            cmd_base += ["--speaker", str(self._config.speaker_id)]
        if length_scale is not None:
            cmd_base += ["--length_scale", f"{length_scale:.3f}"]

        def _call(chunk: str, wav_path: Path) -> None:
            try:
                subprocess.run(
                    cmd_base + ["--output_file", str(wav_path)],
                    input=chunk,
                    text=True,
                    check=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    timeout=self._config.timeout_s,
                )
            except subprocess.TimeoutExpired as e:  # pragma: no cover
                raise RuntimeError(
                    f"piper timed out after {self._config.timeout_s:.1f}s. model={model!s}."
                ) from e
            except subprocess.CalledProcessError as e:  # pragma: no cover
                stderr = (e.stderr or "").strip()
                raise RuntimeError(
                    f"piper failed (exit={e.returncode}). model={model!s}. stderr={stderr or '<empty>'}"
                ) from e

        wavs: list[Path] = []
        for idx, chunk in enumerate(chunks):
            wav_path = out_dir / f"{base_name}_{idx:02d}.wav"
            await asyncio.to_thread(_call, chunk, wav_path)
            wavs.append(wav_path)

        return wavs


class PiperSpeechEngine(SpeechEngine):
    """Piper synthesis + sounddevice playback, one chunk at a time."""

    def __init__(self, tts: PiperTTS, player: AudioPlayer | None = None) -> None:
        self._tts = tts
        self._player = player or AudioPlayer()
        self._voices: list[Voice] = []
        self._listeners: list[Callable[[], None]] = []

    def voices(self) -> list[Voice]:
        return list(self._voices)

    def on_voices_changed(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    async def load_voices(self) -> list[Voice]:
        self._voices = await asyncio.to_thread(self._tts.list_voices)
        logger.info(f"[SPEECH] voice catalog loaded count={len(self._voices)}")
        for listener in list(self._listeners):
            listener()
        return self.voices()

    async def play(self, utterance: Utterance) -> None:
        model_path = utterance.voice.model_path if utterance.voice else None
        # Piper's length_scale is inverse speed.
        length_scale = 1.0 / utterance.rate if utterance.rate > 0 else None

        with tempfile.TemporaryDirectory(prefix="classroom_tts_") as tmp:
            wavs = await self._tts.synthesize_to_wavs(
                utterance.text,
                out_dir=tmp,
                base_name="utterance",
                model_path=model_path,
                length_scale=length_scale,
            )
            try:
                for wav in wavs:
                    await self._player.play_wav(wav)
            except asyncio.CancelledError:
                self._player.stop()
                raise

    def cancel(self) -> None:
        self._player.stop()
