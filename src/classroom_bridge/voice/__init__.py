"""Voice subsystem.

Two independent channels:

mic -> capture bridge -> transcription -> text
text -> speech output controller -> speech engine -> speaker

Hardware libraries (sounddevice, soundfile, faster-whisper, piper) are
imported lazily, so this package imports without them.
"""

from classroom_bridge.voice.audio_io import AudioCaptureConfig, AudioPlayer, SoundDeviceMicrophone
from classroom_bridge.voice.capture_bridge import AudioCaptureBridge, RecordingState
from classroom_bridge.voice.encoding import MIME_PREFERENCES, AudioClip, SoundFileEncoder, select_mime_type
from classroom_bridge.voice.speech_output import SpeechEvent, SpeechEventType, SpeechOutputController
from classroom_bridge.voice.transcription import (
    HttpTranscriber,
    Transcriber,
    TranscriptionRequest,
    TranscriptionResult,
    WhisperConfig,
    WhisperTranscriber,
)
from classroom_bridge.voice.tts import PiperSpeechEngine, PiperTTS, SpeechEngine, TTSConfig, Utterance, Voice

__all__ = [
    "MIME_PREFERENCES",
    "AudioCaptureBridge",
    "AudioCaptureConfig",
    "AudioClip",
    "AudioPlayer",
    "HttpTranscriber",
    "PiperSpeechEngine",
    "PiperTTS",
    "RecordingState",
    "SoundDeviceMicrophone",
    "SoundFileEncoder",
    "SpeechEngine",
    "SpeechEvent",
    "SpeechEventType",
    "SpeechOutputController",
    "TTSConfig",
    "Transcriber",
    "TranscriptionRequest",
    "TranscriptionResult",
    "Utterance",
    "Voice",
    "WhisperConfig",
    "WhisperTranscriber",
    "select_mime_type",
]
