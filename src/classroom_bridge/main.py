"""
Main entry point for the classroom bridge student console.
"""

import argparse
import asyncio
import logging
import sys
from uuid import UUID

from classroom_bridge.ai.text_client import GatewayChatClient, TextAIClient
from classroom_bridge.capabilities import Capability, detect_audio_capture, detect_camera, detect_speech_output
from classroom_bridge.config import Settings, get_settings
from classroom_bridge.db.store import SqlAlchemyStore
from classroom_bridge.emotion.backend import DeepFaceExpressionBackend
from classroom_bridge.emotion.camera import CameraConfig, OpenCVCamera
from classroom_bridge.emotion.sampler import ExpressionSampler, SamplerConfig
from classroom_bridge.emotion.schemas import ClassifiedEmotion
from classroom_bridge.errors import ClassroomBridgeError
from classroom_bridge.interface import StudentInterface
from classroom_bridge.voice.audio_io import AudioCaptureConfig, SoundDeviceMicrophone
from classroom_bridge.voice.capture_bridge import AudioCaptureBridge
from classroom_bridge.voice.encoding import SoundFileEncoder
from classroom_bridge.voice.speech_output import SpeechOutputController
from classroom_bridge.voice.transcription import (
    HttpTranscriber,
    Transcriber,
    WhisperConfig,
    WhisperTranscriber,
)
from classroom_bridge.voice.tts import PiperSpeechEngine, PiperTTS, TTSConfig


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser(settings: Settings | None = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    p = argparse.ArgumentParser(prog="classroom-bridge", description="Run a student communication session")
    p.add_argument("--student-id", required=True, type=UUID, help="Student profile UUID")
    p.add_argument("--language", default=settings.default_language, help="BCP-47 interface language")
    p.add_argument("--interval", type=float, default=settings.emotion_sample_interval_s,
                   help="Seconds between emotion samples")
    p.add_argument("--camera-index", type=int, default=settings.camera_index)
    p.add_argument("--no-camera", action="store_true", help="Disable emotion tracking")
    p.add_argument("--simplify", action="store_true", help="Simplify each transcript with the text-AI service")
    p.add_argument("--translate-to", default=None, help="Translate each transcript to this language")
    p.add_argument("--speak-back", action="store_true", help="Read the (simplified) transcript aloud")
    return p


def _build_transcriber(settings: Settings) -> Transcriber:
    if settings.transcription_backend == "whisper":
        return WhisperTranscriber(
            WhisperConfig(model_size=settings.whisper_model_size, device=settings.whisper_device)
        )
    return HttpTranscriber(
        settings.transcription_url,
        api_key=settings.transcription_api_key,
        timeout=settings.transcription_timeout_s,
    )


def build_student_interface(settings: Settings, args: argparse.Namespace) -> tuple[StudentInterface, PiperSpeechEngine]:
    """Assemble production components from settings and CLI arguments."""
    camera_capability = detect_camera()
    if args.no_camera:
        camera_capability = Capability.UNSUPPORTED

    sampler = ExpressionSampler(
        camera=OpenCVCamera(),
        backend=DeepFaceExpressionBackend(),
        config=SamplerConfig(
            interval_s=args.interval,
            warmup_s=settings.emotion_warmup_s,
            acquire_timeout_s=settings.hardware_acquire_timeout_s,
            camera=CameraConfig(
                index=args.camera_index,
                width=settings.camera_width,
                height=settings.camera_height,
            ),
        ),
        capability=camera_capability,
    )

    bridge = AudioCaptureBridge(
        microphone=SoundDeviceMicrophone(),
        transcriber=_build_transcriber(settings),
        encoder=SoundFileEncoder(),
        config=AudioCaptureConfig(
            sample_rate=settings.audio_sample_rate,
            channels=settings.audio_channels,
            chunk_s=settings.audio_chunk_s,
        ),
        capability=detect_audio_capture(),
        acquire_timeout_s=settings.hardware_acquire_timeout_s,
    )

    engine = PiperSpeechEngine(
        PiperTTS(TTSConfig(piper_bin=settings.piper_bin, voices_dir=settings.piper_voices_dir))
    )
    speech = SpeechOutputController(
        engine,
        language=args.language,
        rate=settings.speech_rate,
        capability=detect_speech_output(settings.piper_bin),
    )

    text_ai = TextAIClient(
        GatewayChatClient(
            settings.ai_gateway_url,
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            timeout=settings.ai_timeout_s,
        )
    )

    interface = StudentInterface(
        sampler=sampler,
        bridge=bridge,
        speech=speech,
        store=SqlAlchemyStore.from_url(str(settings.database_url), echo=settings.debug),
        text_ai=text_ai,
        language=args.language,
    )
    return interface, engine


async def run_session(argv: list[str] | None = None) -> None:
    """
    Run an interactive push-to-talk student session on the console.
    """
    settings = get_settings()
    logger = logging.getLogger(__name__)
    args = build_parser(settings).parse_args(argv)

    interface, engine = build_student_interface(settings, args)

    def _on_emotion(emotion: ClassifiedEmotion) -> None:
        print(f"[Emotion] {emotion.label.value} ({emotion.confidence:.2f})", flush=True)

    interface.sampler.subscribe(_on_emotion)
    interface.subscribe_errors(lambda message: print(f"[Error] {message}", flush=True))

    if interface.speech.is_supported:
        await engine.load_voices()

    logger.info(f"Starting session for student {args.student_id}...")
    await interface.mount(args.student_id)

    try:
        while True:
            choice = await asyncio.to_thread(input, "\nPress Enter to talk, or q + Enter to quit... ")
            if (choice or "").strip().lower() == "q":
                break
            try:
                await interface.start_voice_input()
                await asyncio.to_thread(input, "Recording... press Enter to stop. ")
                result = await interface.finish_voice_input(
                    simplify=args.simplify,
                    translate_to=args.translate_to,
                )
            except ClassroomBridgeError:
                # Already reported through the error listener.
                continue

            if not result.original_text:
                print("[Voice] I didn't catch anything. Please try again.")
                continue
            print(f"\n[Student] {result.original_text}")
            if result.simplified_text:
                print(f"[Simplified] {result.simplified_text}")
            if result.translated_text:
                print(f"[Translated] {result.translated_text}")
            if args.speak_back:
                await interface.speak(result.simplified_text or result.original_text)
    finally:
        await interface.unmount()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_session(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
