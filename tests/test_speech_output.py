import asyncio

import pytest

from classroom_bridge.capabilities import Capability
from classroom_bridge.voice.speech_output import SpeechEventType, SpeechOutputController, primary_subtag
from classroom_bridge.voice.tts import (
    PiperSpeechEngine,
    PiperTTS,
    SpeechEngine,
    TTSConfig,
    Utterance,
    Voice,
    voice_from_model_path,
)

AMY = Voice(name="amy", lang="en-US")
CARLA = Voice(name="carla", lang="es-ES")


class FakeEngine(SpeechEngine):
    def __init__(self, voices=None, *, duration_s: float = 0.02, error: Exception | None = None) -> None:
        self._voices = list(voices or [])
        self._listeners = []
        self.duration_s = duration_s
        self.error = error
        self.played = []
        self.cancels = 0

    def voices(self):
        return list(self._voices)

    def on_voices_changed(self, listener) -> None:
        self._listeners.append(listener)

    def set_voices(self, voices) -> None:
        self._voices = list(voices)
        for listener in self._listeners:
            listener()

    async def play(self, utterance) -> None:
        self.played.append(utterance)
        await asyncio.sleep(self.duration_s)
        if self.error is not None:
            raise self.error

    def cancel(self) -> None:
        self.cancels += 1


@pytest.mark.asyncio
async def test_speak_emits_start_then_end():
    controller = SpeechOutputController(FakeEngine([AMY]))
    events = []
    controller.subscribe(events.append)

    utterance = await controller.speak("Good morning")
    await asyncio.sleep(0)
    assert controller.is_speaking
    await controller.wait()

    assert [e.type for e in events] == [SpeechEventType.START, SpeechEventType.END]
    assert not events[1].cancelled
    assert not controller.is_speaking
    assert utterance.rate == 0.9
    assert utterance.voice == AMY


@pytest.mark.asyncio
async def test_new_speak_cancels_the_previous_utterance_without_overlap():
    engine = FakeEngine([AMY], duration_s=0.5)
    controller = SpeechOutputController(engine)
    events = []
    active = {"now": 0, "max": 0}

    def _track(event):
        events.append((event.type, event.utterance.text, event.cancelled))
        if event.type is SpeechEventType.START:
            active["now"] += 1
        else:
            active["now"] -= 1
        active["max"] = max(active["max"], active["now"])

    controller.subscribe(_track)

    await controller.speak("first")
    await asyncio.sleep(0.01)
    engine.duration_s = 0.01
    await controller.speak("second")
    await controller.wait()

    assert events == [
        (SpeechEventType.START, "first", False),
        (SpeechEventType.END, "first", True),
        (SpeechEventType.START, "second", False),
        (SpeechEventType.END, "second", False),
    ]
    assert active["max"] == 1
    assert engine.cancels == 1


@pytest.mark.asyncio
async def test_playback_error_emits_error_event():
    controller = SpeechOutputController(FakeEngine([AMY], error=RuntimeError("piper failed")))
    events = []
    controller.subscribe(events.append)

    await controller.speak("hello")
    await controller.wait()

    assert [e.type for e in events] == [SpeechEventType.START, SpeechEventType.ERROR]
    assert events[1].error == "piper failed"
    assert not controller.is_speaking


@pytest.mark.asyncio
async def test_stop_is_idempotent():
    controller = SpeechOutputController(FakeEngine([AMY], duration_s=1.0))
    events = []
    controller.subscribe(events.append)

    await controller.stop()
    await controller.speak("long story")
    await asyncio.sleep(0.01)
    await controller.stop()
    await controller.stop()

    assert [e.type for e in events] == [SpeechEventType.START, SpeechEventType.END]
    assert events[1].cancelled
    assert not controller.is_speaking


@pytest.mark.asyncio
async def test_unsupported_speech_is_a_no_op():
    engine = FakeEngine([AMY])
    controller = SpeechOutputController(engine, capability=Capability.UNSUPPORTED)

    assert await controller.speak("hello") is None
    assert engine.played == []


@pytest.mark.asyncio
async def test_empty_text_is_not_spoken():
    engine = FakeEngine([AMY])
    controller = SpeechOutputController(engine)
    assert await controller.speak("   ") is None
    assert engine.played == []


def test_voice_matches_primary_language_subtag():
    controller = SpeechOutputController(FakeEngine([AMY, CARLA]), language="es-MX")
    assert controller.selected_voice == CARLA
    assert controller.select_voice("en-GB") == AMY
    # No French voice: fall back to the default voice.
    assert controller.select_voice("fr-FR") == CARLA


def test_first_voice_is_default_when_nothing_matches():
    controller = SpeechOutputController(FakeEngine([AMY, CARLA]), language="de-DE")
    assert controller.selected_voice == AMY


def test_late_voice_catalog_reruns_selection():
    engine = FakeEngine([])
    controller = SpeechOutputController(engine, language="es-ES")
    assert controller.selected_voice is None

    engine.set_voices([AMY, CARLA])
    assert controller.selected_voice == CARLA


def test_set_language_reselects_voice():
    controller = SpeechOutputController(FakeEngine([AMY, CARLA]), language="en-US")
    controller.set_language("es")
    assert controller.selected_voice == CARLA


def test_primary_subtag():
    assert primary_subtag("en-US") == "en"
    assert primary_subtag("pt_BR") == "pt"
    assert primary_subtag("ES") == "es"


def test_voice_from_piper_model_name():
    voice = voice_from_model_path("/voices/en_US-lessac-medium.onnx")
    assert voice == Voice(name="lessac-medium", lang="en-US", model_path="/voices/en_US-lessac-medium.onnx")
    assert voice_from_model_path("/voices/custom.onnx") is None


def test_piper_chunks_long_text_on_sentence_boundaries():
    tts = PiperTTS(TTSConfig(max_chars_per_chunk=20))
    assert tts._chunk_text("One two. Three four. Five six seven eight nine.") == [
        "One two. Three four.",
        "Five six seven eight nine.",
    ]
    assert tts._chunk_text("   ") == []


def test_piper_lists_voices_from_directory(tmp_path):
    (tmp_path / "en_US-amy-medium.onnx").write_bytes(b"")
    (tmp_path / "es_ES-carla-low.onnx").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("ignored")

    voices = PiperTTS(TTSConfig(voices_dir=str(tmp_path))).list_voices()
    assert [(v.name, v.lang) for v in voices] == [("amy-medium", "en-US"), ("carla-low", "es-ES")]


class FakePiper:
    def __init__(self) -> None:
        self.calls = []

    def list_voices(self):
        return [AMY]

    async def synthesize_to_wavs(self, text, out_dir, base_name, *, model_path=None, length_scale=None):
        self.calls.append((text, model_path, length_scale))
        return [f"{out_dir}/{base_name}_00.wav", f"{out_dir}/{base_name}_01.wav"]


class FakePlayer:
    def __init__(self) -> None:
        self.played = []
        self.stops = 0

    async def play_wav(self, wav_path) -> None:
        self.played.append(str(wav_path))

    def stop(self) -> None:
        self.stops += 1


@pytest.mark.asyncio
async def test_piper_engine_plays_each_chunk_at_the_utterance_rate():
    piper, player = FakePiper(), FakePlayer()
    engine = PiperSpeechEngine(piper, player)
    changed = []
    engine.on_voices_changed(lambda: changed.append(True))

    assert await engine.load_voices() == [AMY]
    assert changed == [True]

    voice = Voice(name="amy", lang="en-US", model_path="/voices/en_US-amy.onnx")
    await engine.play(Utterance(text="Hello class.", lang="en-US", voice=voice, rate=0.8))

    text, model_path, length_scale = piper.calls[0]
    assert (text, model_path) == ("Hello class.", "/voices/en_US-amy.onnx")
    assert length_scale == pytest.approx(1.25)
    assert [p.rsplit("/", 1)[-1] for p in player.played] == ["utterance_00.wav", "utterance_01.wav"]
