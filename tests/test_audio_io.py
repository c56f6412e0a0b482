import numpy as np
import pytest

from classroom_bridge.errors import HardwareUnavailable
from classroom_bridge.voice import audio_io
from classroom_bridge.voice.audio_io import AudioCaptureConfig, SoundDeviceMicrophone


class FakeInputStream:
    def __init__(self, *, samplerate, channels, dtype, blocksize, callback, start_error=None) -> None:
        self.samplerate = samplerate
        self.channels = channels
        self.blocksize = blocksize
        self.callback = callback
        self.start_error = start_error
        self.tail: list[int] = []
        self.started = False
        self.stopped = False
        self.closed = False

    def feed(self, frames: int) -> None:
        self.callback(np.ones((frames, self.channels), dtype=np.int16), frames, None, None)

    def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    def stop(self) -> None:
        # PortAudio delivers the last blocks before stop() returns.
        for frames in self.tail:
            self.feed(frames)
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class FakeSoundDevice:
    def __init__(self, *, start_error: Exception | None = None) -> None:
        self.start_error = start_error
        self.streams: list[FakeInputStream] = []

    def query_devices(self, kind=None):
        return {"name": "fake input", "max_input_channels": 1}

    def InputStream(self, **kwargs):  # noqa: N802
        stream = FakeInputStream(start_error=self.start_error, **kwargs)
        self.streams.append(stream)
        return stream


CONFIG = AudioCaptureConfig(sample_rate=1000, chunk_s=1.0, block_s=0.1)


def test_config_frames():
    assert CONFIG.chunk_frames == 1000
    assert CONFIG.block_frames == 100
    assert AudioCaptureConfig(sample_rate=1000, chunk_s=0.02, block_s=0.1).block_frames == 20


@pytest.mark.asyncio
async def test_stream_groups_small_blocks_and_keeps_the_tail(monkeypatch):
    sd = FakeSoundDevice()
    monkeypatch.setattr(audio_io, "_require_sounddevice", lambda: sd)

    stream = await SoundDeviceMicrophone().open(CONFIG)
    device = sd.streams[0]
    assert device.started
    assert device.blocksize == 100

    for _ in range(12):
        device.feed(100)
    device.tail = [100, 50]
    chunks = await stream.stop()

    assert device.stopped and device.closed
    assert [len(c) for c in chunks] == [1000, 350]
    assert sum(len(c) for c in chunks) == 1350


@pytest.mark.asyncio
async def test_short_recording_is_returned_as_one_partial_chunk(monkeypatch):
    sd = FakeSoundDevice()
    monkeypatch.setattr(audio_io, "_require_sounddevice", lambda: sd)

    stream = await SoundDeviceMicrophone().open(CONFIG)
    sd.streams[0].tail = [100, 30]
    chunks = await stream.stop()

    assert [len(c) for c in chunks] == [130]


@pytest.mark.asyncio
async def test_failed_start_closes_the_stream(monkeypatch):
    sd = FakeSoundDevice(start_error=RuntimeError("device busy"))
    monkeypatch.setattr(audio_io, "_require_sounddevice", lambda: sd)

    with pytest.raises(HardwareUnavailable):
        await SoundDeviceMicrophone().open(CONFIG)

    assert sd.streams[0].closed
