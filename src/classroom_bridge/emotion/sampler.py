"""Periodic facial-expression sampling.

camera -> frame -> expression backend -> classifier -> listeners

The sampler exclusively owns its camera handle: it is acquired in
``start_detection`` and released in ``stop_detection``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from classroom_bridge.capabilities import Capability
from classroom_bridge.emotion.backend import ExpressionBackend
from classroom_bridge.emotion.camera import CameraConfig, CameraProvider, VideoSurface
from classroom_bridge.emotion.classifier import classify
from classroom_bridge.emotion.schemas import ClassifiedEmotion, EmotionLabel
from classroom_bridge.errors import (
    ClassroomBridgeError,
    HardwareUnavailable,
    Unsupported,
)

logger = logging.getLogger(__name__)

# Emitted when a frame contains no face. A policy default, not an inference.
NO_FACE_EMOTION = ClassifiedEmotion(label=EmotionLabel.NEUTRAL, confidence=0.5)

EmotionListener = Callable[[ClassifiedEmotion], None]


@dataclass(frozen=True)
class SamplerConfig:
    interval_s: float = 2.0
    warmup_s: float = 0.5
    acquire_timeout_s: float | None = 10.0
    camera: CameraConfig = field(default_factory=CameraConfig)


class ExpressionSampler:
    """
    Samples one frame every ``interval_s`` seconds and emits a classified emotion.

    Listeners are called synchronously, in emission order, on the event loop.
    No listener is called after ``stop_detection`` returns.
    """

    def __init__(
        self,
        *,
        camera: CameraProvider,
        backend: ExpressionBackend,
        config: SamplerConfig | None = None,
        capability: Capability = Capability.AVAILABLE,
    ) -> None:
        self._camera = camera
        self._backend = backend
        self._config = config or SamplerConfig()
        self._capability = capability

        self._ready = asyncio.Event()
        self._load_task: asyncio.Task | None = None
        self._degraded = False
        self.load_error: str | None = None
        self.error: str | None = None

        self._surface: VideoSurface | None = None
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._acquiring = False
        self._current: ClassifiedEmotion | None = None
        self._listeners: list[EmotionListener] = []

    @property
    def config(self) -> SamplerConfig:
        return self._config

    @property
    def capability(self) -> Capability:
        return self._capability

    @property
    def is_model_loaded(self) -> bool:
        """True once loading settled, including the degraded fallback."""
        return self._ready.is_set()

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def is_detecting(self) -> bool:
        return self._task is not None

    @property
    def surface(self) -> VideoSurface | None:
        return self._surface

    @property
    def current(self) -> ClassifiedEmotion | None:
        return self._current

    @property
    def emotion(self) -> EmotionLabel | None:
        return self._current.label if self._current else None

    @property
    def confidence(self) -> float:
        return self._current.confidence if self._current else 0.0

    def subscribe(self, listener: EmotionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def load_models(self) -> asyncio.Task:
        """Start loading the expression model in the background (once)."""
        if self._load_task is None:
            self._load_task = asyncio.create_task(self._load(), name="expression-model-load")
        return self._load_task

    async def wait_ready(self) -> None:
        self.load_models()
        await self._ready.wait()

    async def _load(self) -> None:
        try:
            await self._backend.load()
            logger.info("[EMOTION] expression model ready")
        except Exception as e:
            # Report ready anyway; ticks will fail and be skipped.
            self._degraded = True
            self.load_error = f"Failed to load emotion detection models: {e}"
            logger.warning(f"[EMOTION] {self.load_error}; continuing degraded")
        finally:
            self._ready.set()

    async def start_detection(self) -> None:
        """
        Acquire the camera and begin periodic sampling.

        Calling while already detecting or acquiring is a no-op. If
        stop_detection() runs while the camera is being acquired, the
        handle is released as soon as it arrives and sampling never starts.

        Raises:
            Unsupported: No camera support in this runtime.
            PermissionDenied: Access declined or no camera present.
            HardwareUnavailable: Acquisition failed or timed out.
        """
        if not self._capability.is_available:
            self.error = "Camera capture is not supported on this device."
            raise Unsupported(self.error)
        if self._task is not None or self._acquiring:
            return

        self.error = None
        self.load_models()

        self._acquiring = True
        generation = self._generation
        try:
            handle = await asyncio.wait_for(
                self._camera.open(self._config.camera),
                timeout=self._config.acquire_timeout_s,
            )
        except asyncio.TimeoutError as e:
            self.error = "Timed out waiting for the camera."
            logger.warning(f"[EMOTION] {self.error}")
            raise HardwareUnavailable(self.error) from e
        except ClassroomBridgeError as e:
            self.error = e.user_message
            logger.warning(f"[EMOTION] camera acquisition failed: {e.user_message}")
            raise
        except Exception as e:
            self.error = f"Failed to start camera: {e}"
            logger.warning(f"[EMOTION] {self.error}")
            raise HardwareUnavailable(self.error) from e
        finally:
            self._acquiring = False

        if generation != self._generation:
            # Stopped while acquiring.
            try:
                handle.release()
            except Exception as e:
                logger.debug(f"[EMOTION] camera release failed: {e}")
            logger.info("[EMOTION] detection stopped before the camera was ready; released")
            return

        surface = VideoSurface()
        surface.attach(handle)
        self._surface = surface

        self._generation += 1
        self._task = asyncio.create_task(self._run(self._generation), name="expression-sampler")
        logger.info(f"[EMOTION] detection started interval={self._config.interval_s}s")

    def stop_detection(self) -> None:
        """
        Cancel sampling, release the camera and reset the emitted state.

        Idempotent. Returns only after the camera handle is released.
        """
        self._generation += 1

        task, self._task = self._task, None
        if task is not None:
            task.cancel()

        surface, self._surface = self._surface, None
        if surface is not None:
            surface.detach()

        self._current = None
        if task is not None or surface is not None:
            logger.info("[EMOTION] detection stopped")

    async def _run(self, generation: int) -> None:
        await self._ready.wait()
        await asyncio.sleep(self._config.warmup_s)
        while generation == self._generation:
            await asyncio.sleep(self._config.interval_s)
            await self._tick(generation)

    async def _tick(self, generation: int) -> None:
        surface = self._surface
        if surface is None:
            return

        try:
            frame = await asyncio.to_thread(surface.capture)
            if frame is None:
                logger.debug("[EMOTION] no frame available; skipping tick")
                return
            scores = await asyncio.to_thread(self._backend.detect, frame)
        except Exception as e:
            logger.debug(f"[EMOTION] inference failed; skipping tick: {e}")
            return

        if generation != self._generation:
            return

        if scores is None:
            emotion = NO_FACE_EMOTION
            logger.debug("[EMOTION] no face detected; reporting neutral")
        else:
            emotion = classify(scores)
            logger.debug(f"[EMOTION] detected label={emotion.label.value} confidence={emotion.confidence:.2f}")

        self._emit(emotion)

    def _emit(self, emotion: ClassifiedEmotion) -> None:
        self._current = emotion
        for listener in list(self._listeners):
            try:
                listener(emotion)
            except Exception:
                logger.exception("[EMOTION] emotion listener failed")
