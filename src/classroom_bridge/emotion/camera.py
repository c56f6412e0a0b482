"""Camera acquisition (video input only).

This module is plain hardware I/O: it opens a camera, hands out frames and
releases the device. It knows nothing about faces or emotions.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from classroom_bridge.errors import HardwareUnavailable, PermissionDenied

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraConfig:
    index: int = 0
    width: int = 640
    height: int = 480
    facing: str = "user"  # front-facing; informational for OpenCV


class CameraHandle(Protocol):
    def read_frame(self) -> Any | None: ...

    def release(self) -> None: ...


class CameraProvider(Protocol):
    async def open(self, config: CameraConfig) -> CameraHandle: ...


class VideoSurface:
    """
    Hidden frame sink attached to one open camera handle.

    Created on start and destroyed on stop; only the owning sampler holds it.
    Reads happen on a worker thread, so capture and detach share a lock:
    detach waits for an in-flight read and no read starts after it.
    """

    def __init__(self) -> None:
        self._handle: CameraHandle | None = None
        self._lock = threading.Lock()
        self.last_frame: Any | None = None

    @property
    def attached(self) -> bool:
        return self._handle is not None

    def attach(self, handle: CameraHandle) -> None:
        with self._lock:
            self._handle = handle

    def capture(self) -> Any | None:
        with self._lock:
            if self._handle is None:
                return None
            frame = self._handle.read_frame()
            if frame is not None:
                self.last_frame = frame
            return frame

    def detach(self) -> None:
        """Release the device. Safe to call more than once."""
        with self._lock:
            handle, self._handle = self._handle, None
            self.last_frame = None
            if handle is not None:
                handle.release()


class _OpenCVHandle:
    def __init__(self, capture: Any) -> None:
        self._capture = capture

    def read_frame(self) -> Any | None:
        ok, frame = self._capture.read()
        return frame if ok else None

    def release(self) -> None:
        self._capture.release()


class OpenCVCamera:
    """cv2.VideoCapture wrapper."""

    def _require_cv2(self):
        try:
            import cv2  # type: ignore

            return cv2
        except Exception as e:  # pragma: no cover
            raise RuntimeError(
                "opencv-python is required for emotion tracking. Install with: pip install -e '.[vision]'"
            ) from e

    async def open(self, config: CameraConfig) -> CameraHandle:
        cv2 = self._require_cv2()

        def _open():
            cap = cv2.VideoCapture(config.index)
            if not cap.isOpened():
                cap.release()
                return None
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.height)
            return cap

        try:
            cap = await asyncio.to_thread(_open)
        except Exception as e:
            raise HardwareUnavailable(f"Failed to start camera: {e}") from e

        if cap is None:
            # OpenCV reports a missing device and a denied one the same way.
            raise PermissionDenied("Camera access was denied or no camera was found.")

        logger.info(f"[EMOTION] camera opened index={config.index} size={config.width}x{config.height}")
        return _OpenCVHandle(cap)
