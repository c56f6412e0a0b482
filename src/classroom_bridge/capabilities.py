"""Runtime capability checks.

Each check is evaluated once, when the owning component is constructed, and
the result is stored on the component as a ``Capability``.
"""

from __future__ import annotations

import importlib.util
import logging
import shutil
from enum import Enum

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    AVAILABLE = "available"
    UNSUPPORTED = "unsupported"

    @property
    def is_available(self) -> bool:
        return self is Capability.AVAILABLE


def _module_present(name: str) -> bool:
    try:
        return importlib.util.find_spec(name) is not None
    except (ImportError, ValueError):
        return False


def detect_camera() -> Capability:
    """OpenCV installed. Whether a camera is attached is only known on open."""
    return Capability.AVAILABLE if _module_present("cv2") else Capability.UNSUPPORTED


def detect_audio_capture() -> Capability:
    """sounddevice (PortAudio) installed and at least one input device present."""
    if not _module_present("sounddevice"):
        return Capability.UNSUPPORTED
    try:
        import sounddevice as sd  # type: ignore

        devices = sd.query_devices()
    except Exception as e:  # PortAudio missing raises OSError at import time
        logger.debug(f"[AUDIO] capture check failed: {e}")
        return Capability.UNSUPPORTED

    has_input = any(int(d.get("max_input_channels", 0)) > 0 for d in devices)
    return Capability.AVAILABLE if has_input else Capability.UNSUPPORTED


def detect_speech_output(piper_bin: str = "piper") -> Capability:
    """Piper CLI on PATH and sounddevice installed for playback."""
    if shutil.which(piper_bin) is None or not _module_present("sounddevice"):
        return Capability.UNSUPPORTED
    return Capability.AVAILABLE
