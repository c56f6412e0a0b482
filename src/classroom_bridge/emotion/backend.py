"""Facial-expression inference backends.

Default implementation uses `deepface` if installed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from classroom_bridge.emotion.schemas import PrimitiveExpressionScores

logger = logging.getLogger(__name__)

# DeepFace emotion keys -> primitive expression names
_DEEPFACE_KEYS: dict[str, str] = {
    "neutral": "neutral",
    "happy": "happy",
    "sad": "sad",
    "angry": "angry",
    "fear": "fearful",
    "disgust": "disgusted",
    "surprise": "surprised",
}


class ExpressionBackend:
    async def load(self) -> None:
        """Load model weights. May be slow; called once."""
        raise NotImplementedError

    def detect(self, frame: Any) -> PrimitiveExpressionScores | None:
        """Best-effort single-face inference. ``None`` means no face was found."""
        raise NotImplementedError


def scores_from_percentages(emotion: dict[str, Any]) -> PrimitiveExpressionScores:
    """Convert a DeepFace ``emotion`` dict (0..100 per key) into primitive scores."""
    values: dict[str, float] = {}
    for key, name in _DEEPFACE_KEYS.items():
        try:
            raw = float(emotion.get(key, 0.0) or 0.0)
        except (TypeError, ValueError):
            raw = 0.0
        values[name] = min(max(raw / 100.0, 0.0), 1.0)
    return PrimitiveExpressionScores(**values)


class DeepFaceExpressionBackend(ExpressionBackend):
    """DeepFace wrapper (OpenCV detector, emotion action only)."""

    def __init__(self, detector_backend: str = "opencv", min_face_px: int = 40) -> None:
        self._detector_backend = detector_backend
        self._min_face_px = min_face_px
        self._deepface = None

    @property
    def loaded(self) -> bool:
        return self._deepface is not None

    async def load(self) -> None:
        def _load():
            # Lazy import: DeepFace pulls in TensorFlow.
            from deepface import DeepFace  # type: ignore

            DeepFace.build_model(task="facial_attribute", model_name="Emotion")
            return DeepFace

        self._deepface = await asyncio.to_thread(_load)
        logger.info("[EMOTION] DeepFace emotion model loaded")

    def detect(self, frame: Any) -> PrimitiveExpressionScores | None:
        if self._deepface is None:
            raise RuntimeError("Expression model is not loaded")

        results = self._deepface.analyze(
            frame,
            actions=["emotion"],
            enforce_detection=False,
            detector_backend=self._detector_backend,
            silent=True,
        )
        results = results if isinstance(results, list) else [results]

        faces = [r for r in results if self._is_face(r)]
        if not faces:
            return None

        # Single-face policy: keep the largest detected face.
        best = max(faces, key=self._area)
        return scores_from_percentages(best.get("emotion") or {})

    def _is_face(self, result: dict[str, Any]) -> bool:
        region = result.get("region") or {}
        w, h = int(region.get("w", 0)), int(region.get("h", 0))
        confidence = result.get("face_confidence")
        # With enforce_detection=False DeepFace returns the full frame and
        # confidence 0 when no face is present.
        if confidence is not None and float(confidence) <= 0.0:
            return False
        return w >= self._min_face_px and h >= self._min_face_px

    @staticmethod
    def _area(result: dict[str, Any]) -> int:
        region = result.get("region") or {}
        return int(region.get("w", 0)) * int(region.get("h", 0))
