"""Emotion tracking.

camera -> expression backend -> compound classifier -> listeners

The classifier is pure and importable without any vision dependency.
"""

from classroom_bridge.emotion.backend import DeepFaceExpressionBackend, ExpressionBackend
from classroom_bridge.emotion.camera import CameraConfig, OpenCVCamera, VideoSurface
from classroom_bridge.emotion.classifier import classify
from classroom_bridge.emotion.sampler import NO_FACE_EMOTION, ExpressionSampler, SamplerConfig
from classroom_bridge.emotion.schemas import (
    CONCERNING_LABELS,
    ClassifiedEmotion,
    EmotionLabel,
    PrimitiveExpressionScores,
)

__all__ = [
    "CONCERNING_LABELS",
    "CameraConfig",
    "ClassifiedEmotion",
    "DeepFaceExpressionBackend",
    "EmotionLabel",
    "ExpressionBackend",
    "ExpressionSampler",
    "NO_FACE_EMOTION",
    "OpenCVCamera",
    "PrimitiveExpressionScores",
    "SamplerConfig",
    "VideoSurface",
    "classify",
]
