"""
Compound-emotion classifier.

Maps primitive expression scores to a single labeled emotion. Compound
states are checked first, in priority order; each needs two corroborating
primitives above a floor plus a weighted score above a threshold. When no
compound rule fires, the result is a plain argmax over the basic emotions.

The module is pure: no state, no I/O.
"""

from dataclasses import dataclass
from typing import Callable

from classroom_bridge.emotion.schemas import (
    ClassifiedEmotion,
    EmotionLabel,
    PrimitiveExpressionScores,
)


@dataclass(frozen=True)
class CompoundRule:
    """A weighted combination of primitives gated by per-primitive floors."""

    label: EmotionLabel
    weights: dict[str, float]
    gate: Callable[[PrimitiveExpressionScores], bool]
    threshold: float

    def score(self, scores: PrimitiveExpressionScores) -> float:
        return sum(getattr(scores, name) * weight for name, weight in self.weights.items())

    def match(self, scores: PrimitiveExpressionScores) -> ClassifiedEmotion | None:
        value = self.score(scores)
        if self.gate(scores) and value > self.threshold:
            return ClassifiedEmotion(label=self.label, confidence=value)
        return None


COMPOUND_RULES: tuple[CompoundRule, ...] = (
    CompoundRule(
        label=EmotionLabel.CONFUSED,
        weights={"surprised": 0.7, "neutral": 0.3},
        gate=lambda s: s.surprised > 0.3 and s.neutral > 0.2,
        threshold=0.35,
    ),
    CompoundRule(
        label=EmotionLabel.STRESSED,
        weights={"angry": 0.35, "fearful": 0.35, "sad": 0.3},
        gate=lambda s: s.angry > 0.2 and s.fearful > 0.2,
        threshold=0.4,
    ),
    CompoundRule(
        label=EmotionLabel.OVERWHELMED,
        weights={"fearful": 0.6, "sad": 0.4},
        gate=lambda s: s.fearful > 0.35 and s.sad > 0.25,
        threshold=0.45,
    ),
    CompoundRule(
        label=EmotionLabel.BORED,
        weights={"neutral": 0.8, "sad": 0.2},
        gate=lambda s: s.neutral > 0.6 and s.sad > 0.1 and s.happy < 0.2 and s.surprised < 0.2,
        threshold=0.5,
    ),
)

# Enumeration order matters: ties go to the earliest entry.
BASIC_EMOTIONS: tuple[tuple[EmotionLabel, str], ...] = (
    (EmotionLabel.NEUTRAL, "neutral"),
    (EmotionLabel.HAPPY, "happy"),
    (EmotionLabel.SAD, "sad"),
    (EmotionLabel.ANGRY, "angry"),
    (EmotionLabel.SCARED, "fearful"),
    (EmotionLabel.DISGUSTED, "disgusted"),
    (EmotionLabel.SURPRISED, "surprised"),
)


def dominant_basic_emotion(scores: PrimitiveExpressionScores) -> ClassifiedEmotion:
    """Argmax over the basic emotions; strict comparison keeps the first of equals."""
    best_label, best_field = BASIC_EMOTIONS[0]
    best_score = getattr(scores, best_field)
    for label, field in BASIC_EMOTIONS[1:]:
        value = getattr(scores, field)
        if value > best_score:
            best_label, best_score = label, value
    return ClassifiedEmotion(label=best_label, confidence=best_score)


def classify(scores: PrimitiveExpressionScores) -> ClassifiedEmotion:
    """
    Classify primitive expression scores into one dominant emotion.

    Args:
        scores: Primitive expression scores for one frame.

    Returns:
        The first matching compound emotion, otherwise the basic argmax.
    """
    for rule in COMPOUND_RULES:
        matched = rule.match(scores)
        if matched is not None:
            return matched
    return dominant_basic_emotion(scores)
