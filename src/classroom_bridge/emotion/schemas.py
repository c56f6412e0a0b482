"""
Pydantic schemas for expression scores and classified emotions.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EmotionLabel(str, Enum):
    """Labels the classifier can emit."""

    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    SCARED = "scared"
    DISGUSTED = "disgusted"
    SURPRISED = "surprised"
    NEUTRAL = "neutral"
    # Compound states derived from two or more primitives
    CONFUSED = "confused"
    STRESSED = "stressed"
    OVERWHELMED = "overwhelmed"
    BORED = "bored"


# Labels an external monitor treats as alert candidates.
CONCERNING_LABELS: frozenset[EmotionLabel] = frozenset(
    {EmotionLabel.SAD, EmotionLabel.ANGRY, EmotionLabel.SCARED, EmotionLabel.DISGUSTED}
)


class PrimitiveExpressionScores(BaseModel):
    """
    Raw per-expression confidences for one sampled frame.

    Field order is the enumeration order used for argmax tie-breaking.
    """

    model_config = ConfigDict(frozen=True)

    neutral: float = Field(default=0.0, ge=0.0, le=1.0)
    happy: float = Field(default=0.0, ge=0.0, le=1.0)
    sad: float = Field(default=0.0, ge=0.0, le=1.0)
    angry: float = Field(default=0.0, ge=0.0, le=1.0)
    fearful: float = Field(default=0.0, ge=0.0, le=1.0)
    disgusted: float = Field(default=0.0, ge=0.0, le=1.0)
    surprised: float = Field(default=0.0, ge=0.0, le=1.0)


class ClassifiedEmotion(BaseModel):
    """One dominant emotion and the score of the winning label."""

    model_config = ConfigDict(frozen=True)

    label: EmotionLabel = Field(..., description="Winning label")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Score of the winning label")

    @property
    def is_concerning(self) -> bool:
        return self.label in CONCERNING_LABELS
