"""Confidence stabilization and pin decision layer."""

from trust.config import PinConfig
from trust.confidence_normalizer import (
    ConfidenceNormalizer,
    EMAConfidenceNormalizer,
    clamp_confidence,
    make_normalizer,
)
from trust.decision_engine import TrackingState, PinDecisionEngine

__all__ = [
    "PinConfig",
    "ConfidenceNormalizer",
    "EMAConfidenceNormalizer",
    "clamp_confidence",
    "make_normalizer",
    "TrackingState",
    "PinDecisionEngine",
]
