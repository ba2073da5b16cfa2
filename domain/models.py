"""
Domain models for classifier observations and pin decisions.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ClassificationOutcome(Enum):
    """What the classifier made of a single candidate."""
    RECOGNIZED = "RECOGNIZED"
    OTHER_KNOWN = "OTHER_KNOWN"
    UNCLASSIFIED = "UNCLASSIFIED"


@dataclass(frozen=True)
class RawObservation:
    """One ranked classifier result for a frame."""
    raw_confidence: float
    outcome: ClassificationOutcome = ClassificationOutcome.UNCLASSIFIED
    candidate_id: Optional[str] = None
    payload: Any = None

    @property
    def identity(self) -> Optional[str]:
        """Tracked identity; None unless the candidate was recognized."""
        if self.outcome is ClassificationOutcome.RECOGNIZED:
            return self.candidate_id
        return None

    @property
    def is_recognized(self) -> bool:
        return self.identity is not None

    @classmethod
    def unclassified(cls) -> "RawObservation":
        """Observation used for a frame with no results at all."""
        return cls(raw_confidence=0.0, outcome=ClassificationOutcome.UNCLASSIFIED)

    @classmethod
    def from_dict(cls, data: dict) -> "RawObservation":
        """
        Build an observation from its JSON form.

        Args:
            data: Dict with "confidence", optional "candidate_id" and "outcome"
                  (defaults to RECOGNIZED when a candidate id is present)

        Returns:
            RawObservation
        """
        candidate_id = data.get("candidate_id")
        default_outcome = "RECOGNIZED" if candidate_id is not None else "UNCLASSIFIED"
        outcome_name = str(data.get("outcome", default_outcome)).upper()
        try:
            outcome = ClassificationOutcome[outcome_name]
        except KeyError:
            raise ValueError(f"Unknown classification outcome: {outcome_name}") from None

        return cls(
            raw_confidence=float(data.get("confidence", 0.0)),
            outcome=outcome,
            candidate_id=candidate_id,
            payload=data.get("payload"),
        )


@dataclass(frozen=True)
class NormalizedObservation:
    """Smoothed confidence over the current observation window."""
    candidate_id: Optional[str]
    normalized_confidence: float
    sample_count: int


@dataclass(frozen=True)
class PinDecision:
    """One-shot event: the candidate should be anchored and labeled."""
    candidate_id: str
    normalized_confidence: float
    payload: Any = None
