"""Decision engine for one-shot pin firing on stabilized confidence."""

import logging
from enum import Enum
from typing import Optional

from domain.models import NormalizedObservation, PinDecision
from trust.config import PinConfig

logger = logging.getLogger(__name__)


class TrackingState(Enum):
    """Tracking state enum."""
    SCANNING = "SCANNING"
    LOCKED = "LOCKED"


class PinDecisionEngine:
    """Scanning/Locked state machine that fires at most one PinDecision per cycle."""

    def __init__(self, config: Optional[PinConfig] = None):
        """
        Initialize decision engine.

        Args:
            config: Window size and threshold (default: PinConfig())
        """
        self.config = config or PinConfig()
        self.current_state = TrackingState.SCANNING
        self.locked_candidate: Optional[str] = None
        self.decisions_fired = 0

    @property
    def state(self) -> TrackingState:
        return self.current_state

    @property
    def is_locked(self) -> bool:
        return self.current_state == TrackingState.LOCKED

    def evaluate(self, normalized: NormalizedObservation) -> Optional[PinDecision]:
        """
        Evaluate a normalized observation.

        Args:
            normalized: Output of the normalizer for the current frame

        Returns:
            PinDecision on the Scanning -> Locked transition, otherwise None
        """
        if self.current_state == TrackingState.LOCKED:
            return None

        # Rule 1: a real, recognized candidate
        if normalized.candidate_id is None:
            return None

        # Rule 2: window fully populated by this identity
        if normalized.sample_count != self.config.window_size:
            return None

        # Rule 3: sustained confidence
        if normalized.normalized_confidence < self.config.threshold:
            return None

        self.current_state = TrackingState.LOCKED
        self.locked_candidate = normalized.candidate_id
        self.decisions_fired += 1
        logger.info(
            f"[PinDecisionEngine] Locked on {normalized.candidate_id!r} "
            f"(conf={normalized.normalized_confidence:.3f}, n={normalized.sample_count})"
        )
        return PinDecision(
            candidate_id=normalized.candidate_id,
            normalized_confidence=normalized.normalized_confidence,
        )

    def reset(self):
        """Return to scanning."""
        if self.current_state == TrackingState.LOCKED:
            logger.debug(f"[PinDecisionEngine] Released lock on {self.locked_candidate!r}")
        self.current_state = TrackingState.SCANNING
        self.locked_candidate = None
