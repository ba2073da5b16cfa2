"""Per-identity confidence smoothing over a bounded observation window."""

import logging
import math
from collections import deque
from typing import Optional

import numpy as np

from domain.models import NormalizedObservation, RawObservation
from trust.config import PinConfig, WINDOW_SIZE, EMA_ALPHA

logger = logging.getLogger(__name__)


def clamp_confidence(value) -> float:
    """Clamp a raw confidence to [0, 1]; NaN counts as 0."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return float(np.clip(value, 0.0, 1.0))


class ConfidenceNormalizer:
    """Moving average of raw confidences for the currently tracked identity."""

    def __init__(self, window_size: int = WINDOW_SIZE):
        """
        Initialize normalizer.

        Args:
            window_size: Capacity of the observation window (default: WINDOW_SIZE from config)
        """
        if window_size < 1:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.window_size = window_size

        # Raw confidences of the tracked identity, oldest first
        self.window: deque = deque(maxlen=window_size)
        self._identity: Optional[str] = None
        self._sum = 0.0
        self._evictions = 0

    @property
    def tracked_identity(self) -> Optional[str]:
        return self._identity

    @property
    def sample_count(self) -> int:
        return len(self.window)

    def ingest(self, observation: RawObservation) -> NormalizedObservation:
        """
        Add an observation and return the smoothed confidence.

        Args:
            observation: Representative observation of the current frame

        Returns:
            NormalizedObservation for the tracked identity
        """
        identity = observation.identity
        confidence = clamp_confidence(observation.raw_confidence)

        if self.window and identity != self._identity:
            logger.debug(
                f"[ConfidenceNormalizer] Identity changed {self._identity!r} -> {identity!r}, "
                f"dropping {len(self.window)} samples"
            )
            self._clear()
        self._identity = identity

        if len(self.window) == self.window_size:
            self._sum -= self.window[0]
            self._evictions += 1
        self.window.append(confidence)
        self._sum += confidence

        # Bound float drift: resum once per full turnover of the window
        if self._evictions >= self.window_size:
            self._sum = math.fsum(self.window)
            self._evictions = 0

        mean = clamp_confidence(self._sum / len(self.window))
        return NormalizedObservation(
            candidate_id=identity,
            normalized_confidence=mean,
            sample_count=len(self.window),
        )

    def _clear(self):
        self.window.clear()
        self._sum = 0.0
        self._evictions = 0

    def reset(self):
        """Empty the window and forget the tracked identity."""
        self._clear()
        self._identity = None


class EMAConfidenceNormalizer:
    """
    Exponential moving average with a minimum-observation gate.

    sample_count counts consecutive samples of the tracked identity, capped at
    window_size, so the decision engine's full-window gate applies unchanged.
    """

    def __init__(self, window_size: int = WINDOW_SIZE, alpha: float = EMA_ALPHA):
        if window_size < 1:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.window_size = window_size
        self.alpha = float(alpha)
        self._identity: Optional[str] = None
        self._ema: Optional[float] = None
        self._count = 0

    @property
    def tracked_identity(self) -> Optional[str]:
        return self._identity

    @property
    def sample_count(self) -> int:
        return self._count

    def ingest(self, observation: RawObservation) -> NormalizedObservation:
        identity = observation.identity
        confidence = clamp_confidence(observation.raw_confidence)

        if self._count and identity != self._identity:
            logger.debug(
                f"[EMAConfidenceNormalizer] Identity changed {self._identity!r} -> {identity!r}"
            )
            self._ema = None
            self._count = 0
        self._identity = identity

        if self._ema is None:
            self._ema = confidence
        else:
            self._ema = self.alpha * confidence + (1.0 - self.alpha) * self._ema
        self._count = min(self._count + 1, self.window_size)

        return NormalizedObservation(
            candidate_id=identity,
            normalized_confidence=clamp_confidence(self._ema),
            sample_count=self._count,
        )

    def reset(self):
        self._identity = None
        self._ema = None
        self._count = 0


def make_normalizer(config: PinConfig):
    """Build the normalizer selected by config.smoothing."""
    if config.smoothing == "ema":
        return EMAConfidenceNormalizer(config.window_size, config.ema_alpha)
    return ConfidenceNormalizer(config.window_size)
