"""Configuration constants for the confidence stabilization layer."""

from dataclasses import dataclass, fields
from typing import Mapping

# Observation window
WINDOW_SIZE = 20  # Consecutive same-identity frames needed before a pin can fire

# Pin decision
PIN_THRESHOLD = 0.80  # Minimum normalized confidence to pin a label

# Smoothing
SMOOTHING = "mean"  # "mean" (moving average) or "ema"
EMA_ALPHA = 0.3  # Weight of the newest sample when SMOOTHING == "ema"
SMOOTHING_MODES = ("mean", "ema")

# Classification worker
WORKER_IDLE_MS = 50  # Sleep between polls while the session is paused


@dataclass(frozen=True)
class PinConfig:
    """Immutable tuning for the normalizer and decision engine."""
    window_size: int = WINDOW_SIZE
    threshold: float = PIN_THRESHOLD
    smoothing: str = SMOOTHING
    ema_alpha: float = EMA_ALPHA

    def __post_init__(self):
        if isinstance(self.window_size, bool) or not isinstance(self.window_size, int):
            raise ValueError(f"window_size must be an integer, got {self.window_size!r}")
        if self.window_size < 1:
            raise ValueError(f"window_size must be positive, got {self.window_size}")
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {self.threshold}")
        if self.smoothing not in SMOOTHING_MODES:
            raise ValueError(
                f"smoothing must be one of {SMOOTHING_MODES}, got {self.smoothing!r}"
            )
        if not 0.0 < self.ema_alpha <= 1.0:
            raise ValueError(f"ema_alpha must be within (0, 1], got {self.ema_alpha}")

    @classmethod
    def from_mapping(cls, values: Mapping) -> "PinConfig":
        """Build a config from a mapping, ignoring unknown and None values."""
        names = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in values.items() if k in names and v is not None}
        return cls(**kwargs)
