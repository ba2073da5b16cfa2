"""
SessionController: serializes classifier frames through the normalizer and
decision engine, and pauses the session once a pin fires.
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence

from PyQt5.QtCore import QObject, QMutex, pyqtSignal

from domain.models import PinDecision, RawObservation
from trust.config import PinConfig
from trust.confidence_normalizer import make_normalizer
from trust.decision_engine import PinDecisionEngine, TrackingState

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session state enum."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


@dataclass
class SessionStats:
    """Frame accounting for a controller."""
    frames_received: int = 0
    frames_processed: int = 0
    dropped_paused: int = 0
    dropped_busy: int = 0
    pins_fired: int = 0


class SessionController(QObject):
    """
    Owns the observation window, tracking state and session state.

    Frames arriving while another frame is being evaluated are dropped
    (latest-frame-wins); frames arriving while paused are discarded.
    """

    pinDecided = pyqtSignal(object)  # PinDecision
    sessionStateChanged = pyqtSignal(object)  # SessionState
    observationNormalized = pyqtSignal(object)  # NormalizedObservation

    def __init__(self, config: Optional[PinConfig] = None, parent=None):
        super().__init__(parent)
        self._config = config or PinConfig()
        self._normalizer = make_normalizer(self._config)
        self._engine = PinDecisionEngine(self._config)
        self._state = SessionState.ACTIVE
        self._stats = SessionStats()
        # Bumped on every resume; a stale PAUSED notification is skipped
        self._cycle = 0
        self._mutex = QMutex()
        self._drop_mutex = QMutex()
        self._dropped_busy = 0
        # Serializes state-change announcements; recursive so slots may call resume()
        self._emit_mutex = QMutex(QMutex.Recursive)

        logger.info(
            f"[SessionController] Initialized: window={self._config.window_size}, "
            f"threshold={self._config.threshold}, smoothing={self._config.smoothing}"
        )

    @property
    def config(self) -> PinConfig:
        return self._config

    @property
    def session_state(self) -> SessionState:
        return self._state

    @property
    def tracking_state(self) -> TrackingState:
        return self._engine.state

    @property
    def window_sample_count(self) -> int:
        return self._normalizer.sample_count

    def stats(self) -> SessionStats:
        """Snapshot of frame counters."""
        self._mutex.lock()
        try:
            snapshot = replace(self._stats)
        finally:
            self._mutex.unlock()
        self._drop_mutex.lock()
        snapshot.dropped_busy = self._dropped_busy
        self._drop_mutex.unlock()
        return snapshot

    def on_observation(self, raw_observations: Sequence[RawObservation]):
        """
        Process one frame of ranked classifier results.

        Args:
            raw_observations: Results ordered by descending raw confidence
        """
        if not self._mutex.tryLock():
            # Another frame is mid-evaluation; a fresher one will follow
            self._drop_mutex.lock()
            self._dropped_busy += 1
            self._drop_mutex.unlock()
            logger.debug("[SessionController] Busy, dropping frame")
            return

        decision = None
        try:
            self._stats.frames_received += 1
            if self._state == SessionState.PAUSED:
                self._stats.dropped_paused += 1
                return

            if raw_observations:
                observation = raw_observations[0]
            else:
                observation = RawObservation.unclassified()

            normalized = self._normalizer.ingest(observation)
            decision = self._engine.evaluate(normalized)
            self._stats.frames_processed += 1

            if decision is not None:
                decision = replace(decision, payload=observation.payload)
                self._pause_after_decision()
            cycle = self._cycle
        finally:
            self._mutex.unlock()

        self.observationNormalized.emit(normalized)
        if decision is not None:
            self._emit_decision(decision, cycle)

    def _pause_after_decision(self):
        # Caller holds the mutex
        self._state = SessionState.PAUSED
        self._stats.pins_fired += 1

    def _emit_decision(self, decision: PinDecision, cycle: int):
        logger.info(
            f"[SessionController] Pin decided: {decision.candidate_id!r} "
            f"(conf={decision.normalized_confidence:.3f})"
        )
        self.pinDecided.emit(decision)

        # Check and announce under the emit lock so a concurrent resume()
        # can only announce ACTIVE after this PAUSED
        self._emit_mutex.lock()
        try:
            self._mutex.lock()
            still_paused = cycle == self._cycle and self._state == SessionState.PAUSED
            self._mutex.unlock()
            if still_paused:
                logger.info("[SessionController] Session -> PAUSED")
                self.sessionStateChanged.emit(SessionState.PAUSED)
            else:
                logger.debug("[SessionController] Resumed during pin handling, PAUSED not announced")
        finally:
            self._emit_mutex.unlock()

    def resume(self):
        """Reset the window and engine, then reactivate the session."""
        self._emit_mutex.lock()
        try:
            self._mutex.lock()
            try:
                if self._state == SessionState.ACTIVE:
                    logger.debug("[SessionController] resume() while active, ignoring")
                    return
                self._engine.reset()
                self._normalizer.reset()
                self._state = SessionState.ACTIVE
                self._cycle += 1
            finally:
                self._mutex.unlock()

            logger.info("[SessionController] Session -> ACTIVE")
            self.sessionStateChanged.emit(SessionState.ACTIVE)
        finally:
            self._emit_mutex.unlock()
