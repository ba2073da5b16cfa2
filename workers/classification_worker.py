"""
ClassificationWorker: pulls ranked classifier results and feeds the session.
"""
import logging
import time
from typing import Callable, Optional, Sequence

from PyQt5.QtCore import QThread, pyqtSignal

from domain.models import RawObservation
from trust.config import WORKER_IDLE_MS
from workers.session_controller import SessionController, SessionState

logger = logging.getLogger(__name__)

# Returns the next frame's ranked results, or None when the stream has ended
ResultSource = Callable[[], Optional[Sequence[RawObservation]]]


class ClassificationWorker(QThread):
    """
    Worker thread for frame delivery.
    Stops pulling from the source while the session is paused.
    """

    fpsReady = pyqtSignal(float)  # delivered frames per second
    finishedStream = pyqtSignal()
    errorOccurred = pyqtSignal(str)  # source failure description

    def __init__(self, source: ResultSource, controller: SessionController,
                 idle_ms: int = WORKER_IDLE_MS, parent=None):
        super().__init__(parent)
        self.source = source
        self.controller = controller
        self.idle_ms = idle_ms
        self.running = False
        self.frames_delivered = 0

        # FPS calculation
        self.fps_start_time = None
        self.fps_frame_count = 0
        self.fps = 0.0

    def run(self):
        """Main delivery loop."""
        self.running = True
        self.fps_start_time = time.time()
        logger.info("[ClassificationWorker] Started")

        while self.running:
            if self.controller.session_state == SessionState.PAUSED:
                self.msleep(self.idle_ms)
                continue

            try:
                results = self.source()
            except Exception as e:
                logger.exception("[ClassificationWorker] Result source failed")
                self.running = False
                self.errorOccurred.emit(f"{type(e).__name__}: {e}")
                return

            if results is None:
                logger.info("[ClassificationWorker] Source exhausted")
                break

            self.controller.on_observation(results)
            self.frames_delivered += 1
            self.fps_frame_count += 1

            # Calculate and emit FPS periodically
            now = time.time()
            if now - self.fps_start_time >= 1.0:
                self.fps = self.fps_frame_count / (now - self.fps_start_time)
                self.fpsReady.emit(self.fps)
                self.fps_frame_count = 0
                self.fps_start_time = now

        self.running = False
        logger.info(f"[ClassificationWorker] Stopped after {self.frames_delivered} frames")
        self.finishedStream.emit()

    def stop(self):
        """Stop frame delivery."""
        self.running = False
        self.wait()
