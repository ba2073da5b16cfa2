"""Tests for the session controller, classification worker and replay tool."""

import contextlib
import io
import json
import logging
import tempfile
import threading
import time
from pathlib import Path

import pytest
from PyQt5.QtCore import QCoreApplication, Qt

import app
from domain.models import ClassificationOutcome, RawObservation
from trust.config import PinConfig
from trust.decision_engine import TrackingState
from workers.classification_worker import ClassificationWorker
from workers.session_controller import SessionController, SessionState

_qt_app = None


def ensure_app():
    """Worker threads need a Qt application instance."""
    global _qt_app
    _qt_app = QCoreApplication.instance() or QCoreApplication([])
    return _qt_app


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def run_replay(argv):
    """Run the replay tool, capturing stdout and restoring root logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    out = io.StringIO()
    try:
        with contextlib.redirect_stdout(out):
            code = app.main(argv)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
    return code, out.getvalue()


def recognized(candidate_id, conf, payload=None):
    return RawObservation(raw_confidence=conf, outcome=ClassificationOutcome.RECOGNIZED,
                          candidate_id=candidate_id, payload=payload)


def make_controller(window_size=3, threshold=0.8):
    controller = SessionController(PinConfig(window_size=window_size, threshold=threshold))
    events = []
    controller.pinDecided.connect(lambda d: events.append(("pin", d)))
    controller.sessionStateChanged.connect(lambda s: events.append(("state", s)))
    return controller, events


def test_pin_fires_and_pauses():
    """Test a sustained stream pins once and pauses the session."""
    controller, events = make_controller()

    for conf in [0.5, 0.9, 0.95, 0.95]:
        controller.on_observation([recognized("mustang_gt", conf, payload={"name": "Mustang GT"})])

    assert len(events) == 2
    kind, decision = events[0]
    assert kind == "pin"
    assert decision.candidate_id == "mustang_gt"
    assert decision.normalized_confidence == pytest.approx(0.93333, abs=1e-4)
    assert decision.payload == {"name": "Mustang GT"}
    assert events[1] == ("state", SessionState.PAUSED)

    assert controller.session_state == SessionState.PAUSED
    assert controller.tracking_state == TrackingState.LOCKED
    stats = controller.stats()
    assert stats.frames_processed == 4
    assert stats.pins_fired == 1
    print("✓ Pin fires and pauses test passed")


def test_paused_session_drops_observations():
    """Test frames are ignored while paused."""
    controller, events = make_controller()
    normalized = []
    controller.observationNormalized.connect(normalized.append)

    for _ in range(3):
        controller.on_observation([recognized("a", 0.99)])
    assert controller.session_state == SessionState.PAUSED
    events.clear()
    normalized.clear()

    for _ in range(5):
        controller.on_observation([recognized("b", 0.99)])
        controller.on_observation([])

    assert events == []
    assert normalized == []
    assert controller.window_sample_count == 3
    assert controller.tracking_state == TrackingState.LOCKED
    assert controller.stats().dropped_paused == 10
    print("✓ Paused drop test passed")


def test_resume_clears_state():
    """Test resume requires a full window again before the next pin."""
    controller, events = make_controller()
    for _ in range(3):
        controller.on_observation([recognized("a", 0.99)])
    events.clear()

    controller.resume()
    assert events == [("state", SessionState.ACTIVE)]
    assert controller.session_state == SessionState.ACTIVE
    assert controller.tracking_state == TrackingState.SCANNING
    assert controller.window_sample_count == 0

    events.clear()
    controller.on_observation([recognized("a", 0.99)])
    controller.on_observation([recognized("a", 0.99)])
    assert events == [], "No residual memory after resume"

    controller.on_observation([recognized("a", 0.99)])
    assert [kind for kind, _ in events] == ["pin", "state"]
    print("✓ Resume clears state test passed")


def test_resume_while_active_is_noop():
    """Test resume is idempotent."""
    controller, events = make_controller()
    controller.on_observation([recognized("a", 0.99)])

    controller.resume()
    controller.resume()

    assert events == []
    assert controller.window_sample_count == 1, "Active resume must not reset the window"
    print("✓ Idempotent resume test passed")


def test_top_candidate_and_empty_frames():
    """Test the first result represents the frame and empty frames reset the window."""
    controller, events = make_controller()
    normalized = []
    controller.observationNormalized.connect(normalized.append)

    controller.on_observation([recognized("a", 0.9), recognized("b", 0.8)])
    controller.on_observation([recognized("a", 0.9), recognized("b", 0.85)])
    assert normalized[-1].candidate_id == "a"
    assert normalized[-1].sample_count == 2

    controller.on_observation([])
    assert normalized[-1].candidate_id is None
    assert normalized[-1].sample_count == 1
    assert normalized[-1].normalized_confidence == 0.0

    controller.on_observation([recognized("a", 0.9)])
    assert normalized[-1].sample_count == 1
    assert events == []
    print("✓ Top candidate test passed")


def test_resume_from_pin_slot():
    """Test a collaborator may resume synchronously while handling the pin."""
    controller = SessionController(PinConfig(window_size=2, threshold=0.5))
    states = []
    pins = []
    controller.sessionStateChanged.connect(states.append)

    def on_pin(decision):
        pins.append(decision)
        controller.resume()

    controller.pinDecided.connect(on_pin)

    for _ in range(4):
        controller.on_observation([recognized("a", 0.9)])

    assert len(pins) == 2
    assert states == [SessionState.ACTIVE, SessionState.ACTIVE]
    assert controller.session_state == SessionState.ACTIVE
    print("✓ Resume from pin slot test passed")


def test_busy_controller_drops_frame():
    """Test a frame arriving during another evaluation is dropped."""
    controller, events = make_controller()

    controller._mutex.lock()
    try:
        controller.on_observation([recognized("a", 0.99)])
    finally:
        controller._mutex.unlock()

    stats = controller.stats()
    assert stats.dropped_busy == 1
    assert stats.frames_received == 0
    assert controller.window_sample_count == 0
    print("✓ Busy drop test passed")


def test_concurrent_producers_fire_once():
    """Test racing producers can never fire two pins in one cycle."""
    controller = SessionController(PinConfig(window_size=5, threshold=0.5))
    pins = []
    lock = threading.Lock()

    def on_pin(decision):
        with lock:
            pins.append(decision)

    # Producers are plain threads; deliver in the emitting thread
    controller.pinDecided.connect(on_pin, Qt.DirectConnection)

    def produce():
        for _ in range(500):
            controller.on_observation([recognized("a", 0.95)])

    threads = [threading.Thread(target=produce) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(pins) == 1
    stats = controller.stats()
    assert stats.pins_fired == 1
    assert stats.frames_received + stats.dropped_busy == 2000
    print("✓ Concurrent producers test passed")


def test_worker_delivers_stream():
    """Test the worker feeds the controller until the source ends."""
    controller = SessionController(PinConfig(window_size=3, threshold=0.8))
    pins = []

    def on_pin(decision):
        pins.append(decision)
        controller.resume()

    controller.pinDecided.connect(on_pin)

    frames = iter([[recognized("a", 0.9)]] * 6)
    worker = ClassificationWorker(lambda: next(frames, None), controller)
    finished = []
    worker.finishedStream.connect(lambda: finished.append(True))

    worker.run()

    assert worker.frames_delivered == 6
    assert len(pins) == 2
    assert finished == [True]
    assert not worker.running
    print("✓ Worker delivery test passed")


def test_worker_reports_source_errors():
    """Test a failing source ends the worker thread with an error signal."""
    ensure_app()
    controller = SessionController(PinConfig(window_size=3, threshold=0.8))

    def broken_source():
        raise RuntimeError("camera unplugged")

    worker = ClassificationWorker(broken_source, controller)
    errors, finished = [], []
    worker.errorOccurred.connect(errors.append, Qt.DirectConnection)
    worker.finishedStream.connect(lambda: finished.append(True), Qt.DirectConnection)

    worker.start()
    assert worker.wait(5000), "Worker thread should end on its own"

    assert len(errors) == 1
    assert "camera unplugged" in errors[0]
    assert finished == []
    assert not worker.running
    assert controller.session_state == SessionState.ACTIVE
    print("✓ Worker error test passed")


def test_worker_suspends_while_paused():
    """Test the worker stops pulling while paused and picks up again on resume."""
    ensure_app()
    controller = SessionController(PinConfig(window_size=2, threshold=0.5))
    pulls = []

    def source():
        pulls.append(1)
        return [recognized("a", 0.9)]

    worker = ClassificationWorker(source, controller, idle_ms=5)
    worker.start()
    try:
        assert wait_for(lambda: controller.session_state == SessionState.PAUSED)
        paused_pulls = len(pulls)
        time.sleep(0.2)
        assert len(pulls) == paused_pulls, "No frames may be pulled while paused"
        assert controller.stats().pins_fired == 1

        controller.resume()
        assert wait_for(lambda: controller.stats().pins_fired == 2)
        assert len(pulls) > paused_pulls
    finally:
        worker.stop()

    assert worker.isFinished()
    assert not worker.running
    print("✓ Worker suspend test passed")


def test_concurrent_resume_waits_for_paused_announcement():
    """Test a resume from another thread is announced after PAUSED, never before."""
    controller = SessionController(PinConfig(window_size=1, threshold=0.5))
    states = []
    seen_while_paused = []
    resumers = []

    def on_state(state):
        states.append(state)
        if state == SessionState.PAUSED and not resumers:
            t = threading.Thread(target=controller.resume)
            resumers.append(t)
            t.start()
            t.join(0.2)  # blocked until this announcement completes
            seen_while_paused.append(list(states))

    controller.sessionStateChanged.connect(on_state, Qt.DirectConnection)
    controller.on_observation([recognized("a", 0.9)])
    resumers[0].join(5)

    assert seen_while_paused == [[SessionState.PAUSED]]
    assert states == [SessionState.PAUSED, SessionState.ACTIVE]
    assert states[-1] == controller.session_state
    print("✓ Concurrent resume ordering test passed")


def test_resume_before_paused_announcement_skips_it():
    """Test a resume completed during pin handling suppresses the stale PAUSED."""
    controller = SessionController(PinConfig(window_size=1, threshold=0.5))
    states = []
    controller.sessionStateChanged.connect(states.append, Qt.DirectConnection)

    def on_pin(decision):
        t = threading.Thread(target=controller.resume)
        t.start()
        t.join(5)

    controller.pinDecided.connect(on_pin, Qt.DirectConnection)
    controller.on_observation([recognized("a", 0.9)])

    assert states == [SessionState.ACTIVE]
    assert controller.session_state == SessionState.ACTIVE
    print("✓ Stale PAUSED suppression test passed")


def test_replay_cli():
    """Test the replay tool pins from a recorded stream and prints a summary."""
    lines = [[{"candidate_id": "mustang_gt", "confidence": 0.95}] for _ in range(6)]
    lines.insert(3, [])

    with tempfile.TemporaryDirectory() as tmp:
        stream = Path(tmp) / "stream.jsonl"
        stream.write_text("\n".join(json.dumps(line) for line in lines) + "\n", encoding="utf-8")

        code, out = run_replay([str(stream), "--window", "3", "--threshold", "0.9",
                                "--auto-resume", "--log-level", "WARNING"])

    assert code == 0
    assert "7 frames" in out
    assert "2 pins" in out
    print("✓ Replay CLI test passed")


def test_replay_cli_rejects_malformed_lines():
    """Test non-list and invalid lines are reported as ValueError."""
    with tempfile.TemporaryDirectory() as tmp:
        for content in ["not json\n", '{"candidate_id": "a", "confidence": 0.9}\n',
                        "5\n", "[1, 2]\n"]:
            bad = Path(tmp) / "bad.jsonl"
            bad.write_text(content, encoding="utf-8")
            with pytest.raises(ValueError):
                run_replay([str(bad)])
    print("✓ Replay CLI malformed input test passed")


def run_all_tests():
    """Run all tests."""
    print("Running session tests...\n")

    test_pin_fires_and_pauses()
    test_paused_session_drops_observations()
    test_resume_clears_state()
    test_resume_while_active_is_noop()
    test_top_candidate_and_empty_frames()
    test_resume_from_pin_slot()
    test_busy_controller_drops_frame()
    test_concurrent_producers_fire_once()
    test_worker_delivers_stream()
    test_worker_reports_source_errors()
    test_worker_suspends_while_paused()
    test_concurrent_resume_waits_for_paused_announcement()
    test_resume_before_paused_announcement_skips_it()
    test_replay_cli()
    test_replay_cli_rejects_malformed_lines()

    print("\n✅ All tests passed!")


if __name__ == "__main__":
    run_all_tests()
