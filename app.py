"""
Replay a recorded classifier stream through a pin session.

Each line of the input file is a JSON list of results for one frame, ordered
by descending confidence, e.g.
    [{"candidate_id": "mustang_gt", "confidence": 0.91, "outcome": "RECOGNIZED"}]
An empty list means nothing was recognized in that frame.
"""
import argparse
import json
import logging
import sys
from typing import Iterator, List

from domain.models import RawObservation
from trust.config import PinConfig
from utils.app_logging import setup_logging
from workers.session_controller import SessionController

logger = logging.getLogger("replay")


def read_frames(path: str) -> Iterator[List[RawObservation]]:
    with open(path, "r", encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON ({e.msg})") from e
            if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
                raise ValueError(f"{path}:{line_no}: expected a JSON list of result objects")
            yield [RawObservation.from_dict(r) for r in records]


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("stream", help="JSON-lines file of per-frame classifier results")
    parser.add_argument("--window", type=int, dest="window_size", help="Observation window size")
    parser.add_argument("--threshold", type=float, help="Pin confidence threshold")
    parser.add_argument("--smoothing", choices=["mean", "ema"], help="Smoothing function")
    parser.add_argument("--ema-alpha", type=float, dest="ema_alpha", help="EMA weight of newest sample")
    parser.add_argument("--auto-resume", action="store_true",
                        help="Resume scanning immediately after each pin")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    parser.add_argument("--log-file", default=None, help="Optional rotating log file")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    config = PinConfig.from_mapping(vars(args))
    controller = SessionController(config)

    pins = []

    def on_pin(decision):
        pins.append(decision)
        logger.info(f"PIN #{len(pins)}: {decision.candidate_id} @ {decision.normalized_confidence:.3f}")
        if args.auto_resume:
            controller.resume()

    controller.pinDecided.connect(on_pin)

    for frame in read_frames(args.stream):
        controller.on_observation(frame)

    stats = controller.stats()
    print(
        f"Done: {stats.frames_received} frames, {stats.frames_processed} processed, "
        f"{stats.dropped_paused} dropped while paused, {stats.pins_fired} pins"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
