#!/usr/bin/env python3
"""
ECG Monitor – main entry point.

Runs the monitoring pipeline against a synthetic ECG source: samples are
buffered, BPM is derived once 100 samples are available, events are
classified, and everything is recorded against a monitoring session for
the selected patient.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --db URL             SQLAlchemy database URL (default: sqlite:///ecg_monitor.db)
    --patient-name STR   Register this patient and monitor them
    --patient-id INT     Monitor an existing patient instead
    --capacity INT       Rolling window capacity (default: 600)
    --threshold FLOAT    Complex amplitude threshold (default: 150)
    --rate FLOAT         Synthetic sample rate in Hz (default: 10)
    --heart-rate FLOAT   Synthetic heart rate in BPM (default: 72)
    --duration FLOAT     Stop after this many seconds (default: run until quit)
    --headless           Run without display window (log BPM to stdout)

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    m        – toggle the motor (sends ON / OFF)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

import cv2

from ecg_monitor.config import MonitorConfig, SourceConfig
from ecg_monitor.controller import MonitorController
from ecg_monitor.exceptions import ConfigurationError, PersistenceError
from ecg_monitor.ingestion import Observer
from ecg_monitor.session import DEFAULT_NOTES
from ecg_monitor.store import SqlStore
from ecg_monitor.transport import SyntheticSignalSource
from ecg_monitor.visualizer import WaveformView

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("ecg_monitor")

WINDOW_NAME = "ECG Monitor"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Streaming ECG monitor with session recording",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--db", default="sqlite:///ecg_monitor.db",
                        help="SQLAlchemy database URL")
    parser.add_argument("--patient-name", default="Demo patient",
                        help="Register a patient with this name")
    parser.add_argument("--patient-age", type=int, default=45)
    parser.add_argument("--patient-height", type=float, default=175.0,
                        help="Patient height in cm")
    parser.add_argument("--patient-id", type=int, default=None,
                        help="Monitor an existing patient (skips registration)")
    parser.add_argument("--notes", default=DEFAULT_NOTES,
                        help="Session notes")
    parser.add_argument("--broker", default="localhost:1883",
                        help="Broker address reported by the source")
    parser.add_argument("--capacity", type=int, default=600,
                        help="Rolling window capacity in samples")
    parser.add_argument("--threshold", type=float, default=150.0,
                        help="Complex amplitude threshold")
    parser.add_argument("--rate", type=float, default=10.0,
                        help="Synthetic sample rate in Hz")
    parser.add_argument("--heart-rate", type=float, default=72.0,
                        help="Synthetic heart rate in BPM")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log BPM to stdout only")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    try:
        config = MonitorConfig(capacity=args.capacity, threshold=args.threshold)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    try:
        store = SqlStore(args.db)
    except PersistenceError as exc:
        logger.error("%s", exc)
        return 1

    view = WaveformView(capacity=config.capacity) if not args.headless else None
    controller = MonitorController(store, config=config, observer=view or Observer())

    patient_id = args.patient_id
    if patient_id is None:
        patient_id = controller.register_patient(
            args.patient_name, args.patient_age, args.patient_height
        )
    if patient_id is None or controller.select_patient(patient_id, args.notes) is None:
        logger.error("Could not start a monitoring session.")
        store.close()
        return 1

    source = SyntheticSignalSource(heart_rate=args.heart_rate, sample_rate=args.rate)
    if not controller.connect(source, SourceConfig(url=args.broker)):
        controller.shutdown()
        store.close()
        return 1

    logger.info("Monitoring patient %d.  Press 'q' or ESC to quit.", patient_id)
    if view is not None:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)

    started = time.monotonic()
    last_log = 0.0
    motor_on = False

    try:
        while controller.is_connected:
            now = time.monotonic()
            if args.duration is not None and now - started >= args.duration:
                logger.info("Duration reached.")
                break

            if view is None:
                if now - last_log >= 1.0:
                    last_log = now
                    ts = time.strftime("%H:%M:%S")
                    result = controller.loop.processor.last_result if controller.loop else None
                    if result is not None:
                        print(f"[{ts}] BPM={result.bpm}  complexes={result.complex_count}  "
                              f"samples={result.sample_count}")
                    else:
                        print(f"[{ts}] Waiting for signal…  buffered={len(controller.buffer)}")
                time.sleep(0.05)
                continue

            cv2.imshow(WINDOW_NAME, view.render())
            key = cv2.waitKey(30) & 0xFF
            if key in (ord("q"), 27):          # q or ESC
                logger.info("Quit requested by user.")
                break
            elif key == ord("m"):
                motor_on = not motor_on
                controller.control_motor("on" if motor_on else "off")

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        controller.shutdown()
        store.close()
        if view is not None:
            cv2.destroyAllWindows()

    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
