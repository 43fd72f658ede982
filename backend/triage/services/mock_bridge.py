#!/usr/bin/env python3
"""
Mock Presage bridge for development and testing.

Reads JSON lines from stdin: {"frame": "<base64>", "timestamp": <ms>}
Writes JSON lines to stdout: {"bpm": <n>, "hrv": <n>, "confidence": <0-1>}
Exits on {"end": true} or when stdin closes.

Selected with PRESAGE_BRIDGE_PATH=mock; the server runs it with its own
interpreter.
"""
import json
import logging
import math
import random
import sys

logger = logging.getLogger("mock_bridge")


def reply_for(timestamp: float, first_timestamp: float, baseline_bpm: float, baseline_hrv: float) -> dict:
    elapsed = max(0.0, (timestamp - first_timestamp) / 1000)
    bpm = round(baseline_bpm + math.sin(elapsed * 0.3) * 3 + random.uniform(-2, 2))
    hrv = round(baseline_hrv + math.sin(elapsed * 0.2) * 8 + random.uniform(-3, 3))
    confidence = min(0.6 + min(elapsed / 30, 1.0) * 0.3 + random.uniform(-0.05, 0.05), 0.98)
    return {
        "bpm": max(55, min(110, bpm)),
        "hrv": max(15, min(70, hrv)),
        "confidence": round(max(0.3, confidence), 3),
    }


def main() -> int:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="[mock-bridge] %(message)s")
    baseline_bpm = 70 + random.random() * 12
    baseline_hrv = 40 + random.random() * 20
    first_timestamp = None
    frames = 0

    for line in sys.stdin:
        try:
            msg = json.loads(line)
        except ValueError:
            continue
        if not isinstance(msg, dict):
            continue
        if msg.get("end") is True:
            break
        timestamp = msg.get("timestamp")
        if not isinstance(msg.get("frame"), str) or isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            continue
        if first_timestamp is None:
            first_timestamp = timestamp
        frames += 1
        sys.stdout.write(json.dumps(reply_for(timestamp, first_timestamp, baseline_bpm, baseline_hrv)) + "\n")
        sys.stdout.flush()

    logger.info("session ended after %d frames", frames)
    return 0


if __name__ == "__main__":
    sys.exit(main())
