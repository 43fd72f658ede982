"""
Synthetic vitals: physiologically plausible but fabricated BPM/HRV.

Used by simulation mode and for live feedback while video_api mode buffers
frames. Each session keeps its own baselines and random stream so repeated
readings within a session drift coherently instead of jumping around.
"""
import math
import random
from typing import Optional

from triage.models import BPM_RANGE, HRV_RANGE, BiometricReading


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def new_baselines(rng: random.Random) -> tuple[float, float]:
    """Per-session resting baselines: bpm in [68, 83), hrv in [35, 60)."""
    return 68 + rng.random() * 15, 35 + rng.random() * 25


def session_rng(session_id: str, seed: Optional[int] = None) -> random.Random:
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{session_id}")


def generate_reading(
    baseline_bpm: float,
    baseline_hrv: float,
    elapsed: float,
    timestamp: int,
    rng: Optional[random.Random] = None,
    bpm_range: tuple[float, float] = BPM_RANGE,
    hrv_range: tuple[float, float] = HRV_RANGE,
) -> BiometricReading:
    """
    Reading at `elapsed` seconds into the scan.

    A slow breathing-like oscillation plus a slower drift ride on the baseline,
    with bounded uniform noise. Confidence climbs from ~0.6 to ~0.9 over the
    first 30 seconds to mimic sensor calibration.
    """
    rng = rng or random.Random()
    t = max(0.0, elapsed)

    bpm = round(baseline_bpm + 3 * math.sin(0.3 * t) + 2 * math.sin(0.1 * t) + rng.uniform(-2, 2))
    hrv = round(baseline_hrv + 8 * math.sin(0.2 * t) + rng.uniform(-3, 3))
    confidence = 0.6 + min(t / 30, 0.3) + rng.uniform(-0.05, 0.05)

    return BiometricReading(
        bpm=clamp(bpm, *bpm_range),
        hrv=clamp(hrv, *hrv_range),
        confidence=clamp(confidence, 0.0, 1.0),
        timestamp=timestamp,
    )
