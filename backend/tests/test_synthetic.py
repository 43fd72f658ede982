import random

import pytest

from triage.services.synthetic import clamp, generate_reading, new_baselines, session_rng


def test_readings_stay_within_clamps():
    rng = random.Random(7)
    for baseline_bpm, baseline_hrv in [(40, 5), (72, 45), (150, 120)]:
        for second in range(0, 300):
            r = generate_reading(baseline_bpm, baseline_hrv, second * 0.7, 0, rng)
            assert 50 <= r.bpm <= 120
            assert 10 <= r.hrv <= 80
            assert 0.0 <= r.confidence <= 1.0


def test_tighter_band_is_respected():
    rng = random.Random(3)
    for second in range(100):
        r = generate_reading(130, 90, second, 0, rng, bpm_range=(55, 110), hrv_range=(15, 70))
        assert r.bpm == 110
        assert r.hrv == 70


def test_reading_tracks_baseline_within_generator_bound():
    rng = random.Random(11)
    for second in range(60):
        r = generate_reading(75, 45, second, 0, rng)
        # 3 + 2 from the oscillations, 2 of noise, 0.5 of rounding
        assert abs(r.bpm - 75) <= 7.5
        assert abs(r.hrv - 45) <= 11.5


def test_confidence_rises_with_calibration():
    rng = random.Random(5)
    early = [generate_reading(72, 45, 0, 0, rng).confidence for _ in range(50)]
    late = [generate_reading(72, 45, 45, 0, rng).confidence for _ in range(50)]
    assert all(0.55 <= c <= 0.65 for c in early)
    assert all(0.85 <= c <= 0.95 for c in late)


def test_negative_elapsed_is_treated_as_scan_start():
    r = generate_reading(72, 45, -30, 0, random.Random(1))
    assert r.confidence <= 0.65


def test_reading_keeps_capture_timestamp():
    assert generate_reading(72, 45, 1.0, 1_700_000_001_000).timestamp == 1_700_000_001_000


def test_baselines_range():
    rng = random.Random(0)
    for _ in range(200):
        bpm, hrv = new_baselines(rng)
        assert 68 <= bpm < 83
        assert 35 <= hrv < 60


def test_seeded_session_streams_are_reproducible_and_distinct():
    a1 = session_rng("s1", seed=42)
    a2 = session_rng("s1", seed=42)
    b = session_rng("s2", seed=42)
    assert new_baselines(a1) == new_baselines(a2)
    assert new_baselines(session_rng("s1", seed=42)) != new_baselines(b)


@pytest.mark.parametrize("value, expected", [(-1, 0), (0.5, 0.5), (2, 1)])
def test_clamp(value, expected):
    assert clamp(value, 0, 1) == expected
