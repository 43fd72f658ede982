from triage.models import BiometricReading, SummarySource
from triage.services.presage import summarize

START = 1_700_000_000_000


def _readings(bpms, confidences, hrvs=None):
    hrvs = hrvs or [40] * len(bpms)
    return [
        BiometricReading(bpm=b, hrv=h, confidence=c, timestamp=START + i * 1000)
        for i, (b, c, h) in enumerate(zip(bpms, confidences, hrvs))
    ]


def test_only_confident_readings_are_aggregated():
    readings = _readings([70, 80, 72, 68], [0.9, 0.5, 0.95, 0.71], hrvs=[40, 10, 50, 45])
    summary = summarize(readings, START, START + 4000)
    assert summary.valid_readings == 3
    assert summary.total_readings == 4
    assert summary.avg_bpm == 70
    assert summary.avg_hrv == 45
    assert summary.min_bpm == 68
    assert summary.max_bpm == 72
    assert summary.scan_duration == 4


def test_confidence_threshold_is_exclusive():
    summary = summarize(_readings([90, 60], [0.7, 0.700001]), START, START)
    assert summary.valid_readings == 1
    assert summary.avg_bpm == 60


def test_no_valid_readings_zeroes_vitals():
    readings = _readings([70, 80, 90], [0.7, 0.2, 0.65])
    summary = summarize(readings, START, START + 12_400, SummarySource.fallback)
    assert (summary.avg_bpm, summary.avg_hrv, summary.min_bpm, summary.max_bpm) == (0, 0, 0, 0)
    assert summary.valid_readings == 0
    assert summary.total_readings == 3
    assert summary.scan_duration == 12
    assert summary.source == SummarySource.fallback


def test_empty_session():
    summary = summarize([], START, START + 1600)
    assert summary.total_readings == 0
    assert summary.scan_duration == 2


def test_summary_serializes_camel_case():
    body = summarize(_readings([70], [0.9]), START, START + 1000).model_dump(by_alias=True)
    assert set(body) >= {"avgBpm", "avgHrv", "minBpm", "maxBpm", "scanDuration", "totalReadings", "validReadings"}
