"""
Remote vitals endpoints: per-frame readings and batch video summaries.

Calls are stateless; each one opens its own httpx client. Missing reading
fields are filled from ReadingDefaults rather than failing the frame.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from triage.config import Settings
from triage.errors import BackendError
from triage.models import BPM_RANGE, HRV_RANGE, BiometricReading, BiometricSummary, SummarySource
from triage.services.synthetic import clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadingDefaults:
    bpm: float = 72
    hrv: float = 45
    confidence: float = 0.8

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReadingDefaults":
        return cls(bpm=settings.default_bpm, hrv=settings.default_hrv, confidence=settings.default_confidence)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


def decode_reading(
    payload: Any,
    timestamp: int,
    defaults: ReadingDefaults = ReadingDefaults(),
    bpm_range: tuple[float, float] = BPM_RANGE,
    hrv_range: tuple[float, float] = HRV_RANGE,
) -> BiometricReading:
    """
    Map a backend `{bpm?, hrv?, confidence?}` object onto a clamped reading.

    Any field that is absent or not a finite number takes its default; a
    payload that is not an object at all yields a reading built purely from
    defaults.
    """
    if not isinstance(payload, dict):
        payload = {}
    bpm = _number(payload.get("bpm"))
    hrv = _number(payload.get("hrv"))
    confidence = _number(payload.get("confidence"))
    spo2 = _number(payload.get("spo2"))
    return BiometricReading(
        bpm=round(clamp(defaults.bpm if bpm is None else bpm, *bpm_range)),
        hrv=round(clamp(defaults.hrv if hrv is None else hrv, *hrv_range)),
        confidence=clamp(defaults.confidence if confidence is None else confidence, 0.0, 1.0),
        timestamp=timestamp,
        spo2=spo2,
    )


def summary_from_video_response(data: Any, started_at_ms: float, now_ms: float) -> BiometricSummary:
    """
    Batch responses look like {"heart_rate": {avg, min, max, count}, "breathing_rate": {avg}}.

    Breathing rate stands in for HRV. Duration is the client-observed scan
    length, never taken from the response.
    """
    if not isinstance(data, dict):
        raise BackendError("Video vitals response is not a JSON object", body=str(data)[:500])
    heart = data.get("heart_rate") if isinstance(data.get("heart_rate"), dict) else {}
    breathing = data.get("breathing_rate") if isinstance(data.get("breathing_rate"), dict) else {}

    def _int(source: dict, key: str) -> int:
        value = _number(source.get(key))
        return round(value) if value is not None else 0

    count = _int(heart, "count")
    return BiometricSummary(
        avg_bpm=_int(heart, "avg"),
        avg_hrv=_int(breathing, "avg"),
        min_bpm=_int(heart, "min"),
        max_bpm=_int(heart, "max"),
        scan_duration=round((now_ms - started_at_ms) / 1000),
        total_readings=count,
        valid_readings=count,
        source=SummarySource.presage,
    )


class VitalsApiClient:
    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = dict(extra or {})
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"Vitals API request failed: {e}") from e
        if not r.is_success:
            logger.warning("Vitals API %s returned %d", self.url, r.status_code)
            raise BackendError(
                f"Vitals API returned {r.status_code}",
                status_code=r.status_code,
                body=r.text[:500],
            )
        return r

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError as e:
            raise BackendError("Vitals API returned invalid JSON", status_code=r.status_code, body=r.text[:500]) from e

    async def fetch_reading(
        self, frame: str, timestamp: int, defaults: ReadingDefaults = ReadingDefaults()
    ) -> BiometricReading:
        r = await self._post(json={"frame": frame, "timestamp": timestamp}, headers=self._headers())
        data = self._json(r)
        if not isinstance(data, dict):
            raise BackendError("Vitals API reading is not a JSON object", status_code=r.status_code, body=r.text[:500])
        return decode_reading(data, timestamp, defaults)

    async def fetch_video_summary(
        self, video: bytes, started_at_ms: float, now_ms: Optional[float] = None
    ) -> BiometricSummary:
        r = await self._post(content=video, headers=self._headers({"Content-Type": "video/mp4"}))
        data = self._json(r)
        if now_ms is None:
            now_ms = time.time() * 1000
        return summary_from_video_response(data, started_at_ms, now_ms)
