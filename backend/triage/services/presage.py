"""
Biometric scan sessions and routing to the active vitals backend.

A SessionRegistry owns every active session for the process. The operating
mode is fixed when the registry is built:

    video_api   buffer frames, answer with synthetic readings for live
                feedback, encode + upload the video once on stop
    api         one remote call per frame
    bridge      one child process per session, one reply line per frame
    simulation  synthetic readings only

Sessions go absent -> active -> absent. Stop always removes the session and
always tears down its bridge, whatever else fails.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from triage.config import Settings, get_settings
from triage.errors import SessionNotFound
from triage.models import BiometricReading, BiometricSummary, SummarySource
from triage.modes import (
    BridgeMode,
    OperatingMode,
    PerFrameApiMode,
    SimulationMode,
    VideoApiMode,
    bridge_command,
    resolve_mode,
)
from triage.services.bridge import BridgeProcess, decode_reply
from triage.services.synthetic import generate_reading, new_baselines, session_rng
from triage.services.video import assemble_video
from triage.services.vitals_api import ReadingDefaults, VitalsApiClient

logger = logging.getLogger(__name__)

VALID_CONFIDENCE = 0.7  # readings must be strictly above this to count


@dataclass
class BiometricSession:
    id: str
    start_time: float  # epoch ms
    baseline_bpm: float
    baseline_hrv: float
    rng: random.Random
    readings: list[BiometricReading] = field(default_factory=list)
    bridge: Optional[BridgeProcess] = None  # bridge mode only
    frames: Optional[list[str]] = None  # video_api mode only


def summarize(
    readings: list[BiometricReading],
    start_time_ms: float,
    now_ms: float,
    source: Optional[SummarySource] = None,
) -> BiometricSummary:
    """Aggregate BPM/HRV over the readings with confidence above VALID_CONFIDENCE only."""
    scan_duration = round((now_ms - start_time_ms) / 1000)
    valid = [r for r in readings if r.confidence > VALID_CONFIDENCE]
    if not valid:
        return BiometricSummary(
            scan_duration=scan_duration,
            total_readings=len(readings),
            valid_readings=0,
            source=source,
        )
    bpm = [r.bpm for r in valid]
    hrv = [r.hrv for r in valid]
    return BiometricSummary(
        avg_bpm=round(sum(bpm) / len(bpm)),
        avg_hrv=round(sum(hrv) / len(hrv)),
        min_bpm=round(min(bpm)),
        max_bpm=round(max(bpm)),
        scan_duration=scan_duration,
        total_readings=len(readings),
        valid_readings=len(valid),
        source=source,
    )


class SessionRegistry:
    def __init__(
        self,
        mode: OperatingMode,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.mode = mode
        self.settings = settings or get_settings()
        self._clock = clock
        self._sessions: dict[str, BiometricSession] = {}
        self._defaults = ReadingDefaults.from_settings(self.settings)
        self._client: Optional[VitalsApiClient] = None
        if isinstance(mode, VideoApiMode):
            self._client = VitalsApiClient(mode.url, mode.api_key, self.settings.video_http_timeout_seconds, transport)
        elif isinstance(mode, PerFrameApiMode):
            self._client = VitalsApiClient(mode.url, mode.api_key, self.settings.vitals_http_timeout_seconds, transport)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "SessionRegistry":
        return cls(resolve_mode(settings), settings, **kwargs)

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> BiometricSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _summary_source(self) -> SummarySource:
        return SummarySource.presage if self.mode.real_presage else SummarySource.fallback

    async def start_session(self, session_id: str) -> dict:
        if not session_id:
            raise ValueError("session_id is required")
        rng = session_rng(session_id, self.settings.simulation_seed)
        baseline_bpm, baseline_hrv = new_baselines(rng)
        session = BiometricSession(
            id=session_id,
            start_time=self._now_ms(),
            baseline_bpm=baseline_bpm,
            baseline_hrv=baseline_hrv,
            rng=rng,
        )
        if isinstance(self.mode, BridgeMode):
            session.bridge = await BridgeProcess.spawn(bridge_command(self.mode), session_id, self.mode.api_key)
        elif isinstance(self.mode, VideoApiMode):
            session.frames = []

        previous = self._sessions.get(session_id)
        self._sessions[session_id] = session
        if previous is not None:
            logger.warning("Session %s restarted, discarding previous state", session_id)
            await self._close_bridge(previous)
        logger.info("Session %s started (%s)", session_id, self.mode.name)
        return {"status": "ready"}

    async def process_frame(self, session_id: str, frame: str, timestamp: int) -> BiometricReading:
        session = self.get(session_id)
        mode = self.mode
        if isinstance(mode, VideoApiMode):
            # Real measurement happens on stop; synthetic reading keeps the UI live
            session.frames.append(frame)
            reading = self._synthetic_reading(session, timestamp)
        elif isinstance(mode, PerFrameApiMode):
            reading = await self._client.fetch_reading(frame, timestamp, self._defaults)
        elif isinstance(mode, BridgeMode):
            line = await session.bridge.request(frame, timestamp, self.settings.bridge_timeout_seconds)
            reading = decode_reply(line, timestamp, self._defaults)
        elif isinstance(mode, SimulationMode):
            reading = self._synthetic_reading(session, timestamp)
        else:
            raise TypeError(f"Unknown operating mode: {mode!r}")
        session.readings.append(reading)
        return reading

    async def stop_session(self, session_id: str) -> BiometricSummary:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        stopped_at = self._now_ms()
        try:
            if isinstance(self.mode, VideoApiMode) and session.frames:
                return await self._summarize_video(session, stopped_at)
        finally:
            session.frames = None
            await self._close_bridge(session)

        source = self._summary_source()
        if isinstance(self.mode, VideoApiMode):
            source = SummarySource.fallback  # no frames were uploaded
        summary = summarize(session.readings, session.start_time, stopped_at, source)
        logger.info(
            "Session %s stopped: %d/%d valid readings, avg %d bpm",
            session_id, summary.valid_readings, summary.total_readings, summary.avg_bpm,
        )
        return summary

    async def _summarize_video(self, session: BiometricSession, stopped_at: float) -> BiometricSummary:
        settings = self.settings
        video = await asyncio.to_thread(
            assemble_video,
            session.frames,
            settings.video_fps,
            settings.ffmpeg_binary,
            settings.ffmpeg_timeout_seconds,
        )
        summary = await self._client.fetch_video_summary(video, session.start_time, stopped_at)
        logger.info("Session %s video summary: avg %d bpm over %d frames", session.id, summary.avg_bpm, len(session.frames))
        return summary

    def _synthetic_reading(self, session: BiometricSession, timestamp: int) -> BiometricReading:
        elapsed = (timestamp - session.start_time) / 1000
        return generate_reading(session.baseline_bpm, session.baseline_hrv, elapsed, timestamp, session.rng)

    async def _close_bridge(self, session: BiometricSession) -> None:
        if session.bridge is None:
            return
        try:
            await session.bridge.close(self.settings.bridge_shutdown_grace_seconds)
        except Exception:
            # summary is still built from the collected readings
            logger.warning("Bridge teardown for session %s failed", session.id, exc_info=True)

    async def close(self) -> None:
        """Tear down every remaining session; called on application shutdown."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await self._close_bridge(session)
        if sessions:
            logger.info("Closed %d active sessions on shutdown", len(sessions))
