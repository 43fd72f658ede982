import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from triage.config import Settings, get_settings
from triage.errors import BridgeTimeout, SessionNotFound, VitalsError
from triage.models import (
    AnalyzeRequest,
    BiometricReading,
    BiometricSummary,
    DiagnosisResult,
    FrameRequest,
    ModeResponse,
    StartRequest,
    StartResponse,
    StopRequest,
)
from triage.services.presage import SessionRegistry
from triage.services.triage import TriageAnalyzer, fallback_result

logger = logging.getLogger(__name__)

_MODE_LABELS = {
    "video_api": "Presage Engine (batch video)",
    "api": "Presage API (per frame)",
    "bridge": "bridge",
    "simulation": "simulation",
}


def _log_environment(settings: Settings, registry: SessionRegistry) -> None:
    def _set(value: Optional[str]) -> str:
        return "SET" if value else "NOT SET"

    logger.info("Environment check:")
    logger.info("- PRESAGE_API_KEY: %s", _set(settings.presage_api_key))
    logger.info("- PRESAGE_API_URL (per-frame): %s", _set(settings.presage_api_url))
    logger.info("- PRESAGE_VIDEO_API_URL (batch): %s", _set(settings.presage_video_api_url))
    logger.info("- PRESAGE_BRIDGE_PATH: %s", settings.presage_bridge_path or "NOT SET")
    mode = registry.mode
    label = _MODE_LABELS[mode.name]
    if mode.name == "bridge":
        label += " (real Presage)" if mode.real_presage else " (mock)"
    logger.info("- Presage vitals: %s", label)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[SessionRegistry] = None,
    analyzer: Optional[TriageAnalyzer] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.registry = registry or SessionRegistry.from_settings(settings)
        app.state.analyzer = analyzer or TriageAnalyzer(settings)
        _log_environment(settings, app.state.registry)
        try:
            yield
        finally:
            await app.state.registry.close()

    app = FastAPI(title="Health Triage Vitals API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VitalsError)
    async def vitals_error_handler(request: Request, exc: VitalsError):
        if isinstance(exc, SessionNotFound):
            status = 404
        elif isinstance(exc, BridgeTimeout):
            status = 504
        else:
            status = 500
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    def get_registry(request: Request) -> SessionRegistry:
        return request.app.state.registry

    def get_analyzer(request: Request) -> TriageAnalyzer:
        return request.app.state.analyzer

    @app.get("/api/health")
    def health(request: Request):
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "mode": request.app.state.registry.mode.name,
        }

    @app.get("/api/biometrics/mode", response_model=ModeResponse, response_model_by_alias=True)
    def biometrics_mode(registry: SessionRegistry = Depends(get_registry)):
        return ModeResponse(mode=registry.mode.name, real_presage=registry.mode.real_presage)

    @app.post("/api/biometrics/start", response_model=StartResponse)
    async def start_biometrics(body: StartRequest, registry: SessionRegistry = Depends(get_registry)):
        if not body.session_id:
            raise HTTPException(400, "sessionId is required")
        return await registry.start_session(body.session_id)

    @app.post("/api/biometrics/frame", response_model=BiometricReading, response_model_exclude_none=True)
    async def process_frame(body: FrameRequest, registry: SessionRegistry = Depends(get_registry)):
        if not body.session_id or not body.frame:
            raise HTTPException(400, "sessionId and frame are required")
        timestamp = body.timestamp if body.timestamp is not None else int(time.time() * 1000)
        return await registry.process_frame(body.session_id, body.frame, timestamp)

    @app.post("/api/biometrics/stop", response_model=BiometricSummary, response_model_exclude_none=True)
    async def stop_biometrics(body: StopRequest, registry: SessionRegistry = Depends(get_registry)):
        if not body.session_id:
            raise HTTPException(400, "sessionId is required")
        return await registry.stop_session(body.session_id)

    @app.post("/api/diagnosis/analyze")
    async def analyze(body: AnalyzeRequest, analyzer: TriageAnalyzer = Depends(get_analyzer)):
        """Urgency assessment from intake + biometrics; degrades to MODERATE guidance on analyzer failure."""
        intake = body.intake
        if intake is None or intake.life_stage is None or intake.selected_body_parts is None:
            raise HTTPException(400, "Invalid intake data")
        try:
            result: DiagnosisResult = await analyzer.analyze(intake, body.biometrics)
        except Exception as e:
            logger.exception("Triage analysis failed")
            return JSONResponse(status_code=200, content=fallback_result(str(e)))
        return result.model_dump(by_alias=True, mode="json", exclude_none=True)

    return app


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


configure_logging(get_settings())
app = create_app()
