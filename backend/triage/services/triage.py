import json
import logging
import re
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from triage.config import Settings, get_settings
from triage.models import BiometricSummary, DiagnosisResult, IntakeData, UrgencyLevel

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a medical triage assistant specialised in women's health.
You see a patient's life stage, affected body regions, symptoms, medications and,
when available, camera-based heart rate readings.
Respond with ONE JSON object only, with these keys:
urgencyLevel (EMERGENCY | URGENT | MODERATE | LOW), urgencyReason, primaryAssessment,
differentialConsiderations (list), redFlags (list), recommendations (list),
questionsForDoctor (list), specialtyReferral (string or null), disclaimer.
Women often present cardiac distress atypically (jaw, neck or upper back pain, fatigue, nausea).
Never state a diagnosis as certain. No text outside the JSON."""

LIFE_STAGE_LABELS = {
    "menstruating": "Menstruating (regular cycles)",
    "pregnant": "Currently Pregnant",
    "postpartum": "Postpartum (0-12 months after birth)",
    "perimenopause": "Perimenopause (transitional phase)",
    "menopause": "Menopause (no period for 12+ months)",
    "postmenopause": "Postmenopause",
}

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

UNPARSEABLE_RESULT = DiagnosisResult(
    urgency_level=UrgencyLevel.MODERATE,
    urgency_reason="Unable to complete full analysis",
    primary_assessment=(
        "The AI was unable to provide a complete assessment. Please consult with a healthcare provider."
    ),
    recommendations=["Consult with a healthcare provider for proper evaluation"],
)


def fallback_result(error: Optional[str] = None) -> dict:
    """Safe MODERATE guidance returned when the analyzer is unavailable."""
    result = DiagnosisResult(
        urgency_level=UrgencyLevel.MODERATE,
        urgency_reason="Unable to complete full AI analysis - showing general guidance",
        primary_assessment=(
            "Based on your reported symptoms, please consult with a healthcare provider for proper "
            "evaluation. The AI analysis encountered a technical issue."
        ),
        recommendations=[
            "Contact your primary care physician",
            "If experiencing severe symptoms, seek immediate medical attention",
            "Bring your biometric readings to your appointment",
        ],
        disclaimer=(
            "This assessment could not be fully completed due to a technical issue. "
            "Please consult with a qualified healthcare provider."
        ),
    ).model_dump(by_alias=True, mode="json")
    result["_error"] = error or "Unknown error"
    return result


def build_prompt(intake: IntakeData, biometrics: Optional[BiometricSummary]) -> str:
    stage = intake.life_stage.value if intake.life_stage else "unknown"
    parts = [
        "## PATIENT DATA",
        f"Life stage: {LIFE_STAGE_LABELS.get(stage, stage)}",
        "Affected body regions: " + (", ".join(p.value for p in intake.selected_body_parts or []) or "none"),
        "Reported symptoms:",
    ]
    if intake.symptoms:
        parts += [
            f"- {s.body_part.value.upper()}: {s.description} (severity: {s.severity}/10"
            + (f", for {s.duration})" if s.duration else ")")
            for s in intake.symptoms
        ]
    else:
        parts.append("No specific symptoms described")
    parts.append("Current medications: " + (", ".join(intake.current_medications) or "None reported"))
    if intake.additional_notes:
        parts.append(f"Additional notes: {intake.additional_notes}")

    if biometrics and biometrics.total_readings:
        confidence = round(biometrics.valid_readings / biometrics.total_readings * 100)
        parts += [
            f"## BIOMETRICS (camera-based PPG, {biometrics.scan_duration}s scan)",
            f"Average heart rate: {biometrics.avg_bpm} bpm (range {biometrics.min_bpm}-{biometrics.max_bpm})",
            f"Average HRV: {biometrics.avg_hrv} ms",
            f"Reading confidence: {confidence}%",
        ]
    else:
        parts.append("## BIOMETRICS\nNo biometric data available.")
    return "\n".join(parts)


def parse_diagnosis(text: str) -> DiagnosisResult:
    """Decode model output, tolerating markdown fences and missing fields."""
    match = _FENCE.search(text)
    if match:
        text = match.group(1).strip()
    try:
        data: Any = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("diagnosis is not a JSON object")
        # Drop explicit nulls so field defaults apply
        return DiagnosisResult.model_validate({k: v for k, v in data.items() if v is not None})
    except (ValueError, ValidationError):
        logger.error("Failed to parse triage response: %.500s", text)
        return UNPARSEABLE_RESULT.model_copy(deep=True)


class TriageAnalyzer:
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    async def _ollama_chat(self, messages: list[dict]) -> str:
        url = f"{self.settings.ollama_base_url.rstrip('/')}/api/chat"
        payload = {
            "model": self.settings.ollama_model,
            "messages": messages,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0.3},
        }
        async with httpx.AsyncClient(timeout=self.settings.ollama_timeout_seconds, transport=self._transport) as client:
            r = await client.post(url, json=payload)
            r.raise_for_status()
            data = r.json()
            return data.get("message", {}).get("content", "").strip()

    async def analyze(self, intake: IntakeData, biometrics: Optional[BiometricSummary]) -> DiagnosisResult:
        """
        Ask the local model for an urgency assessment.

        Transport and HTTP errors propagate; the route substitutes fallback_result().
        """
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(intake, biometrics)},
        ]
        content = await self._ollama_chat(messages)
        return parse_diagnosis(content)
