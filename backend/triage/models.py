from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


BPM_RANGE = (50, 120)
HRV_RANGE = (10, 80)


class BiometricReading(CamelModel):
    """One instantaneous vitals sample, already clamped."""
    bpm: int
    hrv: int
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: int  # epoch ms
    spo2: Optional[float] = None


class SummarySource(str, Enum):
    presage = "presage"
    fallback = "fallback"


class BiometricSummary(CamelModel):
    avg_bpm: int = 0
    avg_hrv: int = 0
    min_bpm: int = 0
    max_bpm: int = 0
    scan_duration: int = 0  # seconds
    total_readings: int = 0
    valid_readings: int = 0
    source: Optional[SummarySource] = None


class StartRequest(CamelModel):
    session_id: Optional[str] = None


class FrameRequest(CamelModel):
    session_id: Optional[str] = None
    frame: Optional[str] = None  # base64 JPEG, optionally a data: URL
    timestamp: Optional[int] = None


class StopRequest(CamelModel):
    session_id: Optional[str] = None


class StartResponse(BaseModel):
    status: str = "ready"


class ModeResponse(CamelModel):
    mode: str
    real_presage: bool


# Triage intake / diagnosis

class LifeStage(str, Enum):
    menstruating = "menstruating"
    pregnant = "pregnant"
    postpartum = "postpartum"
    perimenopause = "perimenopause"
    menopause = "menopause"
    postmenopause = "postmenopause"


class BodyPart(str, Enum):
    head = "head"
    thyroid = "thyroid"
    chest = "chest"
    breast = "breast"
    abdomen = "abdomen"
    pelvic = "pelvic"
    back = "back"
    extremities = "extremities"


class Symptom(CamelModel):
    id: str
    body_part: BodyPart
    description: str
    severity: int = Field(ge=0, le=10)
    duration: Optional[str] = None


class IntakeData(CamelModel):
    life_stage: Optional[LifeStage] = None
    selected_body_parts: Optional[list[BodyPart]] = None
    symptoms: list[Symptom] = []
    current_medications: list[str] = []
    additional_notes: Optional[str] = None


class UrgencyLevel(str, Enum):
    EMERGENCY = "EMERGENCY"
    URGENT = "URGENT"
    MODERATE = "MODERATE"
    LOW = "LOW"


DEFAULT_DISCLAIMER = (
    "This is a preliminary triage assessment, not a medical diagnosis. "
    "Always consult with a qualified healthcare provider."
)


class DiagnosisResult(CamelModel):
    urgency_level: UrgencyLevel = UrgencyLevel.MODERATE
    urgency_reason: str = "Unable to determine urgency"
    primary_assessment: str = "Assessment pending"
    differential_considerations: list[str] = []
    red_flags: list[str] = []
    recommendations: list[str] = ["Consult with a healthcare provider"]
    questions_for_doctor: list[str] = []
    specialty_referral: Optional[str] = None
    disclaimer: str = DEFAULT_DISCLAIMER


class AnalyzeRequest(CamelModel):
    intake: Optional[IntakeData] = None
    biometrics: Optional[BiometricSummary] = None
