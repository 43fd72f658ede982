"""
Operating mode of the vitals pipeline.

Resolved once from settings when the session registry is built and never
changed afterwards; every session in the process uses the same mode.
"""
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from triage.config import Settings

MOCK_BRIDGE_PATH = Path(__file__).resolve().parent / "services" / "mock_bridge.py"
_MOCK_ALIASES = ("mock", "default")


@dataclass(frozen=True)
class VideoApiMode:
    url: str
    api_key: Optional[str] = None
    name = "video_api"
    real_presage = True


@dataclass(frozen=True)
class PerFrameApiMode:
    url: str
    api_key: Optional[str] = None
    name = "api"
    real_presage = True


@dataclass(frozen=True)
class BridgeMode:
    path: str
    api_key: Optional[str] = None
    mock: bool = False
    name = "bridge"

    @property
    def real_presage(self) -> bool:
        return not self.mock


@dataclass(frozen=True)
class SimulationMode:
    name = "simulation"
    real_presage = False


OperatingMode = Union[VideoApiMode, PerFrameApiMode, BridgeMode, SimulationMode]


def _configured(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_mode(settings: Settings) -> OperatingMode:
    video_url = _configured(settings.presage_video_api_url)
    if video_url:
        return VideoApiMode(
            url=video_url,
            api_key=_configured(settings.presage_video_api_key) or _configured(settings.presage_api_key),
        )
    frame_url = _configured(settings.presage_api_url)
    if frame_url:
        return PerFrameApiMode(url=frame_url, api_key=_configured(settings.presage_api_key))
    bridge_path = _configured(settings.presage_bridge_path)
    if bridge_path:
        mock = bridge_path.lower() in _MOCK_ALIASES
        return BridgeMode(
            path=str(MOCK_BRIDGE_PATH) if mock else bridge_path,
            api_key=_configured(settings.presage_api_key),
            mock=mock,
        )
    return SimulationMode()


def bridge_command(mode: BridgeMode) -> list[str]:
    """argv for the bridge child; script paths get a wrapping interpreter."""
    suffix = Path(mode.path).suffix.lower()
    if suffix == ".py":
        return [sys.executable, mode.path]
    if suffix in (".js", ".mjs", ".cjs"):
        return ["node", mode.path]
    return [mode.path]
