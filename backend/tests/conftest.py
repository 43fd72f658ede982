# tests/conftest.py
import sys
from pathlib import Path

import pytest

from triage.config import Settings
from triage.modes import BridgeMode

BRIDGES = Path(__file__).resolve().parent / "bridges"

# ~400 KB of base64, several times a pipe buffer
LARGE_FRAME = "QUFB" * 100_000


class FakeClock:
    """Wall clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def bridge_mode(script: str, api_key=None) -> BridgeMode:
    return BridgeMode(path=str(BRIDGES / script), api_key=api_key)


def bridge_argv(script: str) -> list[str]:
    return [sys.executable, str(BRIDGES / script)]


@pytest.fixture
def settings() -> Settings:
    return make_settings(simulation_seed=1234)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
