"""Shared test fixtures for vibration simulator tests."""

from __future__ import annotations

import pytest

from mcp_server_vibsim.models import (
    AnalysisSettings,
    BearingGeometry,
    FaultConfig,
    GearGeometry,
    MachineConfig,
    Sensor,
    SynthesisParams,
    SynthesisPayload,
)


@pytest.fixture
def machine_1800() -> MachineConfig:
    """Machine at 1800 RPM (30 Hz shaft)."""
    return MachineConfig(rpm=1800.0)


@pytest.fixture
def bearing_8_roller() -> BearingGeometry:
    """8 rollers, 120 mm pitch, 15 mm rollers, 15° contact angle."""
    return BearingGeometry(rollers=8, pitch_dia_mm=120.0, roller_dia_mm=15.0, contact_angle_deg=15.0)


@pytest.fixture
def gear_32() -> GearGeometry:
    return GearGeometry(teeth=32)


@pytest.fixture
def small_synthesis() -> SynthesisParams:
    """Short, low-rate buffer so synthesis stays fast: 4096 samples."""
    return SynthesisParams(fs=4096.0, seconds=1.0, seed=42, noise_rms=0.02, block_size=1024)


@pytest.fixture
def two_sensors() -> tuple[Sensor, ...]:
    return (
        Sensor("de-x", "DE", "X"),
        Sensor("nde-x", "NDE", "X"),
    )


@pytest.fixture
def make_payload(small_synthesis, two_sensors):
    """Factory for small synthesis payloads with an overridable fault."""

    def _make(fault_id="unbalance", severity=0.5, **kwargs) -> SynthesisPayload:
        return SynthesisPayload(
            machine=kwargs.pop("machine", MachineConfig(rpm=1800.0)),
            sensors=kwargs.pop("sensors", two_sensors),
            fault=FaultConfig(id=fault_id, severity=severity, **kwargs.pop("fault_kwargs", {})),
            synthesis=kwargs.pop("synthesis", small_synthesis),
            analysis=kwargs.pop("analysis", AnalysisSettings(averages=4)),
            **kwargs,
        )

    return _make
