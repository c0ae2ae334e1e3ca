"""Gear mesh frequency helpers."""

from __future__ import annotations

from mcp_server_vibsim.analysis.units import rpm_to_hz
from mcp_server_vibsim.errors import ConfigurationError
from mcp_server_vibsim.models import GearGeometry, MachineConfig


def ensure_gear_geometry(gear: GearGeometry | None, fault_label: str = "gear") -> GearGeometry:
    if gear is None:
        raise ConfigurationError(f"Gear geometry required for {fault_label} faults.")
    if gear.teeth < 1:
        raise ConfigurationError(f"Gear tooth count must be ≥ 1, got {gear.teeth}")
    return gear


def gear_mesh_frequency(machine: MachineConfig, gear: GearGeometry) -> float:
    """GMF = shaft frequency × tooth count (Hz)."""
    return rpm_to_hz(machine.rpm) * gear.teeth


def gear_sideband_frequencies(
    machine: MachineConfig,
    gear: GearGeometry,
    count: int = 3,
) -> list[float]:
    """Sorted sideband frequencies GMF ± k·f_r for k = 1 … count."""
    gmf = gear_mesh_frequency(machine, gear)
    shaft_hz = rpm_to_hz(machine.rpm)
    freqs: list[float] = []
    for k in range(1, count + 1):
        freqs.append(gmf - k * shaft_hz)
        freqs.append(gmf + k * shaft_hz)
    return sorted(freqs)
