"""Speed and vibration unit conversions."""

from __future__ import annotations

import math

from mcp_server_vibsim.models import DisplayUnits

MM_PER_INCH = 25.4
STANDARD_GRAVITY = 9.80665


def rpm_to_hz(rpm: float) -> float:
    return rpm / 60.0


def hz_to_rpm(hz: float) -> float:
    return hz * 60.0


def mmps_to_inps(value: float) -> float:
    return value / MM_PER_INCH


def inps_to_mmps(value: float) -> float:
    return value * MM_PER_INCH


def g_to_ms2(value: float) -> float:
    return value * STANDARD_GRAVITY


def ms2_to_g(value: float) -> float:
    return value / STANDARD_GRAVITY


def accel_to_velocity(accel: float, dominant_freq_hz: float) -> float:
    """Single-tone integration: v = a / (2π·f). Returns 0 for f ≤ 0."""
    if dominant_freq_hz <= 0:
        return 0.0
    return accel / (2.0 * math.pi * dominant_freq_hz)


def convert_machine_units(
    value: float,
    from_units: DisplayUnits | str,
    to_units: DisplayUnits | str,
) -> float:
    """Convert between the simulator's display units.

    Acceleration ↔ velocity conversions assume a 1 Hz reference tone; they
    exist to keep display scales comparable, not for quantitative work.
    """
    src = DisplayUnits(from_units)
    dst = DisplayUnits(to_units)
    if src == dst:
        return value

    if src == DisplayUnits.M_PER_S2 and dst == DisplayUnits.MM_PER_S:
        return accel_to_velocity(value, 1.0) * 1000.0
    if src == DisplayUnits.M_PER_S2 and dst == DisplayUnits.IN_PER_S:
        return accel_to_velocity(value, 1.0) * 39.3701
    if src == DisplayUnits.MM_PER_S and dst == DisplayUnits.IN_PER_S:
        return mmps_to_inps(value)
    if src == DisplayUnits.IN_PER_S and dst == DisplayUnits.MM_PER_S:
        return inps_to_mmps(value)
    if src == DisplayUnits.MM_PER_S and dst == DisplayUnits.M_PER_S2:
        return (value / 1000.0) * 2.0 * math.pi
    # in/s → m/s²
    return (value * MM_PER_INCH / 1000.0) * 2.0 * math.pi
