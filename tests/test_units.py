"""Tests for unit conversions and gear mesh helpers."""

import math

import pytest

from mcp_server_vibsim.analysis.gears import (
    ensure_gear_geometry,
    gear_mesh_frequency,
    gear_sideband_frequencies,
)
from mcp_server_vibsim.analysis.units import (
    accel_to_velocity,
    convert_machine_units,
    g_to_ms2,
    hz_to_rpm,
    inps_to_mmps,
    mmps_to_inps,
    ms2_to_g,
    rpm_to_hz,
)
from mcp_server_vibsim.errors import ConfigurationError
from mcp_server_vibsim.models import GearGeometry, MachineConfig


class TestSpeedConversions:
    def test_rpm_to_hz(self):
        assert rpm_to_hz(1800) == pytest.approx(30.0)

    def test_round_trip(self):
        assert hz_to_rpm(rpm_to_hz(1475.0)) == pytest.approx(1475.0)


class TestVibrationUnits:
    def test_mmps_to_inps(self):
        assert mmps_to_inps(25.4) == pytest.approx(1.0)
        assert inps_to_mmps(1.0) == pytest.approx(25.4)

    def test_gravity(self):
        assert g_to_ms2(1.0) == pytest.approx(9.80665)
        assert ms2_to_g(9.80665) == pytest.approx(1.0)

    def test_accel_to_velocity(self):
        assert accel_to_velocity(2 * math.pi, 1.0) == pytest.approx(1.0)

    def test_accel_to_velocity_zero_frequency(self):
        assert accel_to_velocity(5.0, 0.0) == 0.0

    def test_identity(self):
        assert convert_machine_units(3.2, "mm/s", "mm/s") == 3.2

    def test_mm_to_in(self):
        assert convert_machine_units(25.4, "mm/s", "in/s") == pytest.approx(1.0)

    def test_accel_to_mm(self):
        # 1 Hz reference tone: v = a / 2π, in mm/s
        assert convert_machine_units(2 * math.pi, "m/s2", "mm/s") == pytest.approx(1000.0)

    def test_mm_to_accel(self):
        assert convert_machine_units(1000.0, "mm/s", "m/s2") == pytest.approx(2 * math.pi)

    def test_unknown_units_raise(self):
        with pytest.raises(ValueError):
            convert_machine_units(1.0, "g", "mm/s")


class TestGears:
    def test_mesh_frequency(self, machine_1800, gear_32):
        assert gear_mesh_frequency(machine_1800, gear_32) == pytest.approx(960.0)

    def test_sidebands_sorted_and_symmetric(self, machine_1800, gear_32):
        sidebands = gear_sideband_frequencies(machine_1800, gear_32, count=2)
        assert sidebands == pytest.approx([900.0, 930.0, 990.0, 1020.0])

    def test_missing_geometry(self):
        with pytest.raises(ConfigurationError, match="gear mesh"):
            ensure_gear_geometry(None, "gear mesh")

    def test_zero_teeth(self):
        with pytest.raises(ConfigurationError):
            ensure_gear_geometry(GearGeometry(teeth=0))

    def test_machine_rejects_non_positive_rpm(self):
        with pytest.raises(ConfigurationError):
            MachineConfig(rpm=0)
