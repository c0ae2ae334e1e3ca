"""Tests for the fault plan library."""

import pytest

from mcp_server_vibsim.analysis.faults import (
    BASE_AMPLITUDE,
    FAULT_LIBRARY,
    build_fault_plan,
    fault_presets,
)
from mcp_server_vibsim.errors import ConfigurationError
from mcp_server_vibsim.models import FaultConfig, FaultId, GearGeometry, MachineConfig

BEARING_FAULTS = [
    FaultId.BEARING_BPFO,
    FaultId.BEARING_BPFI,
    FaultId.BEARING_BSF,
    FaultId.BEARING_FTF,
]
GEAR_FAULTS = [FaultId.GEAR_MESH, FaultId.GEAR_CHIPPED]


def _fault(fault_id, severity=0.5, **kwargs):
    return FaultConfig(id=fault_id, severity=severity, **kwargs)


class TestLibraryCoverage:
    def test_every_fault_id_has_an_entry(self):
        assert set(FAULT_LIBRARY) == set(FaultId)

    def test_presets_in_library_order(self):
        presets = fault_presets()
        assert [p.id for p in presets] == list(FAULT_LIBRARY)
        assert all(p.label and p.indicators for p in presets)

    def test_descriptor_to_dict(self):
        data = fault_presets()[0].to_dict()
        assert data["id"] == "unbalance"
        assert isinstance(data["indicators"], list)

    @pytest.mark.parametrize(
        "fault_id",
        [f for f in FaultId if f not in BEARING_FAULTS and f not in GEAR_FAULTS],
    )
    def test_geometry_free_faults_build(self, fault_id, machine_1800):
        plan = build_fault_plan(machine_1800, _fault(fault_id))
        assert plan.harmonics
        assert plan.broadband_rms >= 0
        assert plan.cue.mode


class TestUnknownFault:
    def test_unknown_id_gives_healthy_plan(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("rotor_rub"))
        assert len(plan.harmonics) == 1
        assert plan.markers == ()
        assert plan.harmonics[0].order == 1
        assert plan.harmonics[0].amplitude == pytest.approx(BASE_AMPLITUDE * 0.1)

    def test_unknown_id_kept_verbatim(self):
        assert _fault("Rotor_Rub").id == "Rotor_Rub"

    def test_known_id_is_normalized(self):
        assert _fault(" Unbalance ").id is FaultId.UNBALANCE


class TestSeverity:
    def test_severity_is_clamped(self):
        assert _fault("unbalance", severity=3.0).severity == 1.0
        assert _fault("unbalance", severity=-1.0).severity == 0.0

    def test_unbalance_scales_with_severity(self, machine_1800):
        low = build_fault_plan(machine_1800, _fault("unbalance", 0.2))
        high = build_fault_plan(machine_1800, _fault("unbalance", 0.8))
        assert high.harmonics[0].amplitude == pytest.approx(4 * low.harmonics[0].amplitude)

    def test_unbalance_dominant_1x(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("unbalance", 1.0))
        assert plan.harmonics[0].order == 1
        assert plan.harmonics[0].amplitude == pytest.approx(BASE_AMPLITUDE * 0.8)
        assert plan.markers[0].frequency_hz == pytest.approx(30.0)


class TestBearingFaults:
    @pytest.mark.parametrize("fault_id", BEARING_FAULTS)
    def test_missing_geometry_raises(self, fault_id, machine_1800):
        with pytest.raises(ConfigurationError):
            build_fault_plan(machine_1800, _fault(fault_id))

    @pytest.mark.parametrize("fault_id", BEARING_FAULTS)
    def test_impact_at_defect_frequency(self, fault_id, machine_1800, bearing_8_roller):
        plan = build_fault_plan(machine_1800, _fault(fault_id, bearing=bearing_8_roller))
        key = fault_id.value.split("_")[1]
        marker = plan.markers[0]
        assert marker.id == key
        assert plan.impacts[0].frequency_hz == pytest.approx(marker.frequency_hz)
        assert plan.sidebands[0].center_order == pytest.approx(marker.frequency_hz / 30.0)

    def test_bpfo_marker_value(self, machine_1800, bearing_8_roller):
        plan = build_fault_plan(machine_1800, _fault("bearing_bpfo", bearing=bearing_8_roller))
        assert plan.markers[0].frequency_hz == pytest.approx(105.51, abs=0.05)
        assert plan.markers[0].label == "BPFO"


class TestGearFaults:
    @pytest.mark.parametrize("fault_id", GEAR_FAULTS)
    def test_missing_geometry_raises(self, fault_id, machine_1800):
        with pytest.raises(ConfigurationError):
            build_fault_plan(machine_1800, _fault(fault_id))

    def test_gear_mesh_orders(self, machine_1800, gear_32):
        plan = build_fault_plan(machine_1800, _fault("gear_mesh", gear=gear_32))
        assert plan.harmonics[0].order == pytest.approx(32)
        assert plan.harmonics[1].order == pytest.approx(64)
        assert plan.markers[0].frequency_hz == pytest.approx(960.0)
        assert plan.sidebands[0].count == 3

    def test_chipped_sideband_marker(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("gear_chipped", gear=GearGeometry(20)))
        assert plan.markers[1].frequency_hz == pytest.approx(600.0 - 30.0)


class TestPlanRecipes:
    def test_misalignment_axial_bias(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("misalignment"))
        assert plan.axial_bias == 0.7
        assert plan.harmonics[1].order == 2

    def test_looseness_random_phase_and_subharmonic_impacts(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("looseness"))
        assert len(plan.harmonics) == 8
        assert all(h.random_phase for h in plan.harmonics)
        assert plan.impacts[0].frequency_hz == pytest.approx(15.0)

    def test_scaled_touches_only_harmonics(self, machine_1800, gear_32):
        plan = build_fault_plan(machine_1800, _fault("gear_mesh", gear=gear_32))
        scaled = plan.scaled(2.0)
        assert scaled.harmonics[0].amplitude == pytest.approx(2 * plan.harmonics[0].amplitude)
        assert scaled.sidebands == plan.sidebands
        assert scaled.broadband_rms == plan.broadband_rms

    def test_zero_scale_means_unscaled(self, machine_1800):
        plan = build_fault_plan(machine_1800, _fault("unbalance"))
        assert plan.scaled(0.0) == plan

    def test_plans_are_fresh_per_call(self):
        a = build_fault_plan(MachineConfig(rpm=1800), _fault("unbalance"))
        b = build_fault_plan(MachineConfig(rpm=3600), _fault("unbalance"))
        assert b.markers[0].frequency_hz == pytest.approx(2 * a.markers[0].frequency_hz)
