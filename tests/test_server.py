"""Tests for the MCP tool functions (called directly, without a transport)."""

import json

import numpy as np
import pytest

from mcp_server_vibsim import server
from mcp_server_vibsim.config import Settings
from mcp_server_vibsim.errors import ConfigurationError


@pytest.fixture(autouse=True)
def inline_orchestrator(monkeypatch):
    monkeypatch.setattr(server, "_settings", Settings(offload=False, job_timeout_s=30.0))
    monkeypatch.setattr(server, "_orchestrator", None)
    yield
    if server._orchestrator is not None:
        server._orchestrator.close()


class TestReferenceTools:
    def test_list_fault_modes(self):
        modes = json.loads(server.list_fault_modes())
        assert len(modes) == 15
        assert {"unbalance", "bearing_bpfo", "gear_chipped"} <= {m["id"] for m in modes}

    def test_bearing_frequencies_absolute(self):
        out = json.loads(server.compute_bearing_frequencies(8, 120.0, 15.0, 0.0, 1800.0))
        assert out["shaft_freq_hz"] == pytest.approx(30.0)
        assert out["absolute_hz"]["bpfo"] == pytest.approx(out["normalised_orders"]["bpfo"] * 30.0)

    def test_gear_frequencies(self):
        out = json.loads(server.compute_gear_frequencies(32, 1800.0, 2))
        assert out["gear_mesh_hz"] == pytest.approx(960.0)
        assert len(out["sidebands_hz"]) == 4

    def test_build_fault_plan_unknown(self):
        plan = json.loads(server.build_fault_plan("nope"))
        assert plan["markers"] == []
        assert len(plan["harmonics"]) == 1

    def test_build_fault_plan_needs_geometry(self):
        with pytest.raises(ConfigurationError):
            server.build_fault_plan("gear_mesh")

    def test_convert_units(self):
        out = json.loads(server.convert_units(1.0, "in/s", "mm/s"))
        assert out["converted"] == pytest.approx(25.4)

    def test_resource_mentions_bearing_formulas(self):
        text = server.fault_library_resource()
        assert "BPFO" in text and "GMF" in text


class TestSimulateMachine:
    def test_unbalance_summary(self):
        out = json.loads(server.simulate_machine(
            "unbalance", severity=0.8, fs=4096.0, seconds=1.0, block_size=1024, lines=200,
        ))
        assert out["n_samples"] == 4096
        assert set(out["stats"]) == {"sensor-de-x", "sensor-nde-x", "sensor-ax-z"}
        assert out["markers"][0]["frequency_hz"] == pytest.approx(30.0)
        assert out["markers"][0]["amplitude"] > 0
        top = out["sensors"]["sensor-de-x"]["top_peaks"][0]
        assert top["freq_hz"] == pytest.approx(30.0, abs=4.0)
        assert out["sensors"]["sensor-de-x"]["n_bins"] == 200

    def test_configuration_error_raised(self):
        with pytest.raises(ConfigurationError):
            server.simulate_machine("bearing_bpfo", fs=2048.0, block_size=512)

    def test_bearing_fault_has_envelope(self):
        out = json.loads(server.simulate_machine(
            "bearing_bpfo", severity=0.6, fs=8192.0, seconds=1.0, block_size=2048,
            bearing_rollers=8, bearing_pitch_dia_mm=120.0, bearing_roller_dia_mm=15.0,
        ))
        assert "envelope" in out
        assert out["markers"][0]["id"] == "bpfo"
        assert "envelope_amplitude" in out["markers"][0]


class TestComputeSpectrumFromSignal:
    def test_peak(self):
        t = np.arange(4096) / 2048.0
        signal = np.sin(2 * np.pi * 128.0 * t).tolist()
        out = json.loads(server.compute_spectrum_from_signal(signal, 2048.0, block_size=1024))
        assert out["summary"]["top_peaks"][0]["freq_hz"] == pytest.approx(128.0)
        assert out["spectrum"]["averages"] == 4
        assert "envelope" not in out
