"""Tests for the synthesis and spectral entry points."""

import numpy as np
import pytest

from mcp_server_vibsim.errors import ConfigurationError
from mcp_server_vibsim.models import (
    AnalysisSettings,
    MachineConfig,
    RampConfig,
    Sensor,
    SensorLocation,
    SimulationResult,
    SynthesisParams,
    SynthesisPayload,
    WindowKind,
)
from mcp_server_vibsim.simulator import (
    run_spectral_analysis,
    run_synthesis,
    spectral_payload_for,
)


class TestRunSynthesis:
    def test_lengths(self, make_payload):
        payload = make_payload()
        result = run_synthesis("req_1", payload)
        assert result.request_id == "req_1"
        assert result.samples == payload.synthesis.samples == 4096
        assert all(len(x) == 4096 for x in result.time.values())
        assert set(result.stats) == {"de-x", "nde-x"}
        assert result.spectrum is None

    def test_samples_floor(self, make_payload):
        payload = make_payload(synthesis=SynthesisParams(fs=1000.0, seconds=1.0015, block_size=256))
        result = run_synthesis("req_1", payload)
        assert result.samples == 1001

    def test_determinism(self, make_payload):
        payload = make_payload("looseness", 0.7)
        a = run_synthesis("a", payload)
        b = run_synthesis("b", payload)
        for sensor_id in a.time:
            np.testing.assert_array_equal(a.time[sensor_id], b.time[sensor_id])

    def test_seed_changes_output(self, make_payload):
        a = run_synthesis("a", make_payload(synthesis=SynthesisParams(fs=4096.0, seconds=1.0, seed=1, block_size=1024)))
        b = run_synthesis("b", make_payload(synthesis=SynthesisParams(fs=4096.0, seconds=1.0, seed=2, block_size=1024)))
        assert not np.array_equal(a.time["de-x"], b.time["de-x"])

    def test_buffers_read_only(self, make_payload):
        result = run_synthesis("r", make_payload())
        with pytest.raises(ValueError):
            result.time["de-x"][0] = 0.0

    def test_envelope_optional(self, make_payload):
        with_env = run_synthesis("r", make_payload())
        without = run_synthesis("r", make_payload(analysis=AnalysisSettings(envelope=False)))
        assert set(with_env.envelope) == {"de-x", "nde-x"}
        assert without.envelope is None

    def test_markers_and_motion(self, make_payload):
        result = run_synthesis("r", make_payload("unbalance", 0.5))
        assert result.markers[0].frequency_hz == pytest.approx(30.0)
        assert result.motion.severity == 0.5
        assert result.motion.orbit_major == pytest.approx(9.81 * 0.5 * 0.8)

    def test_amplitude_scale_leaves_motion_unscaled(self, make_payload):
        base = run_synthesis("r", make_payload("unbalance", 0.5))
        scaled = run_synthesis("r", make_payload("unbalance", 0.5, amplitude_scale=3.0))
        assert scaled.motion.orbit_major == base.motion.orbit_major
        assert scaled.stats["de-x"].rms > 2 * base.stats["de-x"].rms

    def test_unknown_fault_runs(self, make_payload):
        result = run_synthesis("r", make_payload("not_a_fault"))
        assert result.markers == ()

    def test_bearing_fault_without_geometry(self, make_payload):
        with pytest.raises(ConfigurationError):
            run_synthesis("r", make_payload("bearing_bpfi"))

    def test_sensor_limits(self, make_payload):
        too_many = tuple(Sensor(f"s{i}") for i in range(5))
        with pytest.raises(ConfigurationError):
            run_synthesis("r", make_payload(sensors=too_many))
        with pytest.raises(ConfigurationError):
            run_synthesis("r", make_payload(sensors=(Sensor("a"), Sensor("a"))))

    def test_ramp(self, make_payload):
        ramp = RampConfig(enabled=True, from_rpm=600, to_rpm=3000)
        result = run_synthesis("r", make_payload(machine=MachineConfig(rpm=1800, ramp=ramp)))
        assert len(result.tach) == result.samples


class TestSpectralStage:
    def test_attach_spectrum(self, make_payload):
        payload = make_payload("unbalance", 0.8)
        result = run_synthesis("r", payload)
        spectrum = run_spectral_analysis(spectral_payload_for(result, payload))
        result.attach_spectrum(spectrum)
        assert len(result.spectrum.f) == payload.synthesis.block_size // 2
        peak = spectrum.f[int(np.argmax(spectrum.magnitude["de-x"]))]
        assert peak == pytest.approx(30.0, abs=4096.0 / 1024)

    def test_attach_only_once(self, make_payload):
        payload = make_payload()
        result = run_synthesis("r", payload)
        spectrum = run_spectral_analysis(spectral_payload_for(result, payload))
        result.attach_spectrum(spectrum)
        with pytest.raises(ValueError):
            result.attach_spectrum(spectrum)

    def test_velocity_from_either_flag(self, make_payload):
        payload = make_payload(
            synthesis=SynthesisParams(fs=4096.0, seconds=1.0, block_size=1024, integrate_to_velocity=True)
        )
        result = run_synthesis("r", payload)
        assert spectral_payload_for(result, payload).velocity is True

    def test_order_tracking(self, make_payload):
        payload = make_payload(analysis=AnalysisSettings(order_tracking=True))
        result = run_synthesis("r", payload)
        spectrum = run_spectral_analysis(spectral_payload_for(result, payload))
        assert spectrum.orders is not None
        # 4 Hz bins on a 30 Hz shaft: bin 15 is 60 Hz, the 2× order
        assert spectrum.orders[15] == pytest.approx(2.0, rel=0.02)


class TestPayloadParsing:
    def test_from_dict_camel_case(self):
        payload = SynthesisPayload.from_dict({
            "machine": {"rpm": 1500, "load": 2.0, "ramp": {"enabled": True, "from": 1000, "to": 2000}},
            "sensors": [{"id": "a", "location": "NDE", "axis": "Y"}],
            "fault": {"id": "bearing_bpfo", "severity": 0.3,
                      "bearing": {"rollers": 8, "pitchDiameter_mm": 120, "rollerDiameter_mm": 15}},
            "synthesis": {"fs": 8192, "seconds": 0.5, "blockSize": 2048, "noiseRms": 0.1},
            "analysis": {"window": "blackman", "orderTracking": True},
            "amplitudeScale": 2.0,
        })
        assert payload.machine.load == 1.0
        assert payload.machine.ramp.from_rpm == 1000
        assert payload.sensors[0].axis.value == "Y"
        assert payload.fault.bearing.rollers == 8
        assert payload.synthesis.block_size == 2048
        assert payload.analysis.order_tracking is True
        assert payload.amplitude_scale == 2.0

    def test_defaults(self):
        payload = SynthesisPayload.from_dict({})
        assert len(payload.sensors) == 3
        assert payload.synthesis.samples == 102400

    def test_ramp_ends_default_to_machine_rpm(self):
        machine = MachineConfig.from_dict({"rpm": 1500, "ramp": {"enabled": True}})
        assert machine.ramp.from_rpm == 1500
        assert machine.ramp.to_rpm == 1500

    def test_unknown_window_falls_back_to_hanning(self):
        payload = SynthesisPayload.from_dict({"analysis": {"window": "flattop"}})
        assert payload.analysis.window is WindowKind.HANNING

    def test_window_name_is_case_insensitive(self):
        assert AnalysisSettings(window=" Blackman ").window is WindowKind.BLACKMAN

    def test_unknown_location_falls_back_to_drive_end(self):
        payload = SynthesisPayload.from_dict({"sensors": [{"id": "m", "location": "MOTOR"}]})
        assert payload.sensors[0].location is SensorLocation.DRIVE_END

    def test_unknown_axis_rejected(self):
        with pytest.raises(ConfigurationError):
            Sensor(id="a", location=SensorLocation.DRIVE_END, axis="W")

    def test_missing_sensor_id_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="id"):
            SynthesisPayload.from_dict({"sensors": [{"location": "DE"}]})

    def test_malformed_number_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            SynthesisPayload.from_dict({"synthesis": {"fs": "fast"}})

    def test_block_size_must_be_power_of_two(self):
        with pytest.raises(ConfigurationError):
            SynthesisParams(block_size=1000)

    def test_result_correlation_key(self, make_payload):
        result = run_synthesis("req_9", make_payload())
        assert isinstance(result, SimulationResult)
        assert result.correlation_key == f"req_9:{result.generated_at}"
