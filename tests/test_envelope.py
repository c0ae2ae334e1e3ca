"""Tests for Hilbert envelope extraction."""

import numpy as np
import pytest

from mcp_server_vibsim.analysis.envelope import envelope_by_sensor, hilbert_envelope


class TestHilbertEnvelope:
    def test_constant_envelope_for_sine(self):
        fs = 5000.0
        t = np.arange(0, 1.0, 1.0 / fs)
        x = np.sin(2 * np.pi * 50 * t)
        env = hilbert_envelope(x) * len(x)
        # Envelope of a pure sine should be approximately constant ≈ 1
        assert np.std(env[100:-100]) < 0.05  # exclude edges

    def test_normalised_by_length(self):
        n = 1024
        x = np.sin(2 * np.pi * 64 * np.arange(n) / n)
        env = hilbert_envelope(x)
        assert np.mean(env) == pytest.approx(1.0 / n, rel=1e-6)

    def test_am_envelope_detection(self):
        fs = 5000.0
        t = np.arange(0, 2.0, 1.0 / fs)
        # AM signal: carrier 500 Hz, modulation 5 Hz
        mod = 1.0 + 0.5 * np.sin(2 * np.pi * 5 * t)
        x = mod * np.sin(2 * np.pi * 500 * t)
        env = hilbert_envelope(x) * len(x)
        assert np.max(env) > 1.4
        assert np.min(env[100:-100]) < 0.6

    def test_length_preserved_and_non_negative(self):
        x = np.random.default_rng(0).standard_normal(1001)
        env = hilbert_envelope(x)
        assert len(env) == len(x)
        assert np.all(env >= 0)

    def test_empty_input(self):
        assert len(hilbert_envelope(np.array([]))) == 0


class TestEnvelopeBySensor:
    def test_each_sensor_independent(self):
        t = np.arange(1024) / 1024.0
        time = {
            "a": np.sin(2 * np.pi * 100 * t),
            "b": 3.0 * np.sin(2 * np.pi * 100 * t),
        }
        env = envelope_by_sensor(time)
        assert set(env) == {"a", "b"}
        np.testing.assert_allclose(env["b"], 3.0 * env["a"], rtol=1e-9)
