"""Time-domain vibration synthesis.

Builds the shaft-speed profile for a run and sums a fault plan's harmonics,
sidebands, impacts and broadband noise into one sample buffer per sensor.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache

import numpy as np
from numpy.typing import NDArray

from mcp_server_vibsim.analysis.rng import SignalRng
from mcp_server_vibsim.models import (
    ANY_AXIS,
    HarmonicComponent,
    ImpactDescriptor,
    RampConfig,
    Sensor,
    SensorLocation,
    SidebandDescriptor,
    SignalStats,
    WindowKind,
    coerce_window,
)

# Relative phase between pickup points, in degrees.
SENSOR_PHASE_DEG: dict[SensorLocation, float] = {
    SensorLocation.DRIVE_END: 0.0,
    SensorLocation.NON_DRIVE_END: 15.0,
    SensorLocation.AXIAL: 90.0,
    SensorLocation.BASE: 180.0,
}

_COHERENT_GAIN: dict[WindowKind, float] = {
    WindowKind.HANNING: 0.5,
    WindowKind.HAMMING: 0.54,
    WindowKind.BLACKMAN: 0.42,
}


def resolve_sensor_phase(sensor: Sensor) -> float:
    return SENSOR_PHASE_DEG.get(sensor.location, 0.0)


def reaches_sensor(axis: str | None, sensor: Sensor) -> bool:
    """True if a component restricted to ``axis`` shows up on ``sensor``."""
    return axis is None or axis == ANY_AXIS or axis == sensor.axis.value


def create_rpm_profile(
    rpm: float,
    samples: int,
    ramp: RampConfig | None = None,
) -> NDArray[np.floating]:
    """Per-sample shaft speed: constant, or a linear ramp ``from → to``."""
    if ramp is None or not ramp.enabled:
        return np.full(samples, float(rpm))
    progress = np.arange(samples) / max(samples, 1)
    return ramp.from_rpm + (ramp.to_rpm - ramp.from_rpm) * progress


def compose_harmonic(
    order: float,
    rpm: NDArray[np.floating] | float,
    amplitude: float,
    phase_deg: NDArray[np.floating] | float,
    t: NDArray[np.floating],
) -> NDArray[np.floating]:
    """``amplitude · sin(2π · order · rpm/60 · t + phase)``; phase in degrees."""
    omega = 2.0 * np.pi * order * (np.asarray(rpm) / 60.0)
    return amplitude * np.sin(omega * t + np.radians(phase_deg))


def synthesize_series(
    samples: int,
    fs: float,
    rpm_profile: NDArray[np.floating],
    harmonics: Sequence[HarmonicComponent],
    sensor: Sensor,
    noise_rms: float,
    rng: SignalRng,
    sidebands: Sequence[SidebandDescriptor] = (),
    impacts: Sequence[ImpactDescriptor] = (),
) -> NDArray[np.floating]:
    """Synthesize one sensor's acceleration buffer.

    Components, summed per sample at time ``t = i / fs`` and the
    instantaneous speed ``rpm_profile[i]``:

      1. Harmonics reaching the sensor's axis, offset by the mount phase and,
         for ``random_phase`` components, a fresh 0–360° draw per sample.
      2. Sideband pairs at ``center ± k·spacing`` (k = 1 … count), amplitude
         ``A / k``, phase ``±90°`` plus a 0–180° draw per sample.
      3. Gaussian broadband noise of standard deviation ``noise_rms``.
      4. Impacts: a carrier at the repetition rate under an envelope
         ``exp(-bandwidth · frac(t · f))`` retriggered every ``1 / f`` s,
         with a 0–π phase draw per sample.

    Args:
        samples: Buffer length.
        fs: Sampling frequency in Hz.
        rpm_profile: Shaft speed per sample (length ``samples``).
        harmonics: Harmonic components of the fault plan.
        sensor: Target sensor (axis filter and mount phase).
        noise_rms: Broadband noise level.
        rng: The run's random stream; consumed in component order.
        sidebands: Optional sideband families.
        impacts: Optional impact trains.

    Returns:
        Sample buffer of length ``samples``.
    """
    t = np.arange(samples) / fs
    rpm = np.asarray(rpm_profile, dtype=np.float64)[:samples]
    sensor_phase = resolve_sensor_phase(sensor)
    x = np.zeros(samples)

    for h in harmonics:
        if not reaches_sensor(h.axis, sensor):
            continue
        phase = h.phase_deg + sensor_phase
        if h.random_phase:
            phase = phase + rng.phases_deg(samples, 360.0)
        x += compose_harmonic(h.order, rpm, h.amplitude, phase, t)

    for sb in sidebands:
        if not reaches_sensor(sb.axis, sensor):
            continue
        for k in range(-sb.count, sb.count + 1):
            if k == 0:
                continue
            phase = 90.0 * np.sign(k) + sensor_phase + rng.phases_deg(samples, 180.0)
            x += compose_harmonic(
                sb.center_order + k * sb.spacing_order,
                rpm,
                sb.amplitude / abs(k),
                phase,
                t,
            )

    x += rng.gaussian(samples, noise_rms)

    for impact in impacts:
        if not reaches_sensor(impact.axis, sensor):
            continue
        cycle = np.mod(t * impact.frequency_hz, 1.0)
        envelope = np.exp(-impact.bandwidth_hz * cycle)
        carrier = np.sin(2.0 * np.pi * impact.frequency_hz * t + rng.uniform(samples) * np.pi)
        x += impact.amplitude * envelope * carrier

    return x


def tachometer_series(rpm_profile: NDArray[np.floating], fs: float) -> NDArray[np.floating]:
    """Unit sine at shaft speed, one cycle per revolution."""
    t = np.arange(len(rpm_profile)) / fs
    return np.sin(2.0 * np.pi * (np.asarray(rpm_profile) / 60.0) * t)


def compute_stats(x: NDArray[np.floating]) -> SignalStats:
    """RMS, peak (signed maximum) and peak-to-peak of a buffer."""
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return SignalStats(rms=0.0, peak=0.0, peak_to_peak=0.0)
    peak = float(np.max(x))
    return SignalStats(
        rms=float(np.sqrt(np.mean(x**2))),
        peak=peak,
        peak_to_peak=peak - float(np.min(x)),
    )


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

@lru_cache(maxsize=32)
def window_vector(length: int, kind: WindowKind = WindowKind.HANNING) -> NDArray[np.floating]:
    """Symmetric window of ``length`` points (cached, read-only)."""
    kind = coerce_window(kind)
    if kind == WindowKind.HAMMING:
        w = np.hamming(length)
    elif kind == WindowKind.BLACKMAN:
        w = np.blackman(length)
    else:
        w = np.hanning(length)
    w.flags.writeable = False
    return w


def apply_window(x: NDArray[np.floating], kind: WindowKind = WindowKind.HANNING) -> NDArray[np.floating]:
    return x * window_vector(x.shape[-1], coerce_window(kind))


def coherent_gain(kind: WindowKind) -> float:
    """Nominal mean value of the window, used to undo windowing loss."""
    return _COHERENT_GAIN[coerce_window(kind)]


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def decimate_series(x: NDArray[np.floating], max_points: int = 2048) -> NDArray[np.floating]:
    """Stride-pick a buffer down to at most ``max_points`` samples."""
    if max_points <= 0 or len(x) <= max_points:
        return x
    stride = int(np.ceil(len(x) / max_points))
    return x[::stride]


def normalize_series(x: NDArray[np.floating]) -> NDArray[np.floating]:
    """Scale so the largest absolute sample is 1 (all-zero input unchanged)."""
    peak = float(np.max(np.abs(x))) if len(x) else 0.0
    if peak == 0:
        return x
    return x / peak
