"""Engine entry points: the synthesis stage and the spectral stage.

Both are synchronous, pure functions of their inputs (plus the seed), so
they can run on any thread. :mod:`mcp_server_vibsim.jobs` wraps them in
the asynchronous two-stage pipeline.
"""

from __future__ import annotations

import logging
import time as _time

import numpy as np
from numpy.typing import NDArray

from mcp_server_vibsim.analysis.envelope import hilbert_envelope
from mcp_server_vibsim.analysis.faults import build_fault_plan
from mcp_server_vibsim.analysis.motion import derive_motion
from mcp_server_vibsim.analysis.rng import SignalRng
from mcp_server_vibsim.analysis.spectral import compute_spectrum
from mcp_server_vibsim.analysis.synthesis import (
    compute_stats,
    create_rpm_profile,
    synthesize_series,
    tachometer_series,
)
from mcp_server_vibsim.models import (
    SignalStats,
    SimulationResult,
    SpectralPayload,
    SpectrumResult,
    SynthesisPayload,
    validate_sensors,
)

logger = logging.getLogger(__name__)


def _frozen(x: NDArray[np.floating]) -> NDArray[np.floating]:
    x.flags.writeable = False
    return x


def run_synthesis(request_id: str, payload: SynthesisPayload) -> SimulationResult:
    """Synthesize every sensor's buffer for one configuration.

    Steps: speed profile, fault plan, one seeded random stream consumed
    sensor by sensor, per-sensor stats and (optionally) envelope, then the
    tachometer and the motion descriptor.

    Args:
        request_id: Correlation id carried into the result.
        payload: Machine, sensors, fault, synthesis and analysis settings.

    Returns:
        A :class:`SimulationResult` without spectrum. Buffers are read-only.

    Raises:
        ConfigurationError: Invalid sensor set, or a bearing/gear fault
            without its geometry.
    """
    machine = payload.machine
    synthesis = payload.synthesis
    sensors = validate_sensors(payload.sensors)

    samples = synthesis.samples
    rpm_profile = create_rpm_profile(machine.rpm, samples, machine.ramp)
    plan = build_fault_plan(machine, payload.fault, sensors)
    harmonics = plan.scaled(payload.amplitude_scale).harmonics
    noise_rms = plan.broadband_rms + synthesis.noise_rms
    rng = SignalRng(synthesis.seed)

    logger.debug(
        "Synthesizing %s: fault=%s samples=%d sensors=%d",
        request_id, payload.fault.id, samples, len(sensors),
    )

    time: dict[str, NDArray[np.floating]] = {}
    stats: dict[str, SignalStats] = {}
    envelope: dict[str, NDArray[np.floating]] = {}
    for sensor in sensors:
        x = synthesize_series(
            samples,
            synthesis.fs,
            rpm_profile,
            harmonics,
            sensor,
            noise_rms,
            rng,
            sidebands=plan.sidebands,
            impacts=plan.impacts,
        )
        time[sensor.id] = _frozen(x)
        stats[sensor.id] = compute_stats(x)
        if payload.analysis.envelope:
            envelope[sensor.id] = _frozen(hilbert_envelope(x))

    tach = _frozen(tachometer_series(rpm_profile, synthesis.fs))
    motion = derive_motion(plan, time, [s.id for s in sensors], payload.fault.severity)

    return SimulationResult(
        request_id=request_id,
        time=time,
        tach=tach,
        stats=stats,
        motion=motion,
        generated_at=int(_time.time() * 1000),
        envelope=envelope if payload.analysis.envelope else None,
        markers=plan.markers,
    )


def run_spectral_analysis(payload: SpectralPayload) -> SpectrumResult:
    """Averaged spectra (and envelope spectra) for a set of buffers."""
    logger.debug(
        "Spectral analysis: sensors=%d block=%d averages=%d window=%s",
        len(payload.time), payload.block_size, payload.averages, payload.window.value,
    )
    return compute_spectrum(
        payload.time,
        payload.fs,
        window=payload.window,
        block_size=payload.block_size,
        averages=payload.averages,
        velocity=payload.velocity,
        envelope=payload.envelope,
        tach=payload.tach if payload.order_tracking else None,
    )


def spectral_payload_for(result: SimulationResult, payload: SynthesisPayload) -> SpectralPayload:
    """Stage-2 input derived from a stage-1 result and its configuration."""
    analysis = payload.analysis
    synthesis = payload.synthesis
    return SpectralPayload(
        time=dict(result.time),
        tach=result.tach,
        fs=synthesis.fs,
        window=analysis.window,
        averages=analysis.averages,
        block_size=synthesis.block_size,
        velocity=analysis.velocity or synthesis.integrate_to_velocity,
        envelope=dict(result.envelope) if result.envelope else None,
        order_tracking=analysis.order_tracking,
    )
