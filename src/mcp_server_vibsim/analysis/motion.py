"""Phase utilities and the 3D motion descriptor used for visualization."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from mcp_server_vibsim.models import FaultPlan, MotionDescriptor, SpectrumResult

TAU = 2.0 * np.pi


def normalize_phase(angle_rad: float) -> float:
    """Wrap an angle into ``[0, 2π)``."""
    return float(np.mod(angle_rad, TAU))


def relative_phase(a: float, b: float) -> float:
    """Phase of ``b`` relative to ``a``, wrapped into ``[0, 2π)``."""
    return normalize_phase(b - a)


def phase_lag_from_time_series(
    reference: NDArray[np.floating],
    target: NDArray[np.floating],
) -> float:
    """Phase lag (radians, ``(-π, π]``) of ``target`` against ``reference``.

    In‑phase / quadrature correlation over the common length, using the
    first difference of ``target`` as its quadrature component::

        I = Σ ref[i] · tgt[i]
        Q = Σ ref[i] · (tgt[i] − tgt[i−1])     for i ≥ 1
    """
    n = min(len(reference), len(target))
    if n < 2:
        return 0.0
    ref = np.asarray(reference[1:n], dtype=np.float64)
    tgt = np.asarray(target[:n], dtype=np.float64)
    in_phase = float(np.dot(ref, tgt[1:]))
    quadrature = float(np.dot(ref, np.diff(tgt)))
    return float(np.arctan2(quadrature, in_phase))


def phase_at_frequency(
    spectrum: SpectrumResult | None,
    sensor_id: str,
    frequency_hz: float,
) -> float | None:
    """Averaged phase of the bin nearest ``frequency_hz``, or None."""
    if spectrum is None:
        return None
    phases = spectrum.phase.get(sensor_id)
    if phases is None or len(spectrum.f) == 0:
        return None
    index = int(np.argmin(np.abs(spectrum.f - frequency_hz)))
    return float(phases[index])


def derive_motion(
    plan: FaultPlan,
    time: Mapping[str, NDArray[np.floating]],
    sensor_ids: Sequence[str],
    severity: float,
) -> MotionDescriptor:
    """Summarise a fault plan as orbit, axial and torsional motion.

    ``orbit_major`` is the first harmonic's amplitude and ``orbit_minor``
    the second's (30 % of major without one). Axial and torsional motion
    scale the major axis by the plan's ``axial_bias`` (default 0.2) and
    ``modulation_depth`` (default 0.05). With two or more sensors the
    phase lag is correlated from the first two buffers; otherwise the
    first harmonic's authored phase is used. Harmonic phases are authored
    in degrees while the correlated lag comes out in radians, so the
    fallback is normalised to radians and ``phase_lag`` always carries
    one unit.
    """
    first = plan.harmonics[0] if plan.harmonics else None
    second = plan.harmonics[1] if len(plan.harmonics) > 1 else None

    major = first.amplitude if first is not None else 0.0
    minor = second.amplitude if second is not None else major * 0.3
    axial_bias = plan.axial_bias if plan.axial_bias is not None else 0.2
    modulation = plan.modulation_depth if plan.modulation_depth is not None else 0.05

    if len(sensor_ids) >= 2:
        phase_lag = phase_lag_from_time_series(time[sensor_ids[0]], time[sensor_ids[1]])
    elif first is not None:
        phase_lag = float(np.radians(first.phase_deg))
    else:
        phase_lag = 0.0

    return MotionDescriptor(
        orbit_major=major,
        orbit_minor=minor,
        axial=axial_bias * major,
        torsional=modulation * major,
        phase_lag=phase_lag,
        cue=plan.cue,
        severity=severity,
    )
