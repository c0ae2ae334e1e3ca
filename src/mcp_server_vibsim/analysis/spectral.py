"""Spectral analysis utilities.

Windowed, block‑averaged FFT magnitude and phase, envelope spectra,
tachometer‑based order axes, and spectral peak inspection.
"""

from __future__ import annotations

from collections.abc import Mapping

import numpy as np
from numpy.typing import NDArray
from scipy import signal as sig

from mcp_server_vibsim.analysis.synthesis import apply_window, coherent_gain
from mcp_server_vibsim.models import SpectrumResult, WindowKind, coerce_window


def frequency_axis(fs: float, block_size: int) -> NDArray[np.floating]:
    """``bin · fs / block_size`` for ``bin = 0 … block_size/2 − 1``."""
    return np.arange(block_size // 2) * fs / block_size


def blocks_consumed(length: int, block_size: int, averages: int) -> int:
    """Number of whole blocks averaged, never less than 1."""
    return max(1, min(averages, length // block_size))


def _windowed_block_spectra(
    x: NDArray[np.floating],
    window: WindowKind,
    block_size: int,
    averages: int,
) -> NDArray[np.complexfloating] | None:
    """FFT of each contiguous, non‑overlapping windowed block.

    Blocks that would overrun the buffer are dropped. Returns an array of
    shape ``(blocks, block_size // 2)`` or None when no block fits.
    """
    n_blocks = min(max(averages, 1), len(x) // block_size)
    if n_blocks <= 0:
        return None
    blocks = np.asarray(x[: n_blocks * block_size], dtype=np.float64).reshape(n_blocks, block_size)
    spectra = np.fft.rfft(apply_window(blocks, window), axis=-1)
    return spectra[:, : block_size // 2]


def average_magnitude(
    x: NDArray[np.floating],
    fs: float,
    window: WindowKind,
    block_size: int,
    averages: int,
    velocity: bool = False,
) -> NDArray[np.floating]:
    """Block‑averaged single‑sided amplitude spectrum.

    Scaling: ``1/N`` for DC and ``2/N`` elsewhere, divided by the window's
    coherent gain. With ``velocity`` each non‑DC bin is divided by
    ``2π·f`` (integration in the frequency domain).
    """
    half = block_size // 2
    spectra = _windowed_block_spectra(x, window, block_size, averages)
    if spectra is None:
        return np.zeros(half)

    gain = coherent_gain(window)
    correction = 1.0 / gain if gain > 0 else 1.0

    scale = np.full(half, 2.0 / block_size)
    scale[0] = 1.0 / block_size
    mags = np.abs(spectra) * scale * correction

    if velocity:
        omega = 2.0 * np.pi * frequency_axis(fs, block_size)
        mags[:, 1:] /= omega[1:]

    return mags.sum(axis=0) / blocks_consumed(len(x), block_size, averages)


def average_phase(
    x: NDArray[np.floating],
    window: WindowKind,
    block_size: int,
    averages: int,
) -> NDArray[np.floating]:
    """Arithmetic mean of per‑block phase angles (radians).

    Not a phasor average: blocks whose phase straddles ±π pull the mean
    toward zero.
    """
    half = block_size // 2
    spectra = _windowed_block_spectra(x, window, block_size, averages)
    if spectra is None:
        return np.zeros(half)
    return np.angle(spectra).sum(axis=0) / blocks_consumed(len(x), block_size, averages)


def estimate_shaft_frequency(
    tach: NDArray[np.floating],
    fs: float,
) -> float | None:
    """Shaft frequency from rising zero crossings of a tachometer sine."""
    tach = np.asarray(tach, dtype=np.float64)
    rising = np.flatnonzero((tach[:-1] < 0) & (tach[1:] >= 0))
    if len(rising) < 2:
        return None
    period_samples = (rising[-1] - rising[0]) / (len(rising) - 1)
    if period_samples <= 0:
        return None
    return fs / period_samples


def compute_spectrum(
    time: Mapping[str, NDArray[np.floating]],
    fs: float,
    window: WindowKind = WindowKind.HANNING,
    block_size: int = 4096,
    averages: int = 4,
    velocity: bool = False,
    envelope: Mapping[str, NDArray[np.floating]] | None = None,
    tach: NDArray[np.floating] | None = None,
) -> SpectrumResult:
    """Compute averaged spectra for every sensor.

    Args:
        time: Sensor id → time series.
        fs: Sampling frequency in Hz.
        window: Window applied to each block.
        block_size: FFT length per block (power of two).
        averages: Requested number of blocks.
        velocity: Integrate magnitudes to velocity.
        envelope: Optional sensor id → envelope series; produces envelope
            spectra with the same averaging (never velocity‑integrated).
        tach: Optional tachometer series; adds an order axis when the shaft
            frequency can be estimated from it.

    Returns:
        :class:`SpectrumResult` with ``block_size / 2`` bins.
    """
    window = coerce_window(window)
    averages = max(1, int(averages))
    f = frequency_axis(fs, block_size)

    magnitude: dict[str, NDArray[np.floating]] = {}
    phase: dict[str, NDArray[np.floating]] = {}
    consumed = 1
    for sensor_id, x in time.items():
        magnitude[sensor_id] = average_magnitude(x, fs, window, block_size, averages, velocity)
        phase[sensor_id] = average_phase(x, window, block_size, averages)
        consumed = blocks_consumed(len(x), block_size, averages)

    envelope_spectra = None
    if envelope:
        envelope_spectra = {
            sensor_id: average_magnitude(x, fs, window, block_size, averages, velocity=False)
            for sensor_id, x in envelope.items()
        }

    orders = None
    if tach is not None:
        shaft_hz = estimate_shaft_frequency(tach, fs)
        if shaft_hz:
            orders = f / shaft_hz

    return SpectrumResult(
        f=f,
        magnitude=magnitude,
        phase=phase,
        window=window,
        averages=consumed,
        envelope=envelope_spectra,
        orders=orders,
    )


def detect_peaks(
    freqs: NDArray[np.floating],
    amps: NDArray[np.floating],
    height: float | None = None,
    prominence: float | None = None,
    distance_hz: float | None = None,
    freq_range: tuple[float, float] | None = None,
    max_peaks: int = 50,
) -> list[dict]:
    """Local maxima of a magnitude or envelope spectrum, largest first.

    ``distance_hz`` is converted to a bin spacing using the axis resolution
    so callers can reason in Hz regardless of block size. ``freq_range``
    restricts the search to a band, e.g. around a bearing defect frequency.

    Returns:
        Up to ``max_peaks`` dicts with ``frequency_hz`` and ``amplitude``
        (plus ``prominence`` when a prominence threshold was given).
    """
    if freq_range is not None:
        band = (freqs >= freq_range[0]) & (freqs <= freq_range[1])
        freqs, amps = freqs[band], amps[band]

    distance = None
    if distance_hz is not None and len(freqs) > 1:
        distance = max(1, int(distance_hz / float(freqs[1] - freqs[0])))

    idx, props = sig.find_peaks(amps, height=height, prominence=prominence, distance=distance)
    prominences = props.get("prominences")

    peaks = []
    for k, i in enumerate(idx):
        peak: dict = {"frequency_hz": float(freqs[i]), "amplitude": float(amps[i])}
        if prominences is not None:
            peak["prominence"] = float(prominences[k])
        peaks.append(peak)

    peaks.sort(key=lambda p: p["amplitude"], reverse=True)
    return peaks[:max_peaks]


def amplitude_at_frequency(
    freqs: NDArray[np.floating],
    amps: NDArray[np.floating],
    target_freq_hz: float,
    tolerance_hz: float = 0.5,
) -> dict:
    """Largest bin within ``tolerance_hz`` of a marker frequency.

    Used to read the level at a fault marker (1×, BPFO, GMF …) where the
    true line may fall between bins. When no bin lies inside the band the
    result reports the target itself with zero amplitude and
    ``found=False``.
    """
    near = np.abs(freqs - target_freq_hz) <= tolerance_hz
    if not near.any():
        return {"frequency_hz": target_freq_hz, "amplitude": 0.0, "found": False}

    band_freqs, band_amps = freqs[near], amps[near]
    best = int(np.argmax(band_amps))
    return {
        "frequency_hz": float(band_freqs[best]),
        "amplitude": float(band_amps[best]),
        "found": True,
    }
