"""MCP Server for rotating-machinery vibration simulation.

Provides tools to build fault plans, synthesize multi-sensor vibration
signals, and compute averaged and envelope spectra via the Model Context
Protocol.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Annotated, Literal

import numpy as np
from mcp.server.fastmcp import FastMCP
from pydantic import Field

from mcp_server_vibsim.analysis.bearing import calculate_bearing_defect_frequencies
from mcp_server_vibsim.analysis.envelope import hilbert_envelope
from mcp_server_vibsim.analysis.faults import build_fault_plan as _build_fault_plan
from mcp_server_vibsim.analysis.faults import fault_presets
from mcp_server_vibsim.analysis.gears import gear_mesh_frequency, gear_sideband_frequencies
from mcp_server_vibsim.analysis.spectral import amplitude_at_frequency, detect_peaks
from mcp_server_vibsim.analysis.units import convert_machine_units, rpm_to_hz
from mcp_server_vibsim.config import load_settings
from mcp_server_vibsim.errors import SimulatorError
from mcp_server_vibsim.jobs import JobOrchestrator, JobState
from mcp_server_vibsim.models import (
    AnalysisSettings,
    BearingGeometry,
    FaultConfig,
    GearGeometry,
    MachineConfig,
    RampConfig,
    SimulationResult,
    SpectralPayload,
    SpectrumResult,
    SynthesisParams,
    SynthesisPayload,
    WindowKind,
)
from mcp_server_vibsim.simulator import run_spectral_analysis

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Server instance
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "vibsim",
    instructions=(
        "Rotating-machinery vibration simulator. "
        "Builds fault plans for fifteen classic machinery faults (unbalance, "
        "misalignment, looseness, bearing defects, gear faults, ...), "
        "synthesizes reproducible multi-sensor acceleration signals from a "
        "seed, and computes windowed, block-averaged spectra including an "
        "envelope spectrum for impact-type faults. "
        "Typical workflow: "
        "(1) list_fault_modes to pick a fault id, "
        "(2) compute_bearing_frequencies / compute_gear_frequencies when the "
        "fault needs component geometry, "
        "(3) simulate_machine to run the synthesis and spectral stages and get "
        "stats, motion, fault markers with measured amplitudes, and top peaks, "
        "(4) compute_spectrum_from_signal to analyse any raw signal the same way."
    ),
)

_settings = load_settings()
_orchestrator: JobOrchestrator | None = None
_orchestrator_lock = threading.Lock()


def _get_orchestrator() -> JobOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = JobOrchestrator(offload=_settings.offload)
    return _orchestrator


def _bearing_from_args(
    rollers: int | None,
    pitch_dia_mm: float | None,
    roller_dia_mm: float | None,
    contact_angle_deg: float,
) -> BearingGeometry | None:
    if rollers is None or pitch_dia_mm is None or roller_dia_mm is None:
        return None
    return BearingGeometry(rollers, pitch_dia_mm, roller_dia_mm, contact_angle_deg)


def _spectrum_summary(freqs: np.ndarray, amps: np.ndarray, max_peaks: int = 5) -> dict:
    """Compact summary of a spectrum (no raw data)."""
    peaks = detect_peaks(freqs, amps, max_peaks=max_peaks)
    return {
        "n_bins": len(freqs),
        "freq_range_hz": [round(float(freqs[0]), 3), round(float(freqs[-1]), 3)] if len(freqs) else [],
        "freq_resolution_hz": round(float(freqs[1] - freqs[0]), 6) if len(freqs) > 1 else 0,
        "max_amplitude": round(float(np.max(amps)), 6) if len(amps) else 0.0,
        "top_peaks": [
            {"freq_hz": round(p["frequency_hz"], 3), "amplitude": round(p["amplitude"], 6)}
            for p in peaks
        ],
    }


def _marker_report(result: SimulationResult, spectrum: SpectrumResult) -> list[dict]:
    """Fault markers with the amplitude measured at each marker frequency."""
    if not result.markers or len(spectrum.f) < 2:
        return []
    reference = next(iter(spectrum.magnitude))
    tolerance = float(spectrum.f[1] - spectrum.f[0])
    report = []
    for marker in result.markers:
        entry = {
            "id": marker.id,
            "label": marker.label,
            "frequency_hz": round(marker.frequency_hz, 3),
            "severity": marker.severity,
            "sensor": reference,
            "amplitude": amplitude_at_frequency(
                spectrum.f, spectrum.magnitude[reference], marker.frequency_hz, tolerance
            )["amplitude"],
        }
        if spectrum.envelope and reference in spectrum.envelope:
            entry["envelope_amplitude"] = amplitude_at_frequency(
                spectrum.f, spectrum.envelope[reference], marker.frequency_hz, tolerance
            )["amplitude"]
        report.append(entry)
    return report


# ===================================================================
# RESOURCE: Fault Library Reference
# ===================================================================

FAULT_LIBRARY_REFERENCE = """# Vibration Fault Library Reference

All amplitudes scale with severity (0–1) against a 1 g (9.81 m/s²) base.
Orders are multiples of the shaft frequency f_r = RPM / 60.

## Shaft and structure
- **Unbalance**: dominant 1× radial with a small 2×
- **Misalignment**: strong 2× on every axis, 1× and 3× radial, high axial motion
- **Soft foot**: 1×–6× decaying harmonics with random phase
- **Looseness**: 1×–8× harmonics with random phase, 0.5× impacts, raised noise floor
- **Bent shaft**: high 1× with 2×, elliptical whirl
- **Eccentricity**: 1× with ±1× sidebands

## Rolling-element bearings (envelope analysis)
- **BPFO** = (n/2)·(1 − d/D·cos α)·f_r
- **BPFI** = (n/2)·(1 + d/D·cos α)·f_r
- **BSF**  = (D/2d)·(1 − (d/D·cos α)²)·f_r
- **FTF**  = (1/2)·(1 − d/D·cos α)·f_r
- Impacts at the defect rate, visible as envelope-spectrum peaks with ±1× sidebands

## Gears
- **Gear mesh**: GMF = teeth · f_r and 2×GMF, ±1× sidebands (3 pairs)
- **Chipped tooth**: GMF with 4 pairs of ±1× sidebands, raised noise floor

## Other
- **Belt**: belt pass frequency at 1.25× with ±1× sidebands, torsional flutter
- **Resonance**: amplified structural mode at 3.2×
- **Cavitation**: broadband noise floor with random bursts at 5×
"""


@mcp.resource("vibsim://fault-library")
def fault_library_resource() -> str:
    """Reference table of simulated fault signatures and their frequencies."""
    return FAULT_LIBRARY_REFERENCE


# ===================================================================
# TOOL 1: List Fault Modes
# ===================================================================

@mcp.tool()
def list_fault_modes() -> str:
    """List every fault mode the simulator can synthesize.

    Each entry has the fault id to pass to other tools, a description, the
    spectral signature to expect, and typical field indicators.
    """
    return json.dumps([d.to_dict() for d in fault_presets()], indent=2)


# ===================================================================
# TOOL 2: Bearing Defect Frequencies
# ===================================================================

@mcp.tool()
def compute_bearing_frequencies(
    rollers: Annotated[int, Field(description="Number of rolling elements in the bearing")],
    pitch_dia_mm: Annotated[float, Field(description="Pitch (cage) diameter in mm")],
    roller_dia_mm: Annotated[float, Field(description="Roller (ball) diameter in mm")],
    contact_angle_deg: Annotated[float, Field(description="Contact angle in degrees", default=0.0)] = 0.0,
    shaft_speed_rpm: Annotated[float, Field(description="Shaft speed in RPM (optional, for absolute Hz)", default=0.0)] = 0.0,
) -> str:
    """Calculate bearing characteristic defect frequencies (BPFO, BPFI, BSF, FTF).

    Returns normalised frequencies (multiples of shaft speed) and, if shaft
    speed is provided, absolute frequencies in Hz.
    """
    geom = BearingGeometry(rollers, pitch_dia_mm, roller_dia_mm, contact_angle_deg)
    defects = calculate_bearing_defect_frequencies(geom)

    result: dict = {
        "bearing_geometry": {
            "rollers": rollers,
            "pitch_dia_mm": pitch_dia_mm,
            "roller_dia_mm": roller_dia_mm,
            "contact_angle_deg": contact_angle_deg,
        },
        "normalised_orders": defects.to_dict(),
    }
    if shaft_speed_rpm > 0:
        result["shaft_freq_hz"] = rpm_to_hz(shaft_speed_rpm)
        result["absolute_hz"] = defects.absolute(rpm_to_hz(shaft_speed_rpm))

    return json.dumps(result, indent=2)


# ===================================================================
# TOOL 3: Gear Mesh Frequencies
# ===================================================================

@mcp.tool()
def compute_gear_frequencies(
    teeth: Annotated[int, Field(description="Tooth count of the gear on the monitored shaft")],
    shaft_speed_rpm: Annotated[float, Field(description="Shaft speed in RPM")],
    sideband_count: Annotated[int, Field(description="Sideband pairs to list around GMF", default=3)] = 3,
) -> str:
    """Calculate the gear mesh frequency (GMF) and its shaft-rate sidebands."""
    machine = MachineConfig(rpm=shaft_speed_rpm)
    gear = GearGeometry(teeth)
    return json.dumps({
        "shaft_freq_hz": rpm_to_hz(shaft_speed_rpm),
        "gear_mesh_hz": gear_mesh_frequency(machine, gear),
        "sidebands_hz": gear_sideband_frequencies(machine, gear, sideband_count),
    }, indent=2)


# ===================================================================
# TOOL 4: Build Fault Plan
# ===================================================================

@mcp.tool()
def build_fault_plan(
    fault_id: Annotated[str, Field(description="Fault id from list_fault_modes, e.g. 'unbalance' or 'bearing_bpfo'")],
    severity: Annotated[float, Field(description="Fault severity 0–1", default=0.4)] = 0.4,
    rpm: Annotated[float, Field(description="Shaft speed in RPM", default=1800.0)] = 1800.0,
    bearing_rollers: Annotated[int | None, Field(description="Bearing roller count (bearing faults)", default=None)] = None,
    bearing_pitch_dia_mm: Annotated[float | None, Field(description="Bearing pitch diameter in mm", default=None)] = None,
    bearing_roller_dia_mm: Annotated[float | None, Field(description="Bearing roller diameter in mm", default=None)] = None,
    bearing_contact_angle_deg: Annotated[float, Field(description="Bearing contact angle in degrees", default=0.0)] = 0.0,
    gear_teeth: Annotated[int | None, Field(description="Gear tooth count (gear faults)", default=None)] = None,
) -> str:
    """Show the harmonic, sideband and impact content a fault produces.

    Unknown fault ids return a healthy plan (1× only, no markers).
    Bearing and gear faults require their geometry.
    """
    machine = MachineConfig(rpm=rpm)
    fault = FaultConfig(
        id=fault_id,
        severity=severity,
        bearing=_bearing_from_args(
            bearing_rollers, bearing_pitch_dia_mm, bearing_roller_dia_mm, bearing_contact_angle_deg
        ),
        gear=GearGeometry(gear_teeth) if gear_teeth else None,
    )
    plan = _build_fault_plan(machine, fault)
    return json.dumps(plan.to_dict(), indent=2, default=str)


# ===================================================================
# TOOL 5: Simulate Machine
# ===================================================================

@mcp.tool()
def simulate_machine(
    fault_id: Annotated[str, Field(description="Fault id from list_fault_modes")],
    severity: Annotated[float, Field(description="Fault severity 0–1", default=0.4)] = 0.4,
    rpm: Annotated[float, Field(description="Shaft speed in RPM", default=1800.0)] = 1800.0,
    fs: Annotated[float, Field(description="Sampling frequency in Hz", default=12800.0)] = 12800.0,
    seconds: Annotated[float, Field(description="Signal duration in seconds", default=1.0)] = 1.0,
    seed: Annotated[int, Field(description="Random seed (same seed → identical signals)", default=1337)] = 1337,
    noise_rms: Annotated[float, Field(description="Extra broadband noise RMS", default=0.02)] = 0.02,
    block_size: Annotated[int, Field(description="FFT block size (power of two)", default=4096)] = 4096,
    averages: Annotated[int, Field(description="Number of spectral averages", default=4)] = 4,
    window: Annotated[Literal["hanning", "hamming", "blackman"], Field(description="FFT window", default="hanning")] = "hanning",
    lines: Annotated[int, Field(description="Spectral lines used for peak search", default=800)] = 800,
    envelope: Annotated[bool, Field(description="Compute envelope spectra", default=True)] = True,
    velocity: Annotated[bool, Field(description="Report spectra as velocity", default=False)] = False,
    order_tracking: Annotated[bool, Field(description="Add a shaft-order axis", default=False)] = False,
    amplitude_scale: Annotated[float, Field(description="Multiplier on harmonic amplitudes", default=1.0)] = 1.0,
    ramp_to_rpm: Annotated[float | None, Field(description="Ramp speed linearly from rpm to this value", default=None)] = None,
    bearing_rollers: Annotated[int | None, Field(description="Bearing roller count (bearing faults)", default=None)] = None,
    bearing_pitch_dia_mm: Annotated[float | None, Field(description="Bearing pitch diameter in mm", default=None)] = None,
    bearing_roller_dia_mm: Annotated[float | None, Field(description="Bearing roller diameter in mm", default=None)] = None,
    bearing_contact_angle_deg: Annotated[float, Field(description="Bearing contact angle in degrees", default=0.0)] = 0.0,
    gear_teeth: Annotated[int | None, Field(description="Gear tooth count (gear faults)", default=None)] = None,
) -> str:
    """Run the full simulation: synthesis, motion estimate, and spectra.

    Synthesizes the default three sensors (DE radial, NDE radial, axial),
    then computes averaged spectra. Returns per-sensor stats, the motion
    descriptor, fault markers with the amplitude measured at each marker,
    and the top spectral peaks per sensor. No raw arrays are returned.
    """
    ramp = RampConfig(enabled=True, from_rpm=rpm, to_rpm=ramp_to_rpm) if ramp_to_rpm else None
    payload = SynthesisPayload(
        machine=MachineConfig(rpm=rpm, ramp=ramp),
        fault=FaultConfig(
            id=fault_id,
            severity=severity,
            bearing=_bearing_from_args(
                bearing_rollers, bearing_pitch_dia_mm, bearing_roller_dia_mm, bearing_contact_angle_deg
            ),
            gear=GearGeometry(gear_teeth) if gear_teeth else None,
        ),
        synthesis=SynthesisParams(
            fs=fs, seconds=seconds, seed=seed, noise_rms=noise_rms, block_size=block_size,
        ),
        analysis=AnalysisSettings(
            window=window,
            averages=averages,
            lines=lines,
            envelope=envelope,
            order_tracking=order_tracking,
            velocity=velocity,
        ),
        amplitude_scale=amplitude_scale,
    )

    with _orchestrator_lock:
        orchestrator = _get_orchestrator()
        request_id = orchestrator.request(payload)
        state = orchestrator.wait(timeout=_settings.job_timeout_s)
        if state is JobState.ERROR:
            error = orchestrator.error
            if isinstance(error, SimulatorError):
                raise error
            raise SimulatorError(f"Simulation {request_id} failed: {error}")
        if state is not JobState.COMPLETE:
            raise TimeoutError(
                f"Simulation {request_id} did not complete within {_settings.job_timeout_s} s"
            )
        result = orchestrator.result

    spectrum = result.spectrum.truncated(payload.analysis.lines)
    response: dict = {
        "request_id": result.request_id,
        "n_samples": result.samples,
        "sampling_freq_hz": fs,
        "spectrum": spectrum.metadata | {"velocity": velocity},
        "stats": {sid: s.to_dict() for sid, s in result.stats.items()},
        "motion": result.motion.to_dict(),
        "markers": _marker_report(result, result.spectrum),
        "sensors": {
            sid: _spectrum_summary(spectrum.f, mags) for sid, mags in spectrum.magnitude.items()
        },
    }
    if spectrum.envelope:
        response["envelope"] = {
            sid: _spectrum_summary(spectrum.f, mags) for sid, mags in spectrum.envelope.items()
        }
    return json.dumps(response, indent=2, default=str)


# ===================================================================
# TOOL 6: Spectrum of a raw signal
# ===================================================================

@mcp.tool()
def compute_spectrum_from_signal(
    signal: Annotated[list[float], Field(description="Time-domain signal as a list of amplitude values")],
    sampling_freq_hz: Annotated[float, Field(description="Sampling frequency in Hz")],
    block_size: Annotated[int, Field(description="FFT block size (power of two)", default=1024)] = 1024,
    averages: Annotated[int, Field(description="Number of spectral averages", default=4)] = 4,
    window: Annotated[Literal["hanning", "hamming", "blackman"], Field(description="FFT window", default="hanning")] = "hanning",
    velocity: Annotated[bool, Field(description="Report spectrum as velocity", default=False)] = False,
    envelope: Annotated[bool, Field(description="Also compute the envelope spectrum", default=False)] = False,
    max_peaks: Annotated[int, Field(description="Number of peaks to report", default=5)] = 5,
) -> str:
    """Compute the block-averaged spectrum of a raw signal.

    Uses the same windowing, scaling and averaging as simulate_machine.
    Returns a compact summary with the top peaks.
    """
    x = np.asarray(signal, dtype=np.float64)
    payload = SpectralPayload(
        time={"signal": x},
        tach=np.zeros(len(x)),
        fs=sampling_freq_hz,
        window=WindowKind(window),
        averages=averages,
        block_size=block_size,
        velocity=velocity,
        envelope={"signal": hilbert_envelope(x)} if envelope else None,
    )
    spectrum = run_spectral_analysis(payload)

    result = {
        "spectrum": spectrum.metadata | {"velocity": velocity},
        "summary": _spectrum_summary(spectrum.f, spectrum.magnitude["signal"], max_peaks),
    }
    if spectrum.envelope:
        result["envelope"] = _spectrum_summary(spectrum.f, spectrum.envelope["signal"], max_peaks)
    return json.dumps(result, indent=2)


# ===================================================================
# TOOL 7: Unit conversion
# ===================================================================

@mcp.tool()
def convert_units(
    value: Annotated[float, Field(description="Value to convert")],
    from_units: Annotated[Literal["mm/s", "in/s", "m/s2"], Field(description="Source units")],
    to_units: Annotated[Literal["mm/s", "in/s", "m/s2"], Field(description="Target units")],
) -> str:
    """Convert a vibration level between the simulator's display units.

    Acceleration ↔ velocity assumes a 1 Hz reference tone.
    """
    return json.dumps({
        "value": value,
        "from_units": from_units,
        "to_units": to_units,
        "converted": convert_machine_units(value, from_units, to_units),
    })


# ===================================================================
# PROMPT: Guided fault study
# ===================================================================

@mcp.prompt()
def study_machine_fault(
    fault_id: str = "bearing_bpfo",
    rpm: str = "1800",
) -> str:
    """Step-by-step guided prompt for studying a simulated machinery fault."""
    return f"""You are studying the vibration signature of a '{fault_id}' fault on a machine running at {rpm} RPM.

Follow this workflow:

1. Call `list_fault_modes` and read the description and indicators for `{fault_id}`.
2. If it is a bearing fault, call `compute_bearing_frequencies` with the bearing geometry
   and shaft speed; if it is a gear fault, call `compute_gear_frequencies`.
3. Call `build_fault_plan` to see which orders, sidebands and impacts the fault produces.
4. Call `simulate_machine` (add bearing/gear geometry as needed) and compare the
   measured marker amplitudes and top peaks against the expected frequencies.
5. For bearing and chipped-gear faults, check the envelope peaks rather than the raw spectrum.

Explain which spectral features identify the fault and how they change with severity.
"""


# ---------------------------------------------------------------------------
# Server entry
# ---------------------------------------------------------------------------

def serve(transport: Literal["stdio", "sse", "streamable-http"] = "stdio") -> None:
    """Start the vibration simulator MCP server."""
    logger.info("Starting vibsim MCP server (transport=%s, offload=%s)", transport, _settings.offload)
    try:
        mcp.run(transport=transport)
    finally:
        if _orchestrator is not None:
            _orchestrator.close()
