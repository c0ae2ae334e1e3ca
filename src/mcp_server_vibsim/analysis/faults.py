"""Fault plan library.

Maps a selected fault mode onto a :class:`FaultPlan`: the harmonic,
sideband and impact content a sensor should see, expressed as multiples of
the shaft frequency and scaled by severity against a 1 g base amplitude.
Every :class:`FaultId` has one builder; unknown ids fall back to a
healthy plan instead of failing.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from mcp_server_vibsim.analysis.bearing import (
    bearing_fault_label,
    calculate_bearing_faults,
    ensure_bearing_geometry,
)
from mcp_server_vibsim.analysis.gears import ensure_gear_geometry, gear_mesh_frequency
from mcp_server_vibsim.analysis.units import rpm_to_hz
from mcp_server_vibsim.models import (
    ANY_AXIS,
    FaultAnimationCue,
    FaultConfig,
    FaultId,
    FaultMarker,
    FaultPlan,
    HarmonicComponent,
    ImpactDescriptor,
    MachineConfig,
    Sensor,
    SidebandDescriptor,
)

BASE_AMPLITUDE = 9.81  # 1 g

PlanBuilder = Callable[[MachineConfig, FaultConfig], FaultPlan]


@dataclass(frozen=True)
class FaultDescriptor:
    id: FaultId
    label: str
    description: str
    severity_hint: str
    indicators: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "id": self.id.value,
            "label": self.label,
            "description": self.description,
            "severity_hint": self.severity_hint,
            "indicators": list(self.indicators),
        }


@dataclass(frozen=True)
class FaultLibraryEntry:
    descriptor: FaultDescriptor
    build: PlanBuilder


def _order_marker(n: int, shaft_hz: float, severity: float) -> FaultMarker:
    return FaultMarker(id=f"{n}x", label=f"{n}×", frequency_hz=n * shaft_hz, severity=severity)


# ---------------------------------------------------------------------------
# Shaft / structural faults
# ---------------------------------------------------------------------------

def _unbalance(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    return FaultPlan(
        harmonics=(
            HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * s * 0.8, phase_deg=0),
            HarmonicComponent(order=2, amplitude=BASE_AMPLITUDE * s * 0.12, phase_deg=-35),
        ),
        broadband_rms=0.08 * s,
        markers=(_order_marker(1, rpm_to_hz(machine.rpm), s),),
        cue=FaultAnimationCue(
            mode="whirl",
            description="Rotor centreline traces a stable circle.",
            highlight="Radial whirl",
            color="#0ea5e9",
        ),
        modulation_depth=0.05 * s,
    )


def _misalignment(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    return FaultPlan(
        harmonics=(
            HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * 0.4 * s, phase_deg=15),
            HarmonicComponent(order=2, amplitude=BASE_AMPLITUDE * 0.9 * s, phase_deg=80, axis=ANY_AXIS),
            HarmonicComponent(order=3, amplitude=BASE_AMPLITUDE * 0.2 * s, phase_deg=120),
        ),
        broadband_rms=0.1 * s,
        axial_bias=0.7,
        markers=(
            _order_marker(1, shaft_hz, s * 0.4),
            _order_marker(2, shaft_hz, s),
        ),
        cue=FaultAnimationCue(
            mode="wobble",
            description="Coupling tilts once per revolution.",
            highlight="Coupling wobble",
            color="#f97316",
        ),
    )


def _soft_foot(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    harmonics = tuple(
        HarmonicComponent(
            order=n,
            amplitude=BASE_AMPLITUDE * s * (1 / n) * 0.3,
            phase_deg=(n - 1) * 25,
            random_phase=True,
        )
        for n in range(1, 7)
    )
    return FaultPlan(
        harmonics=harmonics,
        broadband_rms=0.15 * s,
        markers=tuple(_order_marker(n, shaft_hz, s * (1 / n)) for n in range(1, 7)),
        cue=FaultAnimationCue(
            mode="rock",
            description="Machine frame rocks as one foot lifts.",
            highlight="Base rocking",
            color="#eab308",
        ),
    )


def _looseness(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    harmonics = tuple(
        HarmonicComponent(
            order=n,
            amplitude=BASE_AMPLITUDE * s * (0.6 if n == 1 else 0.3 / n),
            phase_deg=(n - 1) * 35,
            random_phase=True,
        )
        for n in range(1, 9)
    )
    return FaultPlan(
        harmonics=harmonics,
        broadband_rms=0.25 * s,
        markers=tuple(_order_marker(n, shaft_hz, s * (1 - (n - 1) * 0.15)) for n in range(1, 6)),
        impacts=(
            ImpactDescriptor(
                frequency_hz=shaft_hz / 2,
                amplitude=BASE_AMPLITUDE * s * 0.4,
                randomness=0.4,
                bandwidth_hz=shaft_hz,
                axis="X",
            ),
        ),
        cue=FaultAnimationCue(
            mode="impact",
            description="Bearing housings rattle inside loose fits.",
            highlight="Housing chatter",
            color="#ef4444",
        ),
    )


def _bent_shaft(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    return FaultPlan(
        harmonics=(
            HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * s * 0.7, phase_deg=-25),
            HarmonicComponent(order=2, amplitude=BASE_AMPLITUDE * s * 0.18, phase_deg=60),
        ),
        broadband_rms=0.12 * s,
        markers=(_order_marker(1, rpm_to_hz(machine.rpm), s),),
        cue=FaultAnimationCue(
            mode="whirl",
            description="Rotor bows causing elliptical whirl.",
            highlight="Bowed shaft",
            color="#8b5cf6",
        ),
    )


def _eccentricity(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    return FaultPlan(
        harmonics=(HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * s * 0.7, phase_deg=0),),
        sidebands=(
            SidebandDescriptor(
                center_order=1, spacing_order=1, count=2, amplitude=BASE_AMPLITUDE * s * 0.2
            ),
        ),
        broadband_rms=0.1 * s,
        markers=(
            _order_marker(1, shaft_hz, s),
            FaultMarker(id="sb+", label="SB+", frequency_hz=2 * shaft_hz, severity=s * 0.4),
        ),
        cue=FaultAnimationCue(
            mode="whirl",
            description="Offset rotor centreline with load modulation.",
            highlight="Off-centre rotor",
            color="#0ea5e9",
        ),
    )


# ---------------------------------------------------------------------------
# Rolling-element bearings
# ---------------------------------------------------------------------------

def _bearing_builder(key: str) -> PlanBuilder:
    label = bearing_fault_label(key)

    def build(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
        geometry = ensure_bearing_geometry(fault.bearing)
        target = calculate_bearing_faults(machine, geometry)[key]
        order = target / rpm_to_hz(machine.rpm)
        s = fault.severity
        return FaultPlan(
            harmonics=(HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * 0.12, phase_deg=0),),
            impacts=(
                ImpactDescriptor(
                    frequency_hz=target,
                    amplitude=BASE_AMPLITUDE * 0.6 * s,
                    randomness=0.25,
                    bandwidth_hz=target * 0.3,
                    axis="X",
                ),
            ),
            sidebands=(
                SidebandDescriptor(
                    center_order=order,
                    spacing_order=1,
                    count=2,
                    amplitude=BASE_AMPLITUDE * 0.25 * s,
                    axis="X",
                ),
            ),
            broadband_rms=0.18 * s,
            markers=(FaultMarker(id=key, label=label, frequency_hz=target, severity=s),),
            cue=FaultAnimationCue(
                mode="impact",
                description="Rolling element defect produces repetitive impacts.",
                highlight=f"{label} marker",
                color="#f43f5e",
            ),
        )

    return build


# ---------------------------------------------------------------------------
# Gears, belts, structure, flow
# ---------------------------------------------------------------------------

def _gear_mesh(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    gear = ensure_gear_geometry(fault.gear, "gear mesh")
    s = fault.severity
    gmf = gear_mesh_frequency(machine, gear)
    shaft_order = gmf / rpm_to_hz(machine.rpm)
    return FaultPlan(
        harmonics=(
            HarmonicComponent(order=shaft_order, amplitude=BASE_AMPLITUDE * 0.6 * s, phase_deg=0),
            HarmonicComponent(order=2 * shaft_order, amplitude=BASE_AMPLITUDE * 0.3 * s, phase_deg=90),
        ),
        sidebands=(
            SidebandDescriptor(
                center_order=shaft_order, spacing_order=1, count=3, amplitude=BASE_AMPLITUDE * 0.2 * s
            ),
        ),
        broadband_rms=0.15 * s,
        markers=(
            FaultMarker(id="gmf", label="GMF", frequency_hz=gmf, severity=s),
            FaultMarker(id="gmf2", label="2×GMF", frequency_hz=2 * gmf, severity=s * 0.6),
        ),
        cue=FaultAnimationCue(
            mode="impact",
            description="Gear teeth mesh with tooth-to-tooth modulation.",
            highlight="Mesh pulsation",
            color="#f43f5e",
        ),
    )


def _gear_chipped(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    gear = ensure_gear_geometry(fault.gear, "chipped tooth")
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    gmf = gear_mesh_frequency(machine, gear)
    shaft_order = gmf / shaft_hz
    return FaultPlan(
        harmonics=(HarmonicComponent(order=shaft_order, amplitude=BASE_AMPLITUDE * s, phase_deg=10),),
        sidebands=(
            SidebandDescriptor(
                center_order=shaft_order, spacing_order=1, count=4, amplitude=BASE_AMPLITUDE * 0.35 * s
            ),
        ),
        broadband_rms=0.2 * s,
        markers=(
            FaultMarker(id="gmf", label="GMF", frequency_hz=gmf, severity=s),
            FaultMarker(id="sb", label="Sideband", frequency_hz=gmf - shaft_hz, severity=s * 0.6),
        ),
        cue=FaultAnimationCue(
            mode="impact",
            description="Chipped tooth causes periodic torque dips.",
            highlight="Tooth defect",
            color="#fb7185",
        ),
    )


def _belt(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    belt_pass = shaft_hz * 1.25
    order = belt_pass / shaft_hz
    return FaultPlan(
        harmonics=(HarmonicComponent(order=order, amplitude=BASE_AMPLITUDE * 0.45 * s, phase_deg=-20),),
        sidebands=(
            SidebandDescriptor(
                center_order=order, spacing_order=1, count=2, amplitude=BASE_AMPLITUDE * 0.2 * s
            ),
        ),
        broadband_rms=0.12 * s,
        modulation_depth=0.2 * s,
        markers=(FaultMarker(id="bpf", label="BPF", frequency_hz=belt_pass, severity=s),),
        cue=FaultAnimationCue(
            mode="flutter",
            description="Belt tension oscillates, causing flutter.",
            highlight="Belt flutter",
            color="#10b981",
        ),
    )


def _resonance(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    fn = shaft_hz * 3.2
    return FaultPlan(
        harmonics=(HarmonicComponent(order=fn / shaft_hz, amplitude=BASE_AMPLITUDE * 1.2 * s, phase_deg=95),),
        broadband_rms=0.18 * s,
        markers=(FaultMarker(id="fn", label="Fn", frequency_hz=fn, severity=s),),
        cue=FaultAnimationCue(
            mode="whirl",
            description="Mode shape amplifies response at resonance.",
            highlight="Mode amplification",
            color="#14b8a6",
        ),
    )


def _cavitation(machine: MachineConfig, fault: FaultConfig) -> FaultPlan:
    s = fault.severity
    shaft_hz = rpm_to_hz(machine.rpm)
    return FaultPlan(
        harmonics=(HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * 0.2 * s, phase_deg=0),),
        broadband_rms=0.35 * s,
        impacts=(
            ImpactDescriptor(
                frequency_hz=shaft_hz * 5,
                amplitude=BASE_AMPLITUDE * 0.5 * s,
                randomness=0.8,
                bandwidth_hz=shaft_hz * 4,
                axis=ANY_AXIS,
            ),
        ),
        markers=(
            FaultMarker(id="broadband", label="Broadband", frequency_hz=shaft_hz * 5, severity=s * 0.6),
        ),
        cue=FaultAnimationCue(
            mode="impact",
            description="Random bubble collapses at pump inlet.",
            highlight="Cavitation bursts",
            color="#38bdf8",
        ),
    )


def _healthy_plan() -> FaultPlan:
    return FaultPlan(
        harmonics=(HarmonicComponent(order=1, amplitude=BASE_AMPLITUDE * 0.1, phase_deg=0),),
        broadband_rms=0.05,
        markers=(),
        cue=FaultAnimationCue(mode="whirl", description="Nominal", highlight="Healthy", color="#22c55e"),
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def _entry(
    fault_id: FaultId,
    label: str,
    description: str,
    severity_hint: str,
    indicators: Sequence[str],
    build: PlanBuilder,
) -> tuple[FaultId, FaultLibraryEntry]:
    descriptor = FaultDescriptor(fault_id, label, description, severity_hint, tuple(indicators))
    return fault_id, FaultLibraryEntry(descriptor=descriptor, build=build)


def _bearing_entry(fault_id: FaultId, label: str, key: str) -> tuple[FaultId, FaultLibraryEntry]:
    return _entry(
        fault_id,
        label,
        f"{label} identified via envelope analysis.",
        f"{bearing_fault_label(key)} in envelope spectrum with sidebands.",
        ["High-frequency impacts", "Envelope lines", "Sideband spacing 1×RPM"],
        _bearing_builder(key),
    )


FAULT_LIBRARY: dict[FaultId, FaultLibraryEntry] = dict([
    _entry(
        FaultId.UNBALANCE, "Unbalance",
        "Mass distribution causes a centrifugal force at rotating speed.",
        "Strong 1× vibration, stable phase, circular orbits.",
        ["Dominant 1× peak", "Phase steady within ±5°", "High radial amplitude"],
        _unbalance,
    ),
    _entry(
        FaultId.MISALIGNMENT, "Misalignment",
        "Coupling offset or angular misalignment excites 2× components and axial motion.",
        "Watch for 2× with axial emphasis.",
        ["Elevated 2×", "Axial/Radial phase split", "Coupling heating"],
        _misalignment,
    ),
    _entry(
        FaultId.SOFT_FOOT, "Soft Foot",
        "Base distortion causing unstable phase and rich harmonics.",
        "Harmonics up to 6× with fluctuating phase.",
        ["Spectrum comb", "Amplitude changes with load", "High casing motion"],
        _soft_foot,
    ),
    _entry(
        FaultId.LOOSENESS, "Mechanical Looseness",
        "Loose bolts or worn fits causing impacts and subharmonics.",
        "High-order harmonics, random impacts, noisy phase.",
        ["1× plus integer harmonics", "Broadband raise", "Spatially varying phase"],
        _looseness,
    ),
    _entry(
        FaultId.BENT_SHAFT, "Bent Shaft",
        "Static bow introduces quadrature phase changes along the rotor.",
        "1× with phase lag between bearings.",
        ["Phase split across bearings", "High 1× radial", "Orbit not centred"],
        _bent_shaft,
    ),
    _entry(
        FaultId.ECCENTRICITY, "Eccentricity",
        "Air-gap or mechanical eccentricity causing sidebands.",
        "1× with RPM sidebands.",
        ["Sidebands around 1×", "Load dependent amplitude", "Current signature"],
        _eccentricity,
    ),
    _bearing_entry(FaultId.BEARING_BPFO, "Outer Race Fault", "bpfo"),
    _bearing_entry(FaultId.BEARING_BPFI, "Inner Race Fault", "bpfi"),
    _bearing_entry(FaultId.BEARING_BSF, "Ball Spin Fault", "bsf"),
    _bearing_entry(FaultId.BEARING_FTF, "Cage Fault", "ftf"),
    _entry(
        FaultId.GEAR_MESH, "Gear Mesh",
        "Healthy mesh plus mesh modulation sidebands.",
        "GMF lines with sidebands and harmonics.",
        ["GMF ± n×RPM", "Tooth frequency multiples", "Sidebands by load"],
        _gear_mesh,
    ),
    _entry(
        FaultId.GEAR_CHIPPED, "Gear Chipped Tooth",
        "Broken tooth causes pronounced sidebands and modulation.",
        "GMF with strong lower sidebands and noise floor rise.",
        ["Sideband asymmetry", "Time waveform impacts", "Polarized load zone"],
        _gear_chipped,
    ),
    _entry(
        FaultId.BELT, "Belt Defect",
        "Belt pass frequency with flutter and modulation.",
        "BPF ±1× sidebands, higher noise.",
        ["Fluttering belt", "Sheave wear", "Speed dependent sidebands"],
        _belt,
    ),
    _entry(
        FaultId.RESONANCE, "Resonance",
        "Excitation near a natural frequency with high Q response.",
        "Large amplitude near fn, phase shift 90–180°.",
        ["Amplitude spike near fn", "Phase flip", "High settling time"],
        _resonance,
    ),
    _entry(
        FaultId.CAVITATION, "Cavitation",
        "Vapor bubbles collapsing cause broadband bursts.",
        "Wideband noise, high-frequency spikes.",
        ["Rumbling sound", "Random impacts", "Higher kurtosis"],
        _cavitation,
    ),
])


def build_fault_plan(
    machine: MachineConfig,
    fault: FaultConfig,
    sensors: Sequence[Sensor] = (),
) -> FaultPlan:
    """Build the fault plan for ``fault`` at the machine's operating point.

    Args:
        machine: Operating point (shaft speed).
        fault: Selected fault mode, severity (already clamped to 0–1) and
            optional bearing/gear geometry.
        sensors: Sensors of the run. Recipes are sensor-independent; axis
            restrictions are resolved during synthesis.

    Returns:
        A fresh, immutable plan. Unknown fault ids yield a healthy plan
        (1× at 10 % of the base amplitude, no markers).

    Raises:
        ConfigurationError: A bearing or gear fault lacks its geometry.
    """
    entry = FAULT_LIBRARY.get(fault.id) if isinstance(fault.id, FaultId) else None
    if entry is None:
        return _healthy_plan()
    return entry.build(machine, fault)


def fault_presets() -> list[FaultDescriptor]:
    return [entry.descriptor for entry in FAULT_LIBRARY.values()]
