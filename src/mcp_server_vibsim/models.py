"""Configuration and result records exchanged with the simulator engine.

Configuration records are frozen and passed by value into each run.
Results are created fresh per run; a :class:`SimulationResult` only ever
gains a spectrum after construction (see :meth:`SimulationResult.attach_spectrum`).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

import numpy as np
from numpy.typing import NDArray

from mcp_server_vibsim.errors import ConfigurationError

MAX_SENSORS = 4

# Axis restriction tag for components that reach every sensor.
ANY_AXIS = "AX"


class FaultId(str, Enum):
    UNBALANCE = "unbalance"
    MISALIGNMENT = "misalignment"
    SOFT_FOOT = "soft_foot"
    LOOSENESS = "looseness"
    BENT_SHAFT = "bent_shaft"
    ECCENTRICITY = "eccentricity"
    BEARING_BPFO = "bearing_bpfo"
    BEARING_BPFI = "bearing_bpfi"
    BEARING_BSF = "bearing_bsf"
    BEARING_FTF = "bearing_ftf"
    GEAR_MESH = "gear_mesh"
    GEAR_CHIPPED = "gear_chipped"
    BELT = "belt"
    RESONANCE = "resonance"
    CAVITATION = "cavitation"


class SensorLocation(str, Enum):
    DRIVE_END = "DE"
    NON_DRIVE_END = "NDE"
    AXIAL = "AX"
    BASE = "BASE"


class SensorAxis(str, Enum):
    X = "X"
    Y = "Y"
    Z = "Z"


class WindowKind(str, Enum):
    HANNING = "hanning"
    HAMMING = "hamming"
    BLACKMAN = "blackman"


class DisplayUnits(str, Enum):
    MM_PER_S = "mm/s"
    IN_PER_S = "in/s"
    M_PER_S2 = "m/s2"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp ``value`` into ``[low, high]`` (NaN maps to ``low``)."""
    value = float(value)
    if value != value:
        return low
    return min(max(value, low), high)


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _get(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-null key (snake_case or camelCase)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _record(cls: Any, value: Any) -> Any:
    """Pass records through; build them from mappings otherwise."""
    return value if isinstance(value, cls) else cls.from_dict(value)


def coerce_fault_id(value: FaultId | str) -> FaultId | str:
    """Map ``value`` onto :class:`FaultId`; unknown ids are kept verbatim."""
    if isinstance(value, FaultId):
        return value
    try:
        return FaultId(str(value).strip().lower())
    except ValueError:
        return str(value)


def _enum_or_default(kind: type[Enum], value: Any, default: Enum) -> Any:
    """``kind(value)``, or ``default`` when ``value`` is not a member."""
    if isinstance(value, kind):
        return value
    try:
        return kind(value)
    except ValueError:
        return default


def coerce_window(value: WindowKind | str) -> WindowKind:
    """Map ``value`` onto :class:`WindowKind`; unknown kinds fall back to hanning."""
    if isinstance(value, str) and not isinstance(value, WindowKind):
        value = value.strip().lower()
    return _enum_or_default(WindowKind, value, WindowKind.HANNING)


def coerce_location(value: SensorLocation | str) -> SensorLocation:
    """Map ``value`` onto :class:`SensorLocation`; unknown mounts fall back to DE."""
    if isinstance(value, str) and not isinstance(value, SensorLocation):
        value = value.strip().upper()
    return _enum_or_default(SensorLocation, value, SensorLocation.DRIVE_END)


# ---------------------------------------------------------------------------
# Machine, sensors, fault
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RampConfig:
    enabled: bool = False
    from_rpm: float = 1200.0
    to_rpm: float = 3600.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], rpm: float | None = None) -> RampConfig:
        """Parse a ramp; missing ends default to ``rpm`` (the machine speed) when given."""
        return cls(
            enabled=bool(_get(data, "enabled", default=False)),
            from_rpm=float(_get(data, "from_rpm", "from", default=rpm or cls.from_rpm)),
            to_rpm=float(_get(data, "to_rpm", "to", default=rpm or cls.to_rpm)),
        )


@dataclass(frozen=True)
class MachineConfig:
    """Operating point of the simulated machine.

    Attributes:
        rpm: Shaft speed in RPM (> 0).
        load: Load factor, clamped to 0–1.
        units: Display units requested by the caller.
        ramp: Optional linear speed ramp across the synthesized buffer.
    """

    rpm: float = 1800.0
    load: float = 0.75
    units: DisplayUnits = DisplayUnits.MM_PER_S
    ramp: RampConfig | None = None

    def __post_init__(self) -> None:
        if not self.rpm > 0:
            raise ConfigurationError(f"Machine speed must be > 0 RPM, got {self.rpm}")
        object.__setattr__(self, "rpm", float(self.rpm))
        object.__setattr__(self, "load", clamp(self.load))
        units = _enum_or_default(DisplayUnits, self.units, DisplayUnits.MM_PER_S)
        object.__setattr__(self, "units", units)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MachineConfig:
        ramp = _get(data, "ramp")
        rpm = float(_get(data, "rpm", default=cls.rpm))
        return cls(
            rpm=rpm,
            load=float(_get(data, "load", default=cls.load)),
            units=_get(data, "units", default=cls.units),
            ramp=RampConfig.from_dict(ramp, rpm=rpm) if isinstance(ramp, Mapping) else ramp,
        )


@dataclass(frozen=True)
class Sensor:
    id: str
    location: SensorLocation = SensorLocation.DRIVE_END
    axis: SensorAxis = SensorAxis.X
    label: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "location", coerce_location(self.location))
        if not isinstance(self.axis, SensorAxis):
            try:
                object.__setattr__(self, "axis", SensorAxis(str(self.axis).strip().upper()))
            except ValueError as exc:
                raise ConfigurationError(
                    f"Sensor {self.id!r} has unknown axis {self.axis!r}"
                ) from exc

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Sensor:
        return cls(
            id=str(data["id"]),
            location=_get(data, "location", default=SensorLocation.DRIVE_END),
            axis=_get(data, "axis", default=SensorAxis.X),
            label=_get(data, "label"),
        )


DEFAULT_SENSORS: tuple[Sensor, ...] = (
    Sensor("sensor-de-x", SensorLocation.DRIVE_END, SensorAxis.X, "DE Radial"),
    Sensor("sensor-nde-x", SensorLocation.NON_DRIVE_END, SensorAxis.X, "NDE Radial"),
    Sensor("sensor-ax-z", SensorLocation.AXIAL, SensorAxis.Z, "Axial"),
)


def validate_sensors(sensors: tuple[Sensor, ...] | list[Sensor]) -> tuple[Sensor, ...]:
    """Check a run uses 1–4 sensors with unique ids."""
    sensors = tuple(sensors)
    if not 1 <= len(sensors) <= MAX_SENSORS:
        raise ConfigurationError(
            f"A run needs between 1 and {MAX_SENSORS} sensors, got {len(sensors)}"
        )
    ids = [s.id for s in sensors]
    if len(set(ids)) != len(ids):
        raise ConfigurationError(f"Sensor ids must be unique, got {ids}")
    return sensors


@dataclass(frozen=True)
class BearingGeometry:
    """Physical geometry of a rolling‑element bearing.

    Attributes:
        rollers: Number of rolling elements.
        pitch_dia_mm: Pitch (cage) diameter in mm.
        roller_dia_mm: Roller (ball) diameter in mm.
        contact_angle_deg: Contact angle in degrees.
    """

    rollers: int
    pitch_dia_mm: float
    roller_dia_mm: float
    contact_angle_deg: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BearingGeometry:
        return cls(
            rollers=int(_get(data, "rollers", "n_balls")),
            pitch_dia_mm=float(_get(data, "pitch_dia_mm", "pitchDiameter_mm")),
            roller_dia_mm=float(_get(data, "roller_dia_mm", "rollerDiameter_mm")),
            contact_angle_deg=float(
                _get(data, "contact_angle_deg", "contactAngle_deg", default=0.0)
            ),
        )


@dataclass(frozen=True)
class GearGeometry:
    teeth: int
    mate_teeth: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GearGeometry:
        mate = _get(data, "mate_teeth", "mateTeeth")
        return cls(teeth=int(data["teeth"]), mate_teeth=int(mate) if mate is not None else None)


@dataclass(frozen=True)
class FaultConfig:
    """Selected fault mode and its optional component geometry.

    ``id`` is a :class:`FaultId` when recognised; unknown ids are kept as
    plain strings so the fault library can fall back to a healthy plan.
    """

    id: FaultId | str = FaultId.UNBALANCE
    severity: float = 0.4
    bearing: BearingGeometry | None = None
    gear: GearGeometry | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", coerce_fault_id(self.id))
        object.__setattr__(self, "severity", clamp(self.severity))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FaultConfig:
        bearing = _get(data, "bearing")
        gear = _get(data, "gear")
        return cls(
            id=_get(data, "id", "fault_id", default=FaultId.UNBALANCE),
            severity=float(_get(data, "severity", default=cls.severity)),
            bearing=BearingGeometry.from_dict(bearing) if isinstance(bearing, Mapping) else bearing,
            gear=GearGeometry.from_dict(gear) if isinstance(gear, Mapping) else gear,
            notes=_get(data, "notes"),
        )


# ---------------------------------------------------------------------------
# Synthesis / analysis parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SynthesisParams:
    """Sampling and noise parameters for one synthesis run.

    Attributes:
        fs: Sampling frequency in Hz.
        seconds: Buffer duration in seconds.
        seed: Seed for the run's random stream.
        noise_rms: Broadband noise RMS added on top of the fault plan's.
        block_size: FFT block size (power of two).
        integrate_to_velocity: Report spectra as velocity.
    """

    fs: float = 51200.0
    seconds: float = 2.0
    seed: int = 1337
    noise_rms: float = 0.02
    block_size: int = 4096
    integrate_to_velocity: bool = False

    def __post_init__(self) -> None:
        if not self.fs > 0:
            raise ConfigurationError(f"Sampling frequency must be > 0, got {self.fs}")
        if not self.seconds > 0:
            raise ConfigurationError(f"Duration must be > 0 s, got {self.seconds}")
        if not is_power_of_two(int(self.block_size)):
            raise ConfigurationError(f"Block size must be a power of two, got {self.block_size}")
        object.__setattr__(self, "block_size", int(self.block_size))
        object.__setattr__(self, "noise_rms", max(float(self.noise_rms), 0.0))

    @property
    def samples(self) -> int:
        """Samples per sensor buffer: ``floor(fs · seconds)``."""
        return int(np.floor(self.fs * self.seconds))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SynthesisParams:
        return cls(
            fs=float(_get(data, "fs", default=cls.fs)),
            seconds=float(_get(data, "seconds", default=cls.seconds)),
            seed=int(_get(data, "seed", default=cls.seed)),
            noise_rms=float(_get(data, "noise_rms", "noiseRms", default=cls.noise_rms)),
            block_size=int(_get(data, "block_size", "blockSize", default=cls.block_size)),
            integrate_to_velocity=bool(
                _get(data, "integrate_to_velocity", "integrateToVelocity", default=False)
            ),
        )


@dataclass(frozen=True)
class AnalysisSettings:
    window: WindowKind = WindowKind.HANNING
    averages: int = 4
    lines: int = 800
    envelope: bool = True
    order_tracking: bool = False
    velocity: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "window", coerce_window(self.window))
        object.__setattr__(self, "averages", max(1, int(self.averages)))
        object.__setattr__(self, "lines", max(1, int(self.lines)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AnalysisSettings:
        return cls(
            window=_get(data, "window", default=cls.window),
            averages=int(_get(data, "averages", default=cls.averages)),
            lines=int(_get(data, "lines", default=cls.lines)),
            envelope=bool(_get(data, "envelope", default=cls.envelope)),
            order_tracking=bool(_get(data, "order_tracking", "orderTracking", default=False)),
            velocity=bool(_get(data, "velocity", default=False)),
        )


# ---------------------------------------------------------------------------
# Fault plan
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HarmonicComponent:
    order: float
    amplitude: float
    phase_deg: float = 0.0
    axis: str | None = None
    random_phase: bool = False


@dataclass(frozen=True)
class SidebandDescriptor:
    center_order: float
    spacing_order: float
    count: int
    amplitude: float
    axis: str | None = None


@dataclass(frozen=True)
class ImpactDescriptor:
    frequency_hz: float
    amplitude: float
    randomness: float
    bandwidth_hz: float
    axis: str | None = None


@dataclass(frozen=True)
class FaultAnimationCue:
    mode: str
    description: str
    highlight: str
    color: str


@dataclass(frozen=True)
class FaultMarker:
    id: str
    label: str
    frequency_hz: float
    severity: float


@dataclass(frozen=True)
class FaultPlan:
    """Recipe describing the vibration content of one fault mode."""

    harmonics: tuple[HarmonicComponent, ...]
    broadband_rms: float
    cue: FaultAnimationCue
    markers: tuple[FaultMarker, ...] = ()
    sidebands: tuple[SidebandDescriptor, ...] = ()
    impacts: tuple[ImpactDescriptor, ...] = ()
    axial_bias: float | None = None
    modulation_depth: float | None = None

    def scaled(self, amplitude_scale: float) -> FaultPlan:
        """Copy with harmonic amplitudes multiplied (0 is treated as 1)."""
        scale = amplitude_scale or 1.0
        return replace(
            self,
            harmonics=tuple(replace(h, amplitude=h.amplitude * scale) for h in self.harmonics),
        )

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SignalStats:
    rms: float
    peak: float
    peak_to_peak: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MotionDescriptor:
    orbit_major: float
    orbit_minor: float
    axial: float
    torsional: float
    phase_lag: float
    cue: FaultAnimationCue
    severity: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SpectrumResult:
    """Averaged spectra for every sensor of one run.

    Attributes:
        f: Frequency axis in Hz (``block_size / 2`` bins).
        magnitude: Sensor id → averaged magnitude.
        phase: Sensor id → averaged phase in radians.
        window: Window applied to each block.
        averages: Blocks actually averaged.
        envelope: Sensor id → envelope spectrum, when requested.
        orders: Frequency axis in shaft orders, when order tracking is on.
    """

    f: NDArray[np.floating]
    magnitude: dict[str, NDArray[np.floating]]
    phase: dict[str, NDArray[np.floating]]
    window: WindowKind
    averages: int
    envelope: dict[str, NDArray[np.floating]] | None = None
    orders: NDArray[np.floating] | None = None

    @property
    def metadata(self) -> dict:
        return {"window": self.window.value, "averages": self.averages}

    def truncated(self, lines: int) -> SpectrumResult:
        """Copy limited to the first ``lines`` bins (for display payloads)."""
        n = max(1, int(lines))

        def cut(record: dict[str, NDArray[np.floating]] | None):
            if record is None:
                return None
            return {key: arr[:n] for key, arr in record.items()}

        return replace(
            self,
            f=self.f[:n],
            magnitude=cut(self.magnitude),
            phase=cut(self.phase),
            envelope=cut(self.envelope),
            orders=self.orders[:n] if self.orders is not None else None,
        )


@dataclass
class SimulationResult:
    """Output of the synthesis stage, later augmented with a spectrum."""

    request_id: str
    time: dict[str, NDArray[np.floating]]
    tach: NDArray[np.floating]
    stats: dict[str, SignalStats]
    motion: MotionDescriptor
    generated_at: int
    envelope: dict[str, NDArray[np.floating]] | None = None
    markers: tuple[FaultMarker, ...] = ()
    spectrum: SpectrumResult | None = field(default=None)

    @property
    def correlation_key(self) -> str:
        return f"{self.request_id}:{self.generated_at}"

    @property
    def samples(self) -> int:
        return len(self.tach)

    def attach_spectrum(self, spectrum: SpectrumResult) -> None:
        """Add the spectral stage's output; a result takes exactly one spectrum."""
        if self.spectrum is not None:
            raise ValueError(f"Result {self.correlation_key} already has a spectrum")
        self.spectrum = spectrum


# ---------------------------------------------------------------------------
# Stage payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SynthesisPayload:
    machine: MachineConfig = field(default_factory=MachineConfig)
    sensors: tuple[Sensor, ...] = DEFAULT_SENSORS
    fault: FaultConfig = field(default_factory=FaultConfig)
    synthesis: SynthesisParams = field(default_factory=SynthesisParams)
    analysis: AnalysisSettings = field(default_factory=AnalysisSettings)
    amplitude_scale: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "sensors", tuple(self.sensors))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SynthesisPayload:
        """Build a payload from a plain message dict.

        Raises:
            ConfigurationError: A record is missing a required key or holds
                a value of the wrong type.
        """
        try:
            sensors = _get(data, "sensors")
            return cls(
                machine=_record(MachineConfig, _get(data, "machine", default={})),
                sensors=(
                    tuple(_record(Sensor, s) for s in sensors)
                    if sensors is not None
                    else DEFAULT_SENSORS
                ),
                fault=_record(FaultConfig, _get(data, "fault", default={})),
                synthesis=_record(SynthesisParams, _get(data, "synthesis", default={})),
                analysis=_record(AnalysisSettings, _get(data, "analysis", default={})),
                amplitude_scale=float(_get(data, "amplitude_scale", "amplitudeScale", default=1.0)),
            )
        except ConfigurationError:
            raise
        except KeyError as exc:
            raise ConfigurationError(f"Payload is missing required key {exc}") from exc
        except (TypeError, ValueError, AttributeError) as exc:
            raise ConfigurationError(f"Malformed payload: {exc}") from exc


@dataclass(frozen=True)
class SpectralPayload:
    time: dict[str, NDArray[np.floating]]
    tach: NDArray[np.floating]
    fs: float
    window: WindowKind = WindowKind.HANNING
    averages: int = 4
    block_size: int = 4096
    velocity: bool = False
    envelope: dict[str, NDArray[np.floating]] | None = None
    order_tracking: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "window", coerce_window(self.window))
        object.__setattr__(self, "averages", max(1, int(self.averages)))
        if not is_power_of_two(int(self.block_size)):
            raise ConfigurationError(f"Block size must be a power of two, got {self.block_size}")
