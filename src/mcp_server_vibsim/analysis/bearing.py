"""Bearing defect frequency calculations.

Computes characteristic defect frequencies (BPFO, BPFI, BSF, FTF) from
bearing geometry and shaft speed.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Literal

from mcp_server_vibsim.analysis.units import rpm_to_hz
from mcp_server_vibsim.errors import ConfigurationError
from mcp_server_vibsim.models import BearingGeometry, MachineConfig

DefectKey = Literal["bpfo", "bpfi", "bsf", "ftf"]

_LABELS: dict[str, str] = {
    "bpfo": "BPFO",
    "bpfi": "BPFI",
    "bsf": "BSF",
    "ftf": "FTF",
}


@dataclass(frozen=True)
class BearingDefectFrequencies:
    """Characteristic defect frequencies normalised to shaft speed.

    All values are multiples of the shaft rotational frequency f_r.
    Multiply by f_r (Hz) to get absolute frequencies.

    Attributes:
        bpfo: Ball Pass Frequency — Outer race.
        bpfi: Ball Pass Frequency — Inner race.
        bsf: Ball Spin Frequency.
        ftf: Fundamental Train (cage) Frequency.
    """

    bpfo: float
    bpfi: float
    bsf: float
    ftf: float

    def to_dict(self) -> dict:
        return asdict(self)

    def absolute(self, shaft_freq_hz: float) -> dict[str, float]:
        """Return absolute frequencies in Hz given shaft speed."""
        return {
            "bpfo": self.bpfo * shaft_freq_hz,
            "bpfi": self.bpfi * shaft_freq_hz,
            "bsf": self.bsf * shaft_freq_hz,
            "ftf": self.ftf * shaft_freq_hz,
        }


def ensure_bearing_geometry(geometry: BearingGeometry | None) -> BearingGeometry:
    """Return ``geometry`` or fail fast when a bearing fault has none."""
    if geometry is None:
        raise ConfigurationError("Bearing geometry is required for bearing faults.")
    return geometry


def calculate_bearing_defect_frequencies(
    geometry: BearingGeometry,
) -> BearingDefectFrequencies:
    """Compute bearing defect frequencies (normalised to shaft speed).

    Standard kinematic equations for rolling‑element bearings.

    Args:
        geometry: Bearing physical dimensions.

    Returns:
        Normalised defect frequencies (multiply by f_r to get Hz).

    Raises:
        ConfigurationError: If geometry parameters are physically invalid.
    """
    n = geometry.rollers
    d = geometry.roller_dia_mm
    D = geometry.pitch_dia_mm
    alpha = math.radians(geometry.contact_angle_deg)

    if n < 1:
        raise ConfigurationError(f"Number of rollers must be ≥ 1, got {n}")
    if d <= 0 or D <= 0:
        raise ConfigurationError("Roller and pitch diameters must be > 0")
    if d >= D:
        raise ConfigurationError("Roller diameter must be < pitch diameter")

    cos_alpha = math.cos(alpha)
    ratio = d / D

    # Fundamental Train Frequency (cage speed / shaft speed)
    ftf = 0.5 * (1.0 - ratio * cos_alpha)

    # Ball Pass Frequency, Outer race
    bpfo = 0.5 * n * (1.0 - ratio * cos_alpha)

    # Ball Pass Frequency, Inner race
    bpfi = 0.5 * n * (1.0 + ratio * cos_alpha)

    # Ball Spin Frequency
    bsf = (D / (2.0 * d)) * (1.0 - (ratio * cos_alpha) ** 2)

    return BearingDefectFrequencies(bpfo=bpfo, bpfi=bpfi, bsf=bsf, ftf=ftf)


def calculate_bearing_faults(
    machine: MachineConfig,
    geometry: BearingGeometry,
) -> dict[str, float]:
    """Absolute defect frequencies (Hz) at the machine's running speed."""
    defects = calculate_bearing_defect_frequencies(geometry)
    return defects.absolute(rpm_to_hz(machine.rpm))


def bearing_fault_label(key: str) -> str:
    return _LABELS.get(key, key)
