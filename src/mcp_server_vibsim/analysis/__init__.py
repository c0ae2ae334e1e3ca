"""Vibration analysis library: fault plans, signal synthesis and spectral analysis."""

from mcp_server_vibsim.analysis.bearing import (
    BearingDefectFrequencies,
    calculate_bearing_defect_frequencies,
    calculate_bearing_faults,
)
from mcp_server_vibsim.analysis.faults import (
    BASE_AMPLITUDE,
    FAULT_LIBRARY,
    build_fault_plan,
    fault_presets,
)
from mcp_server_vibsim.analysis.gears import gear_mesh_frequency, gear_sideband_frequencies
from mcp_server_vibsim.analysis.spectral import compute_spectrum

__all__ = [
    "BASE_AMPLITUDE",
    "FAULT_LIBRARY",
    "build_fault_plan",
    "fault_presets",
    "BearingDefectFrequencies",
    "calculate_bearing_defect_frequencies",
    "calculate_bearing_faults",
    "gear_mesh_frequency",
    "gear_sideband_frequencies",
    "compute_spectrum",
]
