"""Exception types raised by the vibration simulator engine."""

from __future__ import annotations


class SimulatorError(Exception):
    """Base class for all simulator errors."""


class ConfigurationError(SimulatorError, ValueError):
    """A configuration record is missing data the selected fault needs.

    Raised synchronously (never retried) for missing bearing/gear geometry,
    invalid sensor sets, or physically meaningless synthesis parameters.
    """


class ExecutionContextError(SimulatorError, RuntimeError):
    """An offloaded execution context failed to start or crashed mid-job."""

    def __init__(self, stage: str, request_id: str | None, message: str) -> None:
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.request_id = request_id
