"""Process-level settings read from the environment.

Variables:
    VIBSIM_LOG_LEVEL:     Logging level for the CLI (default ``WARNING``).
    VIBSIM_OFFLOAD:       ``1`` to run pipeline stages on background worker
                          threads, ``0`` to run them in-process (default ``1``).
    VIBSIM_JOB_TIMEOUT_S: Seconds a blocking caller waits for a complete
                          result (default ``30``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    log_level: str = "WARNING"
    offload: bool = True
    job_timeout_s: float = 30.0


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ

    timeout_raw = env.get("VIBSIM_JOB_TIMEOUT_S")
    try:
        timeout = float(timeout_raw) if timeout_raw else Settings.job_timeout_s
    except ValueError:
        timeout = Settings.job_timeout_s

    return Settings(
        log_level=env.get("VIBSIM_LOG_LEVEL", Settings.log_level).upper(),
        offload=_env_bool(env.get("VIBSIM_OFFLOAD"), Settings.offload),
        job_timeout_s=max(timeout, 0.0),
    )
