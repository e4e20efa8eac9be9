"""Runtime settings for the gateflow service."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

ENV_PREFIX = "GATEFLOW_"


class Settings(BaseModel):
    """Service configuration. Defaults match the field deployment."""

    gate_history_limit: int = Field(default=200, ge=1)
    tank_history_limit: int = Field(default=100, ge=1)
    pipeline_history_limit: int = Field(default=200, ge=1)
    # 0 disables the background refresh loop
    auto_refresh_seconds: float = Field(default=0.0, ge=0)
    flowing_color: str = "#2196F3"
    dry_color: str = "#F44336"
    log_level: str = "INFO"
    random_seed: int | None = None
    # JSON file the server loads on startup (when present) and writes on shutdown
    state_path: str | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from ``GATEFLOW_*`` variables, e.g. ``GATEFLOW_AUTO_REFRESH_SECONDS=300``."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls.model_validate(values)
