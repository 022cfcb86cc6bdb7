from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class AnalysisSettings:
    transport: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    channel_prefix: str = "workspace_"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AnalysisSettings":
        transport = os.getenv("ANALYSIS_TRANSPORT", "memory").strip().lower()
        if transport not in ("memory", "redis"):
            raise ValueError(f"Unsupported ANALYSIS_TRANSPORT: {transport}")
        return cls(
            transport=transport,
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            channel_prefix=os.getenv("ANALYSIS_CHANNEL_PREFIX", "workspace_"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
