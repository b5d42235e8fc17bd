"""Retention job configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class RetentionConfig:
    """Configuración de la política de retención."""
    retention: timedelta = timedelta(days=30)
    interval: timedelta = timedelta(hours=1)

    def __post_init__(self):
        if self.retention <= timedelta(0):
            raise ValueError("retention must be positive")
        if self.interval <= timedelta(0):
            raise ValueError("interval must be positive")
