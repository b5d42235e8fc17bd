"""Políticas de reconexión para el conector MQTT.

La política decide, tras una caída del broker, cuánto esperar antes del
siguiente intento (o si rendirse). Por defecto NO se reconecta: una caída
deja al conector desconectado hasta un nuevo connect() explícito.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Protocol


class ReconnectPolicy(Protocol):
    def next_delay(self, attempt: int) -> Optional[float]:
        """Delay en segundos antes del intento `attempt` (1-indexed); None = rendirse."""
        ...


class NoReconnect:
    """Caída permanente: no hay reintentos."""

    def next_delay(self, attempt: int) -> Optional[float]:
        return None

    def __repr__(self) -> str:
        return "NoReconnect()"


@dataclass
class RetryConfig:
    """Configuración para retry con backoff."""

    max_attempts: int = 10
    base_delay: float = 1.0  # segundos
    max_delay: float = 60.0  # segundos
    exponential_base: float = 2.0
    jitter: bool = True  # Añadir variación aleatoria

    def calculate_delay(self, attempt: int) -> float:
        """Calcula el delay para un intento dado.

        Args:
            attempt: Número de intento (1-indexed)

        Returns:
            Delay en segundos
        """
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Añadir jitter de ±25%
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0, delay)


class BackoffReconnect:
    """Reconexión con backoff exponencial y jitter."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def next_delay(self, attempt: int) -> Optional[float]:
        if attempt > self._config.max_attempts:
            return None
        return self._config.calculate_delay(attempt)

    def __repr__(self) -> str:
        return f"BackoffReconnect(max_attempts={self._config.max_attempts})"
