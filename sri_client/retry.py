"""
Política de reintentos y polling para los servicios del SRI.

Un mismo RetryPolicy sirve para la llamada bloqueante
(SubmissionClient.poll) o para un ejecutor de tareas que programe cada
consulta por su cuenta usando ``next_poll_delay``.
"""
import random
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .config import SriConfig


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0
    poll_interval: float = 5.0
    max_wait: float = 60.0
    initial_poll_delay: float = 2.0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts debe ser >= 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("Los tiempos de backoff no pueden ser negativos")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval debe ser > 0")
        if self.max_wait < 0:
            raise ValueError("max_wait no puede ser negativo")

    @classmethod
    def from_config(cls, config: SriConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_retries,
            base_delay=config.backoff_base,
            max_delay=config.backoff_max,
            poll_interval=config.poll_interval,
            max_wait=config.poll_max_wait,
            initial_poll_delay=config.poll_initial_delay,
        )

    def backoff_delay(self, attempt: int) -> float:
        """min(base * 2^(attempt-1) + jitter, max) para el reintento ``attempt`` (1..n)."""
        exp = self.base_delay * (2 ** max(0, attempt - 1))
        jitter = self.rng.uniform(0, self.jitter) if self.jitter else 0.0
        return min(exp + jitter, self.max_delay)

    def backoff_delays(self) -> Iterator[float]:
        """Esperas entre intentos de transporte; nunca decrecientes."""
        previous = 0.0
        for attempt in range(1, self.max_attempts):
            delay = max(previous, self.backoff_delay(attempt))
            previous = delay
            yield delay

    def next_poll_delay(self, elapsed: float) -> Optional[float]:
        """
        Espera antes de la siguiente consulta de autorización, o None si ya
        se agotó ``max_wait``.
        """
        remaining = self.max_wait - elapsed
        if remaining <= 0:
            return None
        return min(self.poll_interval, remaining)
