import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet

RETRYABLE_STATUSES = frozenset({502, 503, 504})


@dataclass
class RetryPolicy:
    """Política de reintentos con backoff exponencial.

    `max_retries` cuenta los intentos adicionales al primero: con 2 hay como
    máximo 3 intentos. La espera antes del reintento n (1-based) es
    `base_delay * 2 ** (n - 1)`, acotada por `max_delay`.
    """

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_statuses: FrozenSet[int] = field(default_factory=lambda: RETRYABLE_STATUSES)
    sleep: Callable[[float], None] = time.sleep

    @property
    def max_attempts(self) -> int:
        return 1 + max(0, int(self.max_retries))

    def is_retryable_status(self, status_code: int) -> bool:
        return int(status_code) in self.retryable_statuses

    def should_retry(self, attempt: int) -> bool:
        """`attempt` es el número del intento que acaba de fallar (1-based)."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))

    def wait(self, attempt: int) -> float:
        delay = self.delay_for(attempt)
        if delay > 0:
            self.sleep(delay)
        return delay
