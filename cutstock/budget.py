"""
Orçamento de tempo cooperativo para os solvers
"""

import time
from typing import Optional


class Deadline:
    """Prazo de relógio verificado entre iterações; nunca interrompe à força"""

    def __init__(self, budget_ms: Optional[int] = None):
        self.budget_ms = budget_ms
        self.started = time.monotonic()
        self._expires = None if budget_ms is None else self.started + budget_ms / 1000.0

    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() >= self._expires

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0
