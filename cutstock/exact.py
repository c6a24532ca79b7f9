"""
Solver exato Branch-and-Bound para instâncias pequenas
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .budget import Deadline
from .heuristics import best_fit_decreasing, first_fit_decreasing, sort_decreasing
from .models import BranchAndBoundParams
from .packing import EPSILON, Bar, PackingContext, PieceInstance, place


logger = logging.getLogger(__name__)

# Intervalo de nós entre verificações do prazo
_BUDGET_CHECK_INTERVAL = 1024


class _SearchStopped(Exception):
    """Orçamento de nós/tempo esgotado ou ótimo atingido"""


@dataclass
class ExactOutcome:
    bars: Tuple[Bar, ...]
    proven: bool
    timed_out: bool
    nodes: int
    lower_bound: int


class BranchAndBound:
    """
    Busca em profundidade sobre atribuições peça -> barra.

    O kerf é incorporado transformando cada peça em (l + kerf) e a
    capacidade da barra em (útil + kerf). Um nó é podado quando
    barras abertas + ceil((restante - livre) / capacidade) não melhora a
    incumbente.
    """

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 params: BranchAndBoundParams = None, deadline: Deadline = None):
        self.instances = instances
        self.ctx = ctx
        self.params = params or BranchAndBoundParams()
        self.deadline = deadline or Deadline()

        self._order = sort_decreasing(instances)
        self._weights = [i.length + ctx.kerf for i in self._order]
        self._capacity = ctx.usable_length + ctx.kerf
        self._nodes = 0
        self._timed_out = False
        self._best_count = 0
        self._best_assignment: Optional[List[List[int]]] = None
        self._lower_bound = 0

    def _bound(self, remaining: float) -> int:
        return max(0, math.ceil(remaining / self._capacity - EPSILON))

    def _incumbent(self) -> Tuple[Bar, ...]:
        candidates = [first_fit_decreasing(self.instances, self.ctx),
                      best_fit_decreasing(self.instances, self.ctx)]
        return min(candidates, key=len)

    def _tick(self) -> None:
        self._nodes += 1
        if self._nodes >= self.params.node_limit:
            raise _SearchStopped()
        if self._nodes % _BUDGET_CHECK_INTERVAL == 0 and self.deadline.expired():
            self._timed_out = True
            raise _SearchStopped()

    def _search(self, k: int, loads: List[float], assignment: List[List[int]], remaining: float) -> None:
        self._tick()

        if k == len(self._order):
            if len(loads) < self._best_count:
                self._best_count = len(loads)
                self._best_assignment = [list(bar) for bar in assignment]
                logger.debug("B&B: nova incumbente com %d barras (%d nós)", self._best_count, self._nodes)
                if self._best_count <= self._lower_bound:
                    raise _SearchStopped()
            return

        free = sum(self._capacity - load for load in loads)
        if len(loads) + self._bound(remaining - free) >= self._best_count:
            return

        weight = self._weights[k]
        tried = set()
        for b, load in enumerate(loads):
            # Barras com a mesma carga são simétricas
            if load in tried or load + weight > self._capacity + EPSILON:
                continue
            tried.add(load)
            loads[b] = load + weight
            assignment[b].append(k)
            self._search(k + 1, loads, assignment, remaining - weight)
            assignment[b].pop()
            loads[b] = load

        if len(loads) + 1 < self._best_count:
            loads.append(weight)
            assignment.append([k])
            self._search(k + 1, loads, assignment, remaining - weight)
            assignment.pop()
            loads.pop()

    def _to_bars(self, assignment: List[List[int]]) -> Tuple[Bar, ...]:
        bars = []
        for positions in assignment:
            bar = Bar()
            for position in positions:
                bar = place(bar, self._order[position], self.ctx)
            bars.append(bar)
        return tuple(bars)

    def run(self) -> ExactOutcome:
        incumbent = self._incumbent()
        self._best_count = len(incumbent)
        total = sum(self._weights)
        self._lower_bound = self._bound(total)

        proven = True
        if self._best_count > self._lower_bound:
            try:
                self._search(0, [], [], total)
            except _SearchStopped:
                # Parada por orçamento só invalida a prova se o limite inferior não foi atingido
                proven = self._best_count <= self._lower_bound
            # Sem exceção: a árvore foi esgotada e a incumbente é ótima

        bars = incumbent if self._best_assignment is None else self._to_bars(self._best_assignment)
        logger.info("B&B: %d barras, limite inferior %d, %d nós, ótimo comprovado=%s",
                    len(bars), self._lower_bound, self._nodes, proven)
        return ExactOutcome(
            bars=bars,
            proven=proven,
            timed_out=self._timed_out,
            nodes=self._nodes,
            lower_bound=self._lower_bound,
        )
