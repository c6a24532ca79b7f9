"""
Heurísticas gulosas determinísticas: FFD, BFD, NFD e WFD
"""

from typing import Callable, Dict, List, Sequence, Tuple

from .models import Strategy
from .packing import Bar, PackingContext, PieceInstance, pack_sequence


def sort_decreasing(instances: Sequence[PieceInstance]) -> List[PieceInstance]:
    """Ordena por comprimento decrescente; empates mantêm a ordem de entrada"""
    return sorted(instances, key=lambda instance: -instance.length)


def first_fit_decreasing(instances: Sequence[PieceInstance], ctx: PackingContext) -> Tuple[Bar, ...]:
    """
    First-Fit-Decreasing

    Cada peça vai para a primeira barra aberta com espaço; se nenhuma
    couber, abre-se uma nova barra.
    """
    return pack_sequence(sort_decreasing(instances), ctx, Strategy.FFD)


def best_fit_decreasing(instances: Sequence[PieceInstance], ctx: PackingContext) -> Tuple[Bar, ...]:
    """
    Best-Fit-Decreasing

    Escolhe a barra que deixaria a menor sobra após o posicionamento.
    """
    return pack_sequence(sort_decreasing(instances), ctx, Strategy.BFD)


def next_fit_decreasing(instances: Sequence[PieceInstance], ctx: PackingContext) -> Tuple[Bar, ...]:
    """Next-Fit-Decreasing: só a barra corrente é considerada, O(n)"""
    return pack_sequence(sort_decreasing(instances), ctx, Strategy.NFD)


def worst_fit_decreasing(instances: Sequence[PieceInstance], ctx: PackingContext) -> Tuple[Bar, ...]:
    """Worst-Fit-Decreasing: espalha as peças pela barra com mais espaço livre"""
    return pack_sequence(sort_decreasing(instances), ctx, Strategy.WFD)


HEURISTICS: Dict[Strategy, Callable[[Sequence[PieceInstance], PackingContext], Tuple[Bar, ...]]] = {
    Strategy.FFD: first_fit_decreasing,
    Strategy.BFD: best_fit_decreasing,
    Strategy.NFD: next_fit_decreasing,
    Strategy.WFD: worst_fit_decreasing,
}


def run_heuristic(strategy: Strategy, instances: Sequence[PieceInstance], ctx: PackingContext) -> Tuple[Bar, ...]:
    if strategy not in HEURISTICS:
        raise ValueError(f"Estratégia não heurística: {strategy.value}")
    return HEURISTICS[strategy](instances, ctx)
