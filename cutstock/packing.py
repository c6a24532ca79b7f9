"""
Primitivas de empacotamento 1D (kerf, capacidade restante, classificação de sobras)

Todas as funções são puras: kerf, margens e limite de retalho chegam
explicitamente através de um PackingContext.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import CuttingPlan, OptimizationRequest, Piece, Segment, Stock, Strategy


EPSILON = 1e-9


@dataclass(frozen=True)
class PackingContext:
    """Parâmetros físicos de uma execução"""
    stock_length: float
    kerf: float = 3.5
    leading_margin: float = 2.0
    trailing_margin: float = 2.0
    scrap_threshold: float = 75.0

    @classmethod
    def from_request(cls, request: OptimizationRequest) -> "PackingContext":
        return cls(
            stock_length=request.stock_length,
            kerf=request.kerf,
            leading_margin=request.safety_margins.leading,
            trailing_margin=request.safety_margins.trailing,
            scrap_threshold=request.scrap_threshold,
        )

    @property
    def usable_length(self) -> float:
        return self.stock_length - self.leading_margin - self.trailing_margin

    @property
    def safety_reserve(self) -> float:
        return self.leading_margin + self.trailing_margin


@dataclass(frozen=True)
class PieceInstance:
    """Uma unidade individual expandida a partir da quantidade de uma peça"""
    index: int          # posição no arranjo de instâncias
    piece_index: int    # posição da peça na requisição
    length: int
    piece: Piece


@dataclass(frozen=True)
class Bar:
    """Barra em construção; referencia instâncias pelo índice"""
    items: Tuple[int, ...] = ()
    consumed: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def piece_count(self) -> int:
        return len(self.items)


def expand_pieces(pieces: Iterable[Piece]) -> List[PieceInstance]:
    """Expande quantidades em instâncias individuais (ordem estável)"""
    instances: List[PieceInstance] = []
    for piece_index, piece in enumerate(pieces):
        for _ in range(piece.quantity):
            instances.append(PieceInstance(
                index=len(instances),
                piece_index=piece_index,
                length=piece.length,
                piece=piece,
            ))
    return instances


def kerf_needed(bar: Bar, ctx: PackingContext) -> float:
    """Kerf necessário antes da próxima peça (zero em barra vazia)"""
    return ctx.kerf if bar.items else 0.0


def remaining_capacity(bar: Bar, ctx: PackingContext) -> float:
    return ctx.usable_length - bar.consumed


def can_fit(bar: Bar, length: float, ctx: PackingContext) -> bool:
    return length + kerf_needed(bar, ctx) <= remaining_capacity(bar, ctx) + EPSILON


def place(bar: Bar, instance: PieceInstance, ctx: PackingContext) -> Bar:
    """
    Retorna uma nova barra com a instância anexada.

    Não verifica capacidade; o chamador usa can_fit antes.
    """
    need = instance.length + kerf_needed(bar, ctx)
    return Bar(items=bar.items + (instance.index,), consumed=bar.consumed + need)


def close_bar(bar: Bar, ctx: PackingContext) -> Tuple[float, float]:
    """
    Classifica a sobra final da barra.

    Sobra >= limite de retalho é retalho reaproveitável; abaixo disso é
    desperdício.

    Returns:
        (desperdício, retalho)
    """
    leftover = max(0.0, remaining_capacity(bar, ctx))
    if leftover > 0 and leftover + EPSILON >= ctx.scrap_threshold:
        return 0.0, leftover
    return leftover, 0.0


def max_pieces_on_bar(length: float, ctx: PackingContext) -> int:
    """
    Máximo de peças iguais numa barra.

    s1 + n*L + (n-1)*k + s2 <= S  =>  n <= (S - s1 - s2 + k) / (L + k)
    """
    if length <= 0:
        return 0
    return max(0, math.floor((ctx.usable_length + ctx.kerf) / (length + ctx.kerf) + EPSILON))


def efficiency_percent(piece_length: float, bars_used: int, stock_length: float) -> float:
    """Aproveitamento: comprimento das peças / comprimento nominal das barras abertas"""
    if bars_used <= 0:
        return 0.0
    return piece_length / (bars_used * stock_length) * 100.0


# ----------------------------------------------------------------------------
# Laço de posicionamento compartilhado pelas heurísticas e decodificadores
# ----------------------------------------------------------------------------

def _select_bar(bars: Sequence[Bar], length: float, ctx: PackingContext, rule: Strategy) -> Optional[int]:
    """Índice da barra escolhida pela regra, ou None para abrir uma nova"""
    if rule == Strategy.NFD:
        if bars and can_fit(bars[-1], length, ctx):
            return len(bars) - 1
        return None

    chosen = None
    chosen_residual = 0.0
    for i, bar in enumerate(bars):
        if not can_fit(bar, length, ctx):
            continue
        if rule == Strategy.FFD:
            return i
        residual = remaining_capacity(bar, ctx) - (length + kerf_needed(bar, ctx))
        # Desigualdade estrita: em empate vence a barra aberta primeiro
        if chosen is None:
            chosen, chosen_residual = i, residual
        elif rule == Strategy.BFD and residual < chosen_residual:
            chosen, chosen_residual = i, residual
        elif rule == Strategy.WFD and residual > chosen_residual:
            chosen, chosen_residual = i, residual
    return chosen


def pack_sequence(instances: Sequence[PieceInstance], ctx: PackingContext,
                  rule: Strategy = Strategy.FFD) -> Tuple[Bar, ...]:
    """
    Posiciona as instâncias na ordem dada segundo a regra de encaixe.

    Args:
        instances: Instâncias já ordenadas (ou permutadas)
        ctx: Parâmetros físicos
        rule: FFD, BFD, NFD ou WFD (apenas a regra de escolha da barra)

    Returns:
        Barras abertas, na ordem de abertura
    """
    if not rule.is_heuristic:
        raise ValueError(f"Regra de posicionamento inválida: {rule.value}")

    bars: List[Bar] = []
    for instance in instances:
        target = _select_bar(bars, instance.length, ctx, rule)
        if target is None:
            bars.append(place(Bar(), instance, ctx))
        else:
            bars[target] = place(bars[target], instance, ctx)
    return tuple(bars)


def build_plan(bars: Sequence[Bar], instances: Sequence[PieceInstance], ctx: PackingContext,
               strategy: Strategy, cost: float = 0.0) -> CuttingPlan:
    """Materializa o plano de corte imutável a partir das barras"""
    stocks = []
    total_waste = 0.0
    total_scrap = 0.0
    total_kerf = 0.0
    piece_length = 0

    for bar_index, bar in enumerate(bars):
        segments = []
        position = ctx.leading_margin
        last = len(bar.items) - 1
        for order, instance_index in enumerate(bar.items):
            instance = instances[instance_index]
            consumed = instance.length + (ctx.kerf if order < last else 0.0)
            segments.append(Segment(
                piece=instance.piece,
                order=order + 1,
                position=position,
                length=instance.length,
                consumed=consumed,
            ))
            position += consumed
            piece_length += instance.length

        waste, scrap = close_bar(bar, ctx)
        total_waste += waste
        total_scrap += scrap
        total_kerf += ctx.kerf * max(0, len(bar.items) - 1)
        stocks.append(Stock(
            index=bar_index,
            nominal_length=ctx.stock_length,
            usable_length=ctx.usable_length,
            segments=tuple(segments),
            leftover=waste + scrap,
            waste=waste,
            scrap=scrap,
        ))

    return CuttingPlan(
        strategy=strategy,
        stock_length=ctx.stock_length,
        stocks=tuple(stocks),
        bars_used=len(stocks),
        total_waste=total_waste,
        total_scrap=total_scrap,
        efficiency=efficiency_percent(piece_length, len(stocks), ctx.stock_length),
        cost=cost,
        total_kerf_loss=total_kerf,
        total_safety_reserve=ctx.safety_reserve * len(stocks),
    )
