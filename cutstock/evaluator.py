"""
Avaliador multiobjetivo (eficiência, desperdício, custo, energia)

O avaliador é puro: o mesmo plano com as mesmas taxas sempre produz a mesma
pontuação.
"""

from dataclasses import dataclass
from typing import Sequence

from .models import CostBreakdown, CostRates, CuttingPlan, ObjectiveWeights, ScoreBreakdown, TimeModel
from .packing import Bar, PackingContext, close_bar


@dataclass(frozen=True)
class PlanMetrics:
    """Grandezas agregadas de um plano, suficientes para pontuá-lo"""
    bars_used: int
    segments: int
    piece_length: float      # soma dos comprimentos das peças
    leftover: float          # soma das sobras finais
    waste_leftover: float    # parte das sobras abaixo do limite de retalho
    fill_squares: float      # soma de (consumido / útil)^2 por barra


def metrics_from_bars(bars: Sequence[Bar], ctx: PackingContext) -> PlanMetrics:
    segments = 0
    piece_length = 0.0
    leftover = 0.0
    waste_leftover = 0.0
    fill_squares = 0.0
    for bar in bars:
        count = len(bar.items)
        segments += count
        piece_length += bar.consumed - ctx.kerf * (count - 1)
        waste, scrap = close_bar(bar, ctx)
        leftover += waste + scrap
        waste_leftover += waste
        fill_squares += (bar.consumed / ctx.usable_length) ** 2
    return PlanMetrics(len(bars), segments, piece_length, leftover, waste_leftover, fill_squares)


def metrics_from_plan(plan: CuttingPlan) -> PlanMetrics:
    fill_squares = 0.0
    for stock in plan.stocks:
        fill_squares += (stock.consumed_length / stock.usable_length) ** 2
    return PlanMetrics(
        bars_used=plan.bars_used,
        segments=plan.segment_count,
        piece_length=float(plan.total_piece_length),
        leftover=sum(stock.leftover for stock in plan.stocks),
        waste_leftover=plan.total_waste,
        fill_squares=fill_squares,
    )


class ObjectiveEvaluator:
    """
    Pontuação compartilhada por todos os solvers.

    efficiency = usedLength / (barsUsed * nominalLength) * 100
    waste      = barsUsed * nominalLength - usedLength
    cost       = material + corte + preparação + desperdício + tempo + energia
    composite  = w_eff * efficiency - w_cost * cost + w_cons * consolidation
    """

    def __init__(self, stock_length: float, cost_rates: CostRates = None,
                 time_model: TimeModel = None, weights: ObjectiveWeights = None):
        self.stock_length = stock_length
        self.cost_rates = cost_rates or CostRates()
        self.time_model = time_model or TimeModel()
        self.weights = weights or ObjectiveWeights()

    def terms(self, bars_used, segments, piece_length, leftover, waste_leftover, fill_squares):
        """
        Aritmética da pontuação.

        Aceita escalares ou arrays (NumPy/CuPy) elemento a elemento, de modo
        que o backend acelerado reutiliza exatamente as mesmas fórmulas.
        Requer bars_used > 0.
        """
        rates = self.cost_rates
        times = self.time_model
        weights = self.weights

        nominal_total = bars_used * self.stock_length
        efficiency = piece_length / nominal_total * 100.0
        waste = nominal_total - piece_length

        material_cost = (nominal_total - leftover) * rates.material
        cutting_cost = segments * rates.cutting
        setup_cost = bars_used * rates.setup
        waste_cost = waste_leftover * rates.waste
        minutes = bars_used * times.setup_minutes_per_bar + segments * times.cut_minutes_per_segment
        time_cost = minutes * rates.time
        energy_cost = bars_used * times.energy_kwh_per_bar * rates.energy
        total_cost = material_cost + cutting_cost + setup_cost + waste_cost + time_cost + energy_cost

        consolidation = fill_squares / bars_used * 100.0
        composite = (weights.efficiency * efficiency
                     - weights.cost * total_cost
                     + weights.consolidation * consolidation)

        costs = (material_cost, cutting_cost, setup_cost, waste_cost, time_cost, energy_cost, total_cost)
        return efficiency, waste, costs, composite

    def score(self, metrics: PlanMetrics) -> ScoreBreakdown:
        if metrics.bars_used == 0:
            return ScoreBreakdown(efficiency=0.0, waste=0.0, cost=0.0, composite=0.0,
                                  cost_breakdown=CostBreakdown())

        efficiency, waste, costs, composite = self.terms(
            metrics.bars_used, metrics.segments, metrics.piece_length,
            metrics.leftover, metrics.waste_leftover, metrics.fill_squares,
        )
        material, cutting, setup, waste_cost, time_cost, energy, total = costs
        return ScoreBreakdown(
            efficiency=efficiency,
            waste=waste,
            cost=total,
            composite=composite,
            cost_breakdown=CostBreakdown(
                material_cost=material,
                cutting_cost=cutting,
                setup_cost=setup,
                waste_cost=waste_cost,
                time_cost=time_cost,
                energy_cost=energy,
                total_cost=total,
            ),
        )

    def score_bars(self, bars: Sequence[Bar], ctx: PackingContext) -> ScoreBreakdown:
        return self.score(metrics_from_bars(bars, ctx))

    def composite(self, bars: Sequence[Bar], ctx: PackingContext) -> float:
        """Atalho usado nos laços de busca"""
        metrics = metrics_from_bars(bars, ctx)
        if metrics.bars_used == 0:
            return 0.0
        return self.terms(metrics.bars_used, metrics.segments, metrics.piece_length,
                          metrics.leftover, metrics.waste_leftover, metrics.fill_squares)[3]

    def evaluate(self, plan: CuttingPlan) -> ScoreBreakdown:
        """Pontua um plano já materializado"""
        return self.score(metrics_from_plan(plan))
