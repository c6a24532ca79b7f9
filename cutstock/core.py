"""
Núcleo do motor CutStock: validação da requisição e despacho das estratégias
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .budget import Deadline
from .evaluator import ObjectiveEvaluator
from .exact import BranchAndBound
from .exceptions import InfeasibleError, ValidationError
from .heuristics import run_heuristic
from .metaheuristics import GeneticAlgorithm, SimulatedAnnealing
from .models import (
    AnnealingParams, BranchAndBoundParams, ErrorKind, GeneticParams,
    HEURISTIC_STRATEGIES, OptimizationRequest, OptimizationResult, Strategy,
    StrategyComparison,
)
from .packing import EPSILON, Bar, PackingContext, PieceInstance, build_plan, expand_pieces


logger = logging.getLogger(__name__)

PARAMS_MODELS = {
    Strategy.GENETIC: GeneticParams,
    Strategy.ANNEALING: AnnealingParams,
    Strategy.BRANCH_AND_BOUND: BranchAndBoundParams,
}

RequestLike = Union[OptimizationRequest, Mapping[str, Any]]


def translate_validation_error(exc: PydanticValidationError, prefix: str = "") -> ValidationError:
    """Converte o erro do pydantic no ValidationError do motor, com o campo ofensor"""
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return ValidationError(first.get("msg", str(exc)), field=(prefix + location) or None)


@dataclass
class _Run:
    """Tudo que um solver recebe para uma execução"""
    request: OptimizationRequest
    ctx: PackingContext
    instances: List[PieceInstance]
    evaluator: ObjectiveEvaluator
    params: Optional[BaseModel]
    deadline: Deadline


@dataclass
class _Outcome:
    bars: Tuple[Bar, ...]
    timed_out: bool = False
    proof_of_optimality: Optional[bool] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CutPlanner:
    """
    Motor principal de otimização de cortes
    """

    def __init__(self):
        self.algorithms = {
            Strategy.FFD: self._heuristic,
            Strategy.BFD: self._heuristic,
            Strategy.NFD: self._heuristic,
            Strategy.WFD: self._heuristic,
            Strategy.GENETIC: self._genetic,
            Strategy.ANNEALING: self._annealing,
            Strategy.BRANCH_AND_BOUND: self._branch_and_bound,
        }

    def optimize(self, request: RequestLike) -> OptimizationResult:
        """
        Otimiza o corte e devolve sempre um resultado

        Erros de validação e de inviabilidade viram respostas com
        success=False; qualquer outra exceção é propagada.

        Args:
            request: Requisição de otimização (modelo ou dicionário)

        Returns:
            Resultado da otimização
        """
        start_time = time.time()
        try:
            return self.solve_plan(request)
        except ValidationError as exc:
            kind = ErrorKind.INFEASIBLE if isinstance(exc, InfeasibleError) else ErrorKind.VALIDATION
            logger.info("Requisição rejeitada (%s): %s", kind.value, exc)
            strategy = request.strategy if isinstance(request, OptimizationRequest) else None
            return OptimizationResult(
                success=False,
                strategy=strategy,
                error=kind,
                error_message=str(exc),
                error_field=exc.field,
                processing_time=(time.time() - start_time) * 1000,
            )

    def solve_plan(self, request: RequestLike) -> OptimizationResult:
        """Como optimize, mas levanta ValidationError/InfeasibleError"""
        start_time = time.time()
        request = self._coerce_request(request)
        self._validate_domain(request)
        params = self._resolve_params(request)

        ctx = PackingContext.from_request(request)
        run = _Run(
            request=request,
            ctx=ctx,
            instances=expand_pieces(request.pieces),
            evaluator=ObjectiveEvaluator(request.stock_length, request.cost_rates,
                                         request.time_model, request.weights),
            params=params,
            deadline=Deadline(request.time_budget_ms),
        )

        logger.info("Otimizando %d peças (%d tipos) com %s",
                    len(run.instances), len(request.pieces), request.strategy.value)
        outcome = self.algorithms[request.strategy](run)

        score = run.evaluator.score_bars(outcome.bars, ctx)
        plan = build_plan(outcome.bars, run.instances, ctx, request.strategy, cost=score.cost)

        processing_time = (time.time() - start_time) * 1000
        logger.info("%s: %d barras, eficiência %.2f%%, %.1f ms",
                    request.strategy.value, plan.bars_used, score.efficiency, processing_time)

        return OptimizationResult(
            success=True,
            strategy=request.strategy,
            plan=plan,
            score_breakdown=score,
            proof_of_optimality=outcome.proof_of_optimality,
            timed_out=outcome.timed_out,
            processing_time=processing_time,
            metadata=outcome.metadata,
        )

    def compare(self, request: RequestLike, strategies: Optional[Sequence[Strategy]] = None,
                max_workers: Optional[int] = None) -> StrategyComparison:
        """
        Executa várias estratégias em paralelo sobre a mesma entrada

        Os parâmetros da requisição valem só para a estratégia dela; as
        demais usam os padrões.

        Args:
            request: Requisição base
            strategies: Estratégias a comparar (padrão: heurísticas + GA)
            max_workers: Threads do pool (padrão: uma por estratégia)

        Returns:
            Resultados por estratégia e a melhor pelo score composto
        """
        request = self._coerce_request(request)
        if strategies is None:
            strategies = list(HEURISTIC_STRATEGIES) + [Strategy.GENETIC]
        strategies = list(dict.fromkeys(Strategy(s) for s in strategies))
        if not strategies:
            raise ValidationError("Nenhuma estratégia informada para comparação", field="strategies")

        variants = []
        for strategy in strategies:
            params = request.strategy_params if strategy == request.strategy else {}
            variants.append(request.model_copy(update={"strategy": strategy, "strategy_params": params}))

        with ThreadPoolExecutor(max_workers=max_workers or len(variants)) as pool:
            results = dict(zip(strategies, pool.map(self.optimize, variants)))

        comparison = StrategyComparison(results=results)
        ranking = comparison.ranking()
        if ranking:
            comparison = StrategyComparison(results=results, best_strategy=ranking[0][0])
            logger.info("Comparação: melhor estratégia %s (score %.4f)", ranking[0][0].value, ranking[0][1])
        return comparison

    # ------------------------------------------------------------------
    # Validação
    # ------------------------------------------------------------------

    def _coerce_request(self, request: RequestLike) -> OptimizationRequest:
        if isinstance(request, OptimizationRequest):
            return request
        try:
            return OptimizationRequest.model_validate(request)
        except PydanticValidationError as exc:
            raise translate_validation_error(exc) from exc

    def _validate_domain(self, request: OptimizationRequest) -> None:
        usable = request.usable_length
        if usable <= 0:
            raise ValidationError(
                f"Margens de segurança ({request.safety_margins.total}mm) consomem a barra inteira",
                field="safety_margins",
            )
        for i, piece in enumerate(request.pieces):
            if piece.length > usable + EPSILON:
                raise InfeasibleError(
                    f"Peça de {piece.length}mm não cabe na barra útil de {usable}mm",
                    field=f"pieces.{i}.length",
                )

    def _resolve_params(self, request: OptimizationRequest) -> Optional[BaseModel]:
        model = PARAMS_MODELS.get(request.strategy)
        if model is None:
            if request.strategy_params:
                raise ValidationError(
                    f"A estratégia {request.strategy.value} não aceita parâmetros",
                    field="strategy_params",
                )
            return None
        try:
            return model.model_validate(request.strategy_params)
        except PydanticValidationError as exc:
            raise translate_validation_error(exc, prefix="strategy_params.") from exc

    # ------------------------------------------------------------------
    # Estratégias
    # ------------------------------------------------------------------

    def _heuristic(self, run: _Run) -> _Outcome:
        return _Outcome(bars=run_heuristic(run.request.strategy, run.instances, run.ctx))

    def _genetic(self, run: _Run) -> _Outcome:
        solver = GeneticAlgorithm(run.instances, run.ctx, run.evaluator, run.params, run.deadline)
        found = solver.run()
        return _Outcome(
            bars=found.bars,
            timed_out=found.timed_out,
            metadata={
                "generations": found.iterations,
                "backend": solver.batch_evaluator.name,
                "history": [{"best": best, "average": average} for best, average in found.history],
            },
        )

    def _annealing(self, run: _Run) -> _Outcome:
        found = SimulatedAnnealing(run.instances, run.ctx, run.evaluator, run.params, run.deadline).run()
        return _Outcome(bars=found.bars, timed_out=found.timed_out, metadata={"iterations": found.iterations})

    def _branch_and_bound(self, run: _Run) -> _Outcome:
        params: BranchAndBoundParams = run.params
        if len(run.instances) > params.max_instances:
            raise ValidationError(
                f"{len(run.instances)} peças excedem o limite de {params.max_instances} do solver exato",
                field="strategy_params.max_instances",
            )
        found = BranchAndBound(run.instances, run.ctx, params, run.deadline).run()
        return _Outcome(
            bars=found.bars,
            timed_out=found.timed_out,
            proof_of_optimality=found.proven,
            metadata={"nodes": found.nodes, "lower_bound": found.lower_bound},
        )


def solve(request: RequestLike) -> OptimizationResult:
    """Ponto de entrada funcional: uma requisição, um resultado"""
    return CutPlanner().optimize(request)
