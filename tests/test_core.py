"""Testes do motor CutPlanner.

Cobre:
- Cenários de referência pela interface pública (solve/optimize)
- Peça maior que a barra útil (inviável) e entradas inválidas
- Validação dos parâmetros por estratégia
- Invariantes de conservação e capacidade para todas as estratégias
- Orçamento de tempo zero no algoritmo genético
- Comparação concorrente de estratégias
"""

import pytest

import cutstock
from cutstock import CutPlanner, ErrorKind, InfeasibleError, OptimizationRequest, Strategy, ValidationError


FAST_PARAMS = {
    Strategy.GENETIC: {"population_size": 12, "generations": 6, "seed": 2, "use_acceleration": False},
    Strategy.ANNEALING: {"max_iterations": 300, "seed": 2},
}


@pytest.fixture
def planner() -> CutPlanner:
    return CutPlanner()


class TestReferenceScenarios:
    def test_single_bar_scenario(self):
        result = cutstock.solve({
            "pieces": [{"length": 2000, "quantity": 3}],
            "stock_length": 6100,
            "kerf": 3.5,
            "safety_margins": {"leading": 0, "trailing": 0},
            "strategy": "FFD",
        })

        assert result.success
        assert result.plan.bars_used == 1
        assert result.plan.segment_count == 3
        assert result.plan.total_scrap == pytest.approx(93)
        assert result.plan.total_waste == 0
        assert result.score_breakdown.waste == pytest.approx(100)
        assert result.proof_of_optimality is None
        assert result.processing_time >= 0

    def test_piece_longer_than_usable_bar(self, planner):
        request = {"pieces": [{"length": 6097}], "stock_length": 6100}

        result = planner.optimize(request)
        assert not result.success
        assert result.plan is None
        assert result.error == ErrorKind.INFEASIBLE
        assert result.error_field == "pieces.0.length"

        with pytest.raises(InfeasibleError):
            planner.solve_plan(request)

    def test_piece_equal_to_usable_bar_fits(self, planner):
        result = planner.optimize({"pieces": [{"length": 6096}], "stock_length": 6100})
        assert result.success
        assert result.plan.stocks[0].leftover == 0

    def test_genetic_with_zero_budget(self, planner, mixed_request_data):
        result = planner.optimize({**mixed_request_data, "strategy": "GENETIC", "time_budget_ms": 0,
                                   "strategy_params": {"use_acceleration": False}})

        assert result.success
        assert result.timed_out
        assert result.plan.bars_used > 0
        assert result.metadata["generations"] == 0
        assert result.metadata["backend"] == "cpu"


class TestValidation:
    def test_non_positive_length(self, planner):
        result = planner.optimize({"pieces": [{"length": 0}], "stock_length": 6100})
        assert result.error == ErrorKind.VALIDATION
        assert result.error_field == "pieces.0.length"

    def test_margins_consume_bar(self, planner):
        result = planner.optimize({
            "pieces": [{"length": 10}],
            "stock_length": 100,
            "safety_margins": {"leading": 60, "trailing": 50},
        })
        assert result.error == ErrorKind.VALIDATION
        assert result.error_field == "safety_margins"

    def test_invalid_genetic_params(self, planner, mixed_request_data):
        result = planner.optimize({**mixed_request_data, "strategy": "GENETIC",
                                   "strategy_params": {"population_size": 1}})
        assert result.error == ErrorKind.VALIDATION
        assert result.error_field == "strategy_params.population_size"

    def test_unknown_param_key(self, planner, mixed_request_data):
        with pytest.raises(ValidationError) as excinfo:
            planner.solve_plan({**mixed_request_data, "strategy": "ANNEALING",
                                "strategy_params": {"temperatura": 3}})
        assert excinfo.value.field == "strategy_params.temperatura"

    def test_heuristics_take_no_params(self, planner, mixed_request_data):
        result = planner.optimize({**mixed_request_data, "strategy": "BFD",
                                   "strategy_params": {"seed": 1}})
        assert result.error == ErrorKind.VALIDATION
        assert result.error_field == "strategy_params"

    def test_exact_solver_instance_limit(self, planner):
        result = planner.optimize({
            "pieces": [{"length": 500, "quantity": 21}],
            "stock_length": 6100,
            "strategy": "BRANCH_AND_BOUND",
        })
        assert result.error == ErrorKind.VALIDATION
        assert result.error_field == "strategy_params.max_instances"

    def test_model_request_keeps_strategy_on_error(self, planner):
        request = OptimizationRequest(pieces=[{"length": 7000}], stock_length=6100, strategy=Strategy.BFD)
        result = planner.optimize(request)
        assert result.strategy == Strategy.BFD
        assert result.error == ErrorKind.INFEASIBLE


@pytest.mark.parametrize("strategy", list(Strategy))
class TestInvariantsAllStrategies:
    def _solve(self, planner, data, strategy):
        request = {**data, "strategy": strategy.value, "strategy_params": FAST_PARAMS.get(strategy, {})}
        result = planner.optimize(request)
        assert result.success, result.error_message
        return result

    def test_conservation(self, planner, mixed_request_data, mixed_pieces, strategy):
        result = self._solve(planner, mixed_request_data, strategy)

        assert result.plan.total_piece_length == sum(p.total_length for p in mixed_pieces)
        assert result.plan.work_order_breakdown() == {"OP-1": 3, "OP-2": 4, None: 11}

    def test_capacity(self, planner, mixed_request_data, strategy):
        result = self._solve(planner, mixed_request_data, strategy)

        for stock in result.plan.stocks:
            assert stock.consumed_length <= stock.usable_length + 1e-6
            assert stock.waste == 0 or stock.scrap == 0

    def test_score_matches_plan(self, planner, mixed_request_data, strategy):
        result = self._solve(planner, mixed_request_data, strategy)

        assert result.strategy == strategy
        assert result.plan.strategy == strategy
        assert result.plan.efficiency == pytest.approx(result.score_breakdown.efficiency)
        assert result.plan.cost == pytest.approx(result.score_breakdown.cost)


def test_exact_solver_reports_proof(planner):
    result = planner.optimize({
        "pieces": [{"length": 400, "quantity": 2}, {"length": 300, "quantity": 4}],
        "stock_length": 1000,
        "kerf": 0,
        "safety_margins": {"leading": 0, "trailing": 0},
        "strategy": "BRANCH_AND_BOUND",
    })

    assert result.success
    assert result.plan.bars_used == 2
    assert result.proof_of_optimality is True
    assert result.metadata["lower_bound"] == 2


class TestCompare:
    def test_compare_heuristics(self, planner, mixed_request_data):
        comparison = planner.compare(mixed_request_data, [Strategy.FFD, Strategy.BFD, Strategy.NFD])

        assert list(comparison.results) == [Strategy.FFD, Strategy.BFD, Strategy.NFD]
        assert all(result.success for result in comparison.results.values())
        best = comparison.best
        assert best is not None
        assert best.strategy == comparison.best_strategy
        assert best.score_breakdown.composite == max(
            r.score_breakdown.composite for r in comparison.results.values()
        )

    def test_compare_keeps_params_for_requested_strategy(self, planner, mixed_request_data):
        data = {**mixed_request_data, "strategy": "GENETIC",
                "strategy_params": FAST_PARAMS[Strategy.GENETIC]}
        comparison = planner.compare(data, [Strategy.FFD, Strategy.GENETIC])

        assert comparison.results[Strategy.FFD].success
        assert comparison.results[Strategy.GENETIC].metadata["generations"] == 6

    def test_compare_requires_strategies(self, planner, mixed_request_data):
        with pytest.raises(ValidationError):
            planner.compare(mixed_request_data, [])
