"""
CutStock - Motor de Otimização de Corte de Barras para Esquadrias

Calcula planos de corte 1D para perfis de alumínio considerando kerf,
margens de segurança e retalhos reaproveitáveis, com heurísticas gulosas,
meta-heurísticas e um solver exato.
"""

from .core import CutPlanner, solve
from .exceptions import AccelerationUnavailable, CutStockError, InfeasibleError, ValidationError
from .models import (
    AnnealingParams, BranchAndBoundParams, CostBreakdown, CostRates, CuttingPlan, ErrorKind,
    GeneticParams, ObjectiveWeights, OptimizationRequest, OptimizationResult, Piece, SafetyMargins,
    ScoreBreakdown, Segment, Stock, StockDefinition, Strategy, StrategyComparison, TimeModel,
    WasteCategory,
)

__version__ = "1.0.0"
__author__ = "CutStock Team"

__all__ = [
    "CutPlanner",
    "solve",
    "Piece",
    "StockDefinition",
    "SafetyMargins",
    "CostRates",
    "TimeModel",
    "ObjectiveWeights",
    "GeneticParams",
    "AnnealingParams",
    "BranchAndBoundParams",
    "Strategy",
    "ErrorKind",
    "WasteCategory",
    "Segment",
    "Stock",
    "CuttingPlan",
    "CostBreakdown",
    "ScoreBreakdown",
    "OptimizationRequest",
    "OptimizationResult",
    "StrategyComparison",
    "CutStockError",
    "ValidationError",
    "InfeasibleError",
    "AccelerationUnavailable",
]
