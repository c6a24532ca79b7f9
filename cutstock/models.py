"""
Modelos de dados para o motor CutStock
"""

from collections import Counter
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Tolerância numérica para somas de comprimentos com kerf fracionário
LENGTH_TOLERANCE = 1e-6


class Strategy(str, Enum):
    """Estratégias de otimização suportadas"""
    FFD = "FFD"                             # First-Fit-Decreasing
    BFD = "BFD"                             # Best-Fit-Decreasing
    NFD = "NFD"                             # Next-Fit-Decreasing
    WFD = "WFD"                             # Worst-Fit-Decreasing
    GENETIC = "GENETIC"                     # Algoritmo genético
    ANNEALING = "ANNEALING"                 # Simulated annealing
    BRANCH_AND_BOUND = "BRANCH_AND_BOUND"   # Solver exato

    @property
    def is_heuristic(self) -> bool:
        return self in HEURISTIC_STRATEGIES


HEURISTIC_STRATEGIES = (Strategy.FFD, Strategy.BFD, Strategy.NFD, Strategy.WFD)


class ErrorKind(str, Enum):
    """Tipos de erro devolvidos ao chamador"""
    VALIDATION = "validation"
    INFEASIBLE = "infeasible"


class WasteCategory(str, Enum):
    """Faixas de sobra por barra (mm)"""
    MINIMAL = "minimal"       # < 50
    SMALL = "small"           # 50-100
    MEDIUM = "medium"         # 100-200
    LARGE = "large"           # 200-500
    EXCESSIVE = "excessive"   # >= 500

    @classmethod
    def classify(cls, leftover: float) -> "WasteCategory":
        if leftover < 50:
            return cls.MINIMAL
        if leftover < 100:
            return cls.SMALL
        if leftover < 200:
            return cls.MEDIUM
        if leftover < 500:
            return cls.LARGE
        return cls.EXCESSIVE


# ----------------------------------------------------------------------------
# Entradas
# ----------------------------------------------------------------------------

class Piece(BaseModel):
    """Representa uma peça (perfil) a ser cortada"""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="Identificador da peça")
    profile_type: str = Field("", description="Tipo de perfil")
    length: int = Field(..., gt=0, description="Comprimento (mm)")
    quantity: int = Field(1, gt=0, description="Quantidade necessária")
    work_order_id: Optional[str] = Field(None, description="Ordem de produção de origem")
    color: Optional[str] = Field(None, description="Cor do perfil")
    size: Optional[str] = Field(None, description="Medida/seção do perfil")
    priority: int = Field(1, ge=1, le=10, description="Prioridade de corte (1-10)")

    @property
    def total_length(self) -> int:
        """Comprimento total necessário"""
        return self.length * self.quantity

    def with_quantity(self, quantity: int) -> "Piece":
        """Nova peça idêntica com outra quantidade"""
        return Piece(**{**self.model_dump(), "quantity": quantity})


class StockDefinition(BaseModel):
    """Barra nominal disponível em estoque ilimitado"""
    model_config = ConfigDict(frozen=True)

    length: float = Field(..., gt=0, description="Comprimento nominal (mm)")
    name: str = Field("Barra", description="Nome descritivo")


class SafetyMargins(BaseModel):
    """Distâncias reservadas no início e no fim de cada barra"""
    model_config = ConfigDict(frozen=True)

    leading: float = Field(2.0, ge=0, description="Margem inicial (mm)")
    trailing: float = Field(2.0, ge=0, description="Margem final (mm)")

    @property
    def total(self) -> float:
        return self.leading + self.trailing


class CostRates(BaseModel):
    """Custos unitários usados pelo avaliador"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    material: float = Field(0.1, ge=0, description="Custo por mm de barra consumida")
    cutting: float = Field(0.05, ge=0, description="Custo por corte")
    setup: float = Field(10.0, ge=0, description="Custo de preparação por barra")
    waste: float = Field(0.02, ge=0, description="Custo por mm de desperdício")
    time: float = Field(0.5, ge=0, description="Custo por minuto de máquina")
    energy: float = Field(0.15, ge=0, description="Custo por kWh")


class TimeModel(BaseModel):
    """Tempos e consumo de energia de produção"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    setup_minutes_per_bar: float = Field(5.0, ge=0)
    cut_minutes_per_segment: float = Field(2.0, ge=0)
    energy_kwh_per_bar: float = Field(0.5, ge=0)


class ObjectiveWeights(BaseModel):
    """Pesos do score composto (qualidade vs. economia)"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    efficiency: float = Field(1.0, ge=0, description="Peso da eficiência (%)")
    cost: float = Field(0.001, ge=0, description="Peso do custo monetário")
    consolidation: float = Field(0.05, ge=0, description="Peso do preenchimento das barras")


# ----------------------------------------------------------------------------
# Parâmetros por estratégia
# ----------------------------------------------------------------------------

class _DecoderParams(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    decoder: Strategy = Field(Strategy.FFD, description="Regra de posicionamento usada na decodificação")
    seed: Optional[int] = Field(None, description="Semente do gerador aleatório")

    @field_validator("decoder")
    @classmethod
    def validate_decoder(cls, v):
        if not v.is_heuristic:
            raise ValueError("O decodificador deve ser FFD, BFD, NFD ou WFD")
        return v


class GeneticParams(_DecoderParams):
    """Parâmetros do algoritmo genético"""
    population_size: int = Field(50, ge=2, description="Tamanho da população")
    generations: int = Field(100, ge=0, description="Número de gerações")
    mutation_rate: float = Field(0.1, ge=0, le=1, description="Probabilidade de mutação por cromossomo")
    crossover_rate: float = Field(0.8, ge=0, le=1, description="Probabilidade de crossover")
    use_acceleration: bool = Field(True, description="Tentar avaliação acelerada da população")
    accelerator: Literal["cuda", "numpy"] = Field("cuda", description="Dispositivo do backend acelerado")
    workers: Optional[int] = Field(None, ge=1, description="Threads do backend de CPU")


class AnnealingParams(_DecoderParams):
    """Parâmetros do simulated annealing"""
    initial_temperature: float = Field(10.0, gt=0)
    cooling_rate: float = Field(0.995, gt=0, lt=1)
    min_temperature: float = Field(1e-3, gt=0)
    max_iterations: int = Field(5000, ge=0)


class BranchAndBoundParams(BaseModel):
    """Parâmetros do solver exato"""
    model_config = ConfigDict(frozen=True, extra="forbid")

    max_instances: int = Field(20, ge=1, description="Máximo de peças individuais aceitas")
    node_limit: int = Field(500_000, ge=1, description="Máximo de nós explorados")


class OptimizationRequest(BaseModel):
    """Requisição para otimização"""
    model_config = ConfigDict(frozen=True)

    pieces: List[Piece] = Field(..., min_length=1, description="Peças a cortar")
    stock_length: float = Field(..., gt=0, description="Comprimento nominal da barra (mm)")
    kerf: float = Field(3.5, ge=0, description="Espessura do corte (mm)")
    safety_margins: SafetyMargins = Field(default_factory=SafetyMargins)
    scrap_threshold: float = Field(75.0, ge=0, description="Sobra mínima reaproveitável (mm)")
    strategy: Strategy = Field(Strategy.FFD, description="Estratégia de otimização")
    strategy_params: Dict[str, Any] = Field(default_factory=dict, description="Parâmetros da estratégia")
    time_budget_ms: Optional[int] = Field(None, ge=0, description="Tempo máximo de execução (ms)")
    cost_rates: CostRates = Field(default_factory=CostRates)
    time_model: TimeModel = Field(default_factory=TimeModel)
    weights: ObjectiveWeights = Field(default_factory=ObjectiveWeights)

    @property
    def stock(self) -> StockDefinition:
        return StockDefinition(length=self.stock_length)

    @property
    def usable_length(self) -> float:
        """Comprimento útil da barra descontadas as margens"""
        return self.stock_length - self.safety_margins.total

    @property
    def instance_count(self) -> int:
        return sum(p.quantity for p in self.pieces)


# ----------------------------------------------------------------------------
# Saídas
# ----------------------------------------------------------------------------

class Segment(BaseModel):
    """Uma peça posicionada dentro de uma barra"""
    model_config = ConfigDict(frozen=True)

    piece: Piece = Field(..., description="Peça de origem (proveniência preservada)")
    order: int = Field(..., ge=1, description="Ordem de corte na barra")
    position: float = Field(..., ge=0, description="Posição inicial a partir da ponta da barra (mm)")
    length: int = Field(..., gt=0, description="Comprimento da peça (mm)")
    consumed: float = Field(..., gt=0, description="Espaço consumido incluindo kerf (mm)")


class Stock(BaseModel):
    """Barra aberta: segmentos ordenados e sobra final"""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    nominal_length: float = Field(..., gt=0)
    usable_length: float = Field(..., gt=0)
    segments: Tuple[Segment, ...] = Field(...)
    leftover: float = Field(..., ge=0, description="Sobra final (mm)")
    waste: float = Field(0.0, ge=0, description="Sobra abaixo do limite de retalho")
    scrap: float = Field(0.0, ge=0, description="Sobra reaproveitável")

    @model_validator(mode="after")
    def check_accounting(self):
        consumed = sum(s.consumed for s in self.segments)
        if abs(consumed + self.leftover - self.usable_length) > LENGTH_TOLERANCE:
            raise ValueError(
                f"Contabilidade inválida na barra {self.index}: "
                f"{consumed} + {self.leftover} != {self.usable_length}"
            )
        return self

    @property
    def consumed_length(self) -> float:
        return sum(s.consumed for s in self.segments)

    @property
    def piece_length(self) -> int:
        return sum(s.length for s in self.segments)

    @property
    def kerf_loss(self) -> float:
        return self.consumed_length - self.piece_length

    @property
    def waste_category(self) -> WasteCategory:
        return WasteCategory.classify(self.leftover)

    @property
    def is_reclaimable(self) -> bool:
        return self.scrap > 0

    @property
    def pattern_label(self) -> str:
        """Rótulo do padrão de corte, ex.: '2 × 2000 mm + 1 × 800 mm'"""
        if not self.segments:
            return "Sem peças"
        counts = Counter(s.length for s in self.segments)
        return " + ".join(f"{counts[length]} × {length} mm" for length in sorted(counts, reverse=True))


class CuttingPlan(BaseModel):
    """Plano de corte imutável produzido por um solver"""
    model_config = ConfigDict(frozen=True)

    strategy: Strategy
    stock_length: float = Field(..., gt=0)
    stocks: Tuple[Stock, ...] = Field(...)
    bars_used: int = Field(..., ge=0)
    total_waste: float = Field(..., ge=0, description="Soma das sobras abaixo do limite (mm)")
    total_scrap: float = Field(..., ge=0, description="Soma dos retalhos reaproveitáveis (mm)")
    efficiency: float = Field(..., description="Aproveitamento percentual")
    cost: float = Field(0.0, description="Custo monetário total")
    total_kerf_loss: float = Field(0.0, ge=0)
    total_safety_reserve: float = Field(0.0, ge=0)

    @model_validator(mode="after")
    def check_bars(self):
        if self.bars_used != len(self.stocks):
            raise ValueError("bars_used difere do número de barras")
        return self

    @property
    def total_piece_length(self) -> int:
        return sum(stock.piece_length for stock in self.stocks)

    @property
    def segment_count(self) -> int:
        return sum(len(stock.segments) for stock in self.stocks)

    def segments(self) -> Iterator[Segment]:
        for stock in self.stocks:
            yield from stock.segments

    def work_order_breakdown(self) -> Dict[Optional[str], int]:
        """Quantidade de peças cortadas por ordem de produção"""
        breakdown: Dict[Optional[str], int] = {}
        for segment in self.segments():
            key = segment.piece.work_order_id
            breakdown[key] = breakdown.get(key, 0) + 1
        return breakdown


class CostBreakdown(BaseModel):
    """Decomposição do custo monetário"""
    model_config = ConfigDict(frozen=True)

    material_cost: float = 0.0
    cutting_cost: float = 0.0
    setup_cost: float = 0.0
    waste_cost: float = 0.0
    time_cost: float = 0.0
    energy_cost: float = 0.0
    total_cost: float = 0.0


class ScoreBreakdown(BaseModel):
    """Pontuação multiobjetivo de um plano"""
    model_config = ConfigDict(frozen=True)

    efficiency: float
    waste: float
    cost: float
    composite: float
    cost_breakdown: CostBreakdown


class OptimizationResult(BaseModel):
    """Resultado completo da otimização"""
    success: bool = Field(..., description="Se a otimização foi bem-sucedida")
    strategy: Optional[Strategy] = Field(None, description="Estratégia utilizada")
    plan: Optional[CuttingPlan] = Field(None, description="Melhor plano encontrado")
    score_breakdown: Optional[ScoreBreakdown] = Field(None)
    error: Optional[ErrorKind] = Field(None)
    error_message: Optional[str] = Field(None)
    error_field: Optional[str] = Field(None)
    proof_of_optimality: Optional[bool] = Field(None, description="Otimalidade comprovada (solver exato)")
    timed_out: bool = Field(False, description="Se o orçamento de tempo expirou")
    processing_time: float = Field(0.0, description="Tempo de processamento (ms)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Metadados adicionais")


class StrategyComparison(BaseModel):
    """Resultados de várias estratégias sobre a mesma entrada"""
    results: Dict[Strategy, OptimizationResult] = Field(default_factory=dict)
    best_strategy: Optional[Strategy] = Field(None, description="Maior score composto entre os sucessos")

    @property
    def best(self) -> Optional[OptimizationResult]:
        if self.best_strategy is None:
            return None
        return self.results[self.best_strategy]

    def ranking(self) -> List[Tuple[Strategy, float]]:
        """Estratégias bem-sucedidas ordenadas pelo score composto"""
        scored = [
            (strategy, result.score_breakdown.composite)
            for strategy, result in self.results.items()
            if result.success and result.score_breakdown is not None
        ]
        return sorted(scored, key=lambda item: item[1], reverse=True)
