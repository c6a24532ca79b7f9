"""
Meta-heurísticas: algoritmo genético e simulated annealing

Ambas buscam no espaço de permutações das instâncias e usam uma heurística
(FFD por padrão) como decodificador.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .acceleration import AccelerationDispatcher, BatchEvaluator
from .budget import Deadline
from .evaluator import ObjectiveEvaluator
from .heuristics import sort_decreasing
from .models import AnnealingParams, GeneticParams
from .packing import Bar, PackingContext, PieceInstance, pack_sequence


logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Melhor solução encontrada por uma busca"""
    order: Tuple[int, ...]
    bars: Tuple[Bar, ...]
    composite: float
    timed_out: bool = False
    iterations: int = 0
    history: List[Tuple[float, float]] = field(default_factory=list)


def seed_order(instances: Sequence[PieceInstance]) -> np.ndarray:
    """Permutação por comprimento decrescente (equivale ao FFD)"""
    return np.asarray([i.index for i in sort_decreasing(instances)], dtype=np.int64)


def pmx_crossover(parent1: np.ndarray, parent2: np.ndarray,
                  rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Partially-mapped crossover; os filhos continuam sendo permutações válidas"""
    n = len(parent1)
    if n < 2:
        return parent1.copy(), parent2.copy()
    a, b = sorted(rng.choice(n + 1, size=2, replace=False))
    return _pmx_child(parent1, parent2, a, b), _pmx_child(parent2, parent1, a, b)


def _pmx_child(donor: np.ndarray, other: np.ndarray, a: int, b: int) -> np.ndarray:
    n = len(donor)
    child = np.full(n, -1, dtype=np.int64)
    child[a:b] = donor[a:b]
    in_window = set(donor[a:b].tolist())
    position_in_other = {int(gene): i for i, gene in enumerate(other)}

    for i in range(a, b):
        gene = int(other[i])
        if gene in in_window:
            continue
        pos = i
        while a <= pos < b:
            pos = position_in_other[int(donor[pos])]
        child[pos] = gene

    empty = child == -1
    child[empty] = other[empty]
    return child


def swap_mutation(chromosome: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    mutated = chromosome.copy()
    if len(mutated) >= 2:
        i, j = rng.choice(len(mutated), size=2, replace=False)
        mutated[i], mutated[j] = mutated[j], mutated[i]
    return mutated


def roulette_probabilities(scores: np.ndarray) -> np.ndarray:
    """Seleção proporcional ao fitness, deslocado para ser não negativo"""
    shifted = scores - scores.min()
    total = shifted.sum()
    if not np.isfinite(total) or total <= 0:
        return np.full(len(scores), 1.0 / len(scores))
    return shifted / total


class GeneticAlgorithm:
    """
    Algoritmo genético sobre permutações das instâncias.

    Cada geração: avaliação em lote, seleção por roleta, PMX, mutação por
    troca e elitismo. O melhor cromossomo de todas as gerações é mantido, de
    modo que a melhor pontuação nunca regride.
    """

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 evaluator: ObjectiveEvaluator, params: GeneticParams = None,
                 deadline: Deadline = None, batch_evaluator: Optional[BatchEvaluator] = None):
        self.instances = instances
        self.ctx = ctx
        self.evaluator = evaluator
        self.params = params or GeneticParams()
        self.deadline = deadline or Deadline()
        self.batch_evaluator = batch_evaluator or AccelerationDispatcher(
            instances, ctx, evaluator,
            decoder=self.params.decoder,
            use_acceleration=self.params.use_acceleration,
            accelerator=self.params.accelerator,
            workers=self.params.workers,
        )

    def decode(self, chromosome: Sequence[int]) -> Tuple[Bar, ...]:
        return pack_sequence([self.instances[i] for i in chromosome], self.ctx, self.params.decoder)

    def _initial_population(self, seed: np.ndarray, rng: np.random.Generator) -> List[np.ndarray]:
        population = [seed.copy()]
        while len(population) < self.params.population_size:
            population.append(rng.permutation(seed))
        return population

    def _next_generation(self, population: List[np.ndarray], scores: np.ndarray,
                         elite: np.ndarray, rng: np.random.Generator) -> List[np.ndarray]:
        params = self.params
        size = len(population)
        probabilities = roulette_probabilities(scores)

        offspring = [elite.copy()]
        while len(offspring) < size:
            i, j = rng.choice(size, size=2, p=probabilities)
            if rng.random() < params.crossover_rate:
                children = pmx_crossover(population[i], population[j], rng)
            else:
                children = (population[i].copy(), population[j].copy())
            for child in children:
                if rng.random() < params.mutation_rate:
                    child = swap_mutation(child, rng)
                if len(offspring) < size:
                    offspring.append(child)
        return offspring

    def run(self) -> SearchOutcome:
        params = self.params
        rng = np.random.default_rng(params.seed)

        # Solução semeada pela heurística: existe mesmo com orçamento zero
        best_order = seed_order(self.instances)
        best_score = self.evaluator.composite(self.decode(best_order), self.ctx)
        outcome = SearchOutcome(order=tuple(best_order.tolist()), bars=(), composite=best_score)

        logger.info("GA: %d peças, população %d, %d gerações, backend %s",
                    len(self.instances), params.population_size, params.generations,
                    self.batch_evaluator.name)

        population = self._initial_population(best_order, rng)
        for generation in range(params.generations):
            if self.deadline.expired():
                outcome.timed_out = True
                logger.info("GA: orçamento esgotado após %.1f ms", self.deadline.elapsed_ms())
                break

            scores = self.batch_evaluator.evaluate_batch(population)
            leader = int(np.argmax(scores))
            if scores[leader] > best_score:
                best_score = float(scores[leader])
                best_order = population[leader].copy()

            outcome.history.append((best_score, float(scores.mean())))
            outcome.iterations = generation + 1
            logger.debug("GA geração %d: melhor %.4f, média %.4f", generation, best_score, scores.mean())

            population = self._next_generation(population, scores, best_order, rng)

        outcome.order = tuple(int(g) for g in best_order)
        outcome.bars = self.decode(best_order)
        outcome.composite = self.evaluator.composite(outcome.bars, self.ctx)
        return outcome


class SimulatedAnnealing:
    """
    Simulated annealing sobre a permutação.

    Vizinho = troca aleatória de duas posições; piora aceita com
    probabilidade exp(-Δcusto / T), com custo = -score composto.
    """

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 evaluator: ObjectiveEvaluator, params: AnnealingParams = None,
                 deadline: Deadline = None):
        self.instances = instances
        self.ctx = ctx
        self.evaluator = evaluator
        self.params = params or AnnealingParams()
        self.deadline = deadline or Deadline()

    def _score(self, order: np.ndarray) -> Tuple[Tuple[Bar, ...], float]:
        bars = pack_sequence([self.instances[i] for i in order], self.ctx, self.params.decoder)
        return bars, self.evaluator.composite(bars, self.ctx)

    def run(self) -> SearchOutcome:
        params = self.params
        rng = np.random.default_rng(params.seed)

        current = seed_order(self.instances)
        current_bars, current_score = self._score(current)
        outcome = SearchOutcome(order=tuple(current.tolist()), bars=current_bars, composite=current_score)

        temperature = params.initial_temperature
        n = len(current)
        accepted = 0
        for iteration in range(params.max_iterations):
            if self.deadline.expired():
                outcome.timed_out = True
                break
            if temperature < params.min_temperature or n < 2:
                break

            candidate = swap_mutation(current, rng)
            candidate_bars, candidate_score = self._score(candidate)
            delta = current_score - candidate_score
            if delta <= 0 or rng.random() < math.exp(-delta / temperature):
                current, current_score = candidate, candidate_score
                accepted += 1
                if current_score > outcome.composite:
                    outcome.order = tuple(int(g) for g in current)
                    outcome.bars = candidate_bars
                    outcome.composite = current_score

            temperature *= params.cooling_rate
            outcome.iterations = iteration + 1
            if iteration % 500 == 0:
                outcome.history.append((outcome.composite, current_score))
                logger.debug("SA iteração %d: T=%.4f, melhor %.4f", iteration, temperature, outcome.composite)

        logger.info("SA: %d iterações, %d aceitas, melhor %.4f", outcome.iterations, accepted, outcome.composite)
        return outcome
