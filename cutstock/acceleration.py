"""
Avaliação em lote da população do algoritmo genético

Dois backends intercambiáveis implementam evaluate_batch:
- CpuBatchEvaluator: decodifica cada cromossomo com as primitivas de
  empacotamento (sequencial ou em pool de threads)
- ArrayBatchEvaluator: decodifica a população inteira em passo único com
  operações vetoriais (CuPy em GPU CUDA, ou NumPy)

Os dois produzem as mesmas pontuações; o acelerado é só otimização de
desempenho.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Tuple

import numpy as np

from .evaluator import ObjectiveEvaluator
from .exceptions import AccelerationUnavailable
from .models import Strategy
from .packing import EPSILON, PackingContext, PieceInstance, pack_sequence


logger = logging.getLogger(__name__)


class BatchEvaluator:
    """Contrato comum: cromossomos (permutações de índices) -> pontuações"""
    name = "base"

    def evaluate_batch(self, chromosomes: Sequence[Sequence[int]]) -> np.ndarray:
        raise NotImplementedError


class CpuBatchEvaluator(BatchEvaluator):
    """Backend de CPU: map sobre o avaliador, ordenado pela posição do cromossomo"""
    name = "cpu"

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 evaluator: ObjectiveEvaluator, decoder: Strategy = Strategy.FFD,
                 workers: Optional[int] = None):
        self.instances = instances
        self.ctx = ctx
        self.evaluator = evaluator
        self.decoder = decoder
        self.workers = workers

    def decode(self, chromosome: Sequence[int]):
        return pack_sequence([self.instances[i] for i in chromosome], self.ctx, self.decoder)

    def score(self, chromosome: Sequence[int]) -> float:
        return self.evaluator.composite(self.decode(chromosome), self.ctx)

    def evaluate_batch(self, chromosomes: Sequence[Sequence[int]]) -> np.ndarray:
        if self.workers and self.workers > 1 and len(chromosomes) > 1:
            # pool.map devolve na ordem de entrada, não na de conclusão
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                scores = list(pool.map(self.score, chromosomes))
        else:
            scores = [self.score(chromosome) for chromosome in chromosomes]
        return np.asarray(scores, dtype=np.float64)


class ArrayBatchEvaluator(BatchEvaluator):
    """
    Decodificação vetorizada da população.

    Mantém matrizes (população x barras) de comprimento consumido e número de
    peças; a cada passo todos os cromossomos posicionam sua próxima peça ao
    mesmo tempo. As regras de desempate reproduzem as do backend de CPU
    (argmin/argmax devolvem o menor índice).
    """

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 evaluator: ObjectiveEvaluator, decoder: Strategy = Strategy.FFD,
                 xp=np, device_name: str = "numpy"):
        if not decoder.is_heuristic:
            raise ValueError(f"Decodificador inválido: {decoder.value}")
        self.ctx = ctx
        self.evaluator = evaluator
        self.decoder = decoder
        self.xp = xp
        self.name = device_name
        self._lengths = xp.asarray(np.asarray([i.length for i in instances], dtype=np.float64))

    def _choose(self, fits, opened, residual, current, rows):
        xp = self.xp
        next_new = opened.sum(axis=1)

        if self.decoder == Strategy.FFD:
            return xp.argmax(fits, axis=1)

        if self.decoder == Strategy.BFD:
            # Barras vazias têm sempre o maior resíduo e só vencem se nada couber
            masked = xp.where(fits, residual, xp.inf)
            return xp.argmin(masked, axis=1)

        if self.decoder == Strategy.WFD:
            open_fits = fits & opened
            masked = xp.where(open_fits, residual, -xp.inf)
            candidate = xp.argmax(masked, axis=1)
            return xp.where(open_fits.any(axis=1), candidate, next_new)

        # NFD
        current_fits = fits[rows, current] & opened[rows, current]
        return xp.where(current_fits, current, next_new)

    def decode_batch(self, chromosomes: Sequence[Sequence[int]]) -> Tuple:
        """Retorna (consumido, contagem) com formato (população, barras)"""
        xp = self.xp
        ctx = self.ctx
        perm = xp.asarray(np.asarray(chromosomes, dtype=np.int64))
        population, n = perm.shape

        consumed = xp.zeros((population, n), dtype=xp.float64)
        counts = xp.zeros((population, n), dtype=xp.int64)
        rows = xp.arange(population)
        current = xp.zeros(population, dtype=xp.int64)

        for step in range(n):
            length = self._lengths[perm[:, step]]
            opened = counts > 0
            need = length[:, None] + xp.where(opened, ctx.kerf, 0.0)
            remaining = ctx.usable_length - consumed
            fits = need <= remaining + EPSILON
            residual = remaining - need

            choice = self._choose(fits, opened, residual, current, rows)
            consumed[rows, choice] += need[rows, choice]
            counts[rows, choice] += 1
            current = choice

        return consumed, counts

    def evaluate_batch(self, chromosomes: Sequence[Sequence[int]]) -> np.ndarray:
        xp = self.xp
        ctx = self.ctx
        consumed, counts = self.decode_batch(chromosomes)

        opened = counts > 0
        bars_used = opened.sum(axis=1)
        segments = counts.sum(axis=1)
        piece_length = xp.where(opened, consumed - ctx.kerf * (counts - 1), 0.0).sum(axis=1)
        leftover_bar = xp.where(opened, xp.maximum(ctx.usable_length - consumed, 0.0), 0.0)
        is_scrap = opened & (leftover_bar > 0) & (leftover_bar + EPSILON >= ctx.scrap_threshold)
        leftover = leftover_bar.sum(axis=1)
        waste_leftover = xp.where(is_scrap, 0.0, leftover_bar).sum(axis=1)
        fill_squares = xp.where(opened, (consumed / ctx.usable_length) ** 2, 0.0).sum(axis=1)

        composite = self.evaluator.terms(
            bars_used.astype(xp.float64), segments.astype(xp.float64), piece_length,
            leftover, waste_leftover, fill_squares,
        )[3]
        if xp is not np:
            composite = xp.asnumpy(composite)
        return np.asarray(composite, dtype=np.float64)


def probe_array_module(accelerator: str = "cuda"):
    """
    Verifica a capacidade de hardware.

    Returns:
        (módulo de arrays, nome do dispositivo)

    Raises:
        AccelerationUnavailable: dispositivo ausente ou falha de inicialização
    """
    if accelerator == "numpy":
        return np, "numpy"
    if accelerator != "cuda":
        raise AccelerationUnavailable(f"Acelerador desconhecido: {accelerator}")

    try:
        import cupy
    except ImportError as exc:
        raise AccelerationUnavailable("CuPy não está instalado") from exc

    try:
        device_count = cupy.cuda.runtime.getDeviceCount()
    except cupy.cuda.runtime.CUDARuntimeError as exc:
        raise AccelerationUnavailable(f"Falha ao inicializar CUDA: {exc}") from exc
    if device_count < 1:
        raise AccelerationUnavailable("Nenhum dispositivo CUDA disponível")
    return cupy, "cuda"


class AccelerationDispatcher(BatchEvaluator):
    """
    Escolhe o backend acelerado quando disponível e cai para a CPU de forma
    transparente em caso de indisponibilidade ou falha.
    """

    def __init__(self, instances: Sequence[PieceInstance], ctx: PackingContext,
                 evaluator: ObjectiveEvaluator, decoder: Strategy = Strategy.FFD,
                 use_acceleration: bool = True, accelerator: str = "cuda",
                 workers: Optional[int] = None, accelerated: Optional[BatchEvaluator] = None):
        self.cpu = CpuBatchEvaluator(instances, ctx, evaluator, decoder, workers)
        self.backend: BatchEvaluator = self.cpu

        if accelerated is not None:
            self.backend = accelerated
        elif use_acceleration:
            try:
                xp, device_name = probe_array_module(accelerator)
                self.backend = ArrayBatchEvaluator(instances, ctx, evaluator, decoder, xp=xp,
                                                   device_name=device_name)
            except AccelerationUnavailable as exc:
                logger.warning("Aceleração indisponível, usando CPU: %s", exc)

    @property
    def name(self) -> str:
        return self.backend.name

    def evaluate_batch(self, chromosomes: Sequence[Sequence[int]]) -> np.ndarray:
        if self.backend is not self.cpu:
            try:
                return self.backend.evaluate_batch(chromosomes)
            except (RuntimeError, MemoryError) as exc:
                logger.warning("Backend %s falhou, usando CPU: %s", self.backend.name, exc)
                self.backend = self.cpu
        return self.cpu.evaluate_batch(chromosomes)
