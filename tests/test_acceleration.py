"""Testes do despachante de avaliação em lote.

Cobre:
- Equivalência entre o backend de CPU e o vetorizado para as quatro regras
- Pool de threads preservando a ordem dos cromossomos
- Fallback para CPU quando o acelerador está indisponível ou falha
"""

import logging

import numpy as np
import pytest

from cutstock import acceleration
from cutstock.acceleration import (
    AccelerationDispatcher, ArrayBatchEvaluator, BatchEvaluator, CpuBatchEvaluator,
    probe_array_module,
)
from cutstock.evaluator import ObjectiveEvaluator
from cutstock.exceptions import AccelerationUnavailable
from cutstock.models import HEURISTIC_STRATEGIES, Strategy


@pytest.fixture
def population(mixed_instances):
    rng = np.random.default_rng(7)
    base = np.arange(len(mixed_instances))
    return [rng.permutation(base) for _ in range(24)]


@pytest.fixture
def evaluator(default_ctx):
    return ObjectiveEvaluator(default_ctx.stock_length)


@pytest.mark.parametrize("decoder", HEURISTIC_STRATEGIES)
def test_backends_agree(decoder, mixed_instances, default_ctx, evaluator, population):
    cpu = CpuBatchEvaluator(mixed_instances, default_ctx, evaluator, decoder)
    vectorized = ArrayBatchEvaluator(mixed_instances, default_ctx, evaluator, decoder, xp=np)

    np.testing.assert_allclose(vectorized.evaluate_batch(population),
                               cpu.evaluate_batch(population), rtol=1e-6)


@pytest.mark.parametrize("decoder", HEURISTIC_STRATEGIES)
def test_vectorized_decode_matches_bar_count(decoder, mixed_instances, default_ctx, evaluator, population):
    cpu = CpuBatchEvaluator(mixed_instances, default_ctx, evaluator, decoder)
    vectorized = ArrayBatchEvaluator(mixed_instances, default_ctx, evaluator, decoder, xp=np)

    _, counts = vectorized.decode_batch(population)
    expected = [len(cpu.decode(chromosome)) for chromosome in population]
    assert list((counts > 0).sum(axis=1)) == expected


def test_thread_pool_keeps_order(mixed_instances, default_ctx, evaluator, population):
    sequential = CpuBatchEvaluator(mixed_instances, default_ctx, evaluator)
    pooled = CpuBatchEvaluator(mixed_instances, default_ctx, evaluator, workers=4)
    np.testing.assert_array_equal(pooled.evaluate_batch(population), sequential.evaluate_batch(population))


def test_vectorized_rejects_non_heuristic_decoder(mixed_instances, default_ctx, evaluator):
    with pytest.raises(ValueError):
        ArrayBatchEvaluator(mixed_instances, default_ctx, evaluator, Strategy.BRANCH_AND_BOUND)


class TestProbe:
    def test_numpy_is_always_available(self):
        xp, name = probe_array_module("numpy")
        assert xp is np
        assert name == "numpy"

    def test_unknown_accelerator(self):
        with pytest.raises(AccelerationUnavailable):
            probe_array_module("tpu")


class _BrokenBackend(BatchEvaluator):
    name = "broken"

    def evaluate_batch(self, chromosomes):
        raise RuntimeError("device lost")


class TestDispatcher:
    def test_uses_numpy_backend(self, mixed_instances, default_ctx, evaluator):
        dispatcher = AccelerationDispatcher(mixed_instances, default_ctx, evaluator, accelerator="numpy")
        assert dispatcher.name == "numpy"

    def test_acceleration_disabled(self, mixed_instances, default_ctx, evaluator):
        dispatcher = AccelerationDispatcher(mixed_instances, default_ctx, evaluator, use_acceleration=False)
        assert dispatcher.name == "cpu"

    def test_falls_back_when_unavailable(self, monkeypatch, caplog, mixed_instances, default_ctx, evaluator):
        def unavailable(accelerator):
            raise AccelerationUnavailable("sem GPU")

        monkeypatch.setattr(acceleration, "probe_array_module", unavailable)
        with caplog.at_level(logging.WARNING, logger="cutstock.acceleration"):
            dispatcher = AccelerationDispatcher(mixed_instances, default_ctx, evaluator, accelerator="cuda")

        assert dispatcher.name == "cpu"
        assert "sem GPU" in caplog.text

    def test_falls_back_on_runtime_failure(self, mixed_instances, default_ctx, evaluator, population):
        dispatcher = AccelerationDispatcher(mixed_instances, default_ctx, evaluator,
                                            accelerated=_BrokenBackend())
        expected = CpuBatchEvaluator(mixed_instances, default_ctx, evaluator).evaluate_batch(population)

        np.testing.assert_array_equal(dispatcher.evaluate_batch(population), expected)
        assert dispatcher.name == "cpu"
