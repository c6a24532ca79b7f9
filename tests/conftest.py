"""Fixtures compartilhadas pelos testes do motor CutStock."""

import pytest

from cutstock.models import Piece
from cutstock.packing import PackingContext, expand_pieces


@pytest.fixture
def zero_margin_ctx() -> PackingContext:
    """Barra de 6100 mm, kerf 3.5 e sem margens."""
    return PackingContext(stock_length=6100, kerf=3.5, leading_margin=0.0, trailing_margin=0.0)


@pytest.fixture
def default_ctx() -> PackingContext:
    """Barra de 6100 mm com kerf e margens padrão (útil 6096 mm)."""
    return PackingContext(stock_length=6100)


@pytest.fixture
def unit_ctx() -> PackingContext:
    """Barra de 1000 mm sem kerf nem margens, para contas exatas."""
    return PackingContext(stock_length=1000, kerf=0.0, leading_margin=0.0, trailing_margin=0.0)


@pytest.fixture
def mixed_pieces():
    return [
        Piece(id="montante", profile_type="SU-001", length=2000, quantity=3, work_order_id="OP-1"),
        Piece(id="travessa", profile_type="SU-002", length=1500, quantity=4, work_order_id="OP-2"),
        Piece(id="baguete", profile_type="SU-003", length=800, quantity=5),
        Piece(id="presilha", profile_type="SU-004", length=450, quantity=6),
    ]


@pytest.fixture
def mixed_instances(mixed_pieces):
    return expand_pieces(mixed_pieces)


@pytest.fixture
def mixed_request_data(mixed_pieces):
    """Requisição em forma de dicionário com 18 peças individuais."""
    return {
        "pieces": [piece.model_dump() for piece in mixed_pieces],
        "stock_length": 6100,
    }
