"""
Exceções do motor de otimização CutStock
"""

from typing import Optional


class CutStockError(Exception):
    """Erro base do motor de corte"""


class ValidationError(CutStockError, ValueError):
    """
    Entrada malformada (comprimentos/quantidades não positivos, parâmetros
    de estratégia inválidos). Nunca é corrigida silenciosamente.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        message = super().__str__()
        if self.field:
            return f"{self.field}: {message}"
        return message


class InfeasibleError(ValidationError):
    """Peça que não cabe em nenhuma barra, mesmo sozinha"""


class AccelerationUnavailable(CutStockError):
    """Backend acelerado indisponível; o despachante cai para a CPU"""
