"""
Aritmética de espera dos nós delay
"""
from datetime import datetime, timedelta
from typing import Any, Optional

from flow_orchestrator.infra.timeutils import garantir_utc

UNIDADE_PADRAO = "dias"
QUANTIDADE_PADRAO = 1

UNIDADES = {
    "minutos": timedelta(minutes=1),
    "minutes": timedelta(minutes=1),
    "horas": timedelta(hours=1),
    "hours": timedelta(hours=1),
    "dias": timedelta(days=1),
    "days": timedelta(days=1),
}


def normalizar_quantidade(quantidade: Any) -> int:
    """Quantidade ausente, zero ou inválida vira 1"""
    try:
        valor = int(quantidade)
    except (TypeError, ValueError):
        return QUANTIDADE_PADRAO
    return valor if valor > 0 else QUANTIDADE_PADRAO


def duracao(quantidade: Any = None, unidade: Optional[str] = None) -> timedelta:
    """Unidade desconhecida conta como dias"""
    passo = UNIDADES.get((unidade or UNIDADE_PADRAO).strip().lower(), UNIDADES[UNIDADE_PADRAO])
    return passo * normalizar_quantidade(quantidade)


def calcular_proxima_execucao(agora: datetime, quantidade: Any = None,
                              unidade: Optional[str] = None) -> datetime:
    """Momento em que a próxima etapa fica disponível"""
    return garantir_utc(agora) + duracao(quantidade, unidade)


def espera_expirada(proxima_execucao: Optional[datetime], agora: datetime) -> bool:
    """Sem horário agendado não há espera pendente"""
    if proxima_execucao is None:
        return True
    return garantir_utc(agora) >= garantir_utc(proxima_execucao)
