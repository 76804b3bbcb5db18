"""
Testes da aritmética de espera
"""
from datetime import datetime, timedelta, timezone

import pytest

from flow_orchestrator.engine.delay import (
    calcular_proxima_execucao,
    duracao,
    espera_expirada,
    normalizar_quantidade,
)

AGORA = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestCalcularProximaExecucao:

    def test_tres_horas(self):
        assert calcular_proxima_execucao(AGORA, 3, "hours") == AGORA + timedelta(hours=3)

    def test_dois_dias_em_portugues(self):
        assert calcular_proxima_execucao(AGORA, 2, "dias") == AGORA + timedelta(days=2)

    def test_unidade_desconhecida_conta_como_dias(self):
        assert calcular_proxima_execucao(AGORA, 4, "semanas") == AGORA + timedelta(days=4)

    def test_sem_unidade_usa_dias(self):
        assert calcular_proxima_execucao(AGORA, 1, None) == AGORA + timedelta(days=1)

    @pytest.mark.parametrize("unidade", ["minutos", "minutes", "MINUTOS"])
    def test_minutos(self, unidade):
        assert duracao(15, unidade) == timedelta(minutes=15)


class TestQuantidade:

    @pytest.mark.parametrize("valor", [None, 0, -2, "abc", ""])
    def test_quantidade_invalida_vira_um(self, valor):
        assert normalizar_quantidade(valor) == 1

    def test_quantidade_texto_numerico(self):
        assert normalizar_quantidade("3") == 3


class TestEsperaExpirada:

    def test_expira_exatamente_no_horario(self):
        proxima = AGORA + timedelta(hours=1)
        assert espera_expirada(proxima, AGORA) is False
        assert espera_expirada(proxima, proxima) is True

    def test_sem_horario_nao_ha_espera(self):
        assert espera_expirada(None, AGORA) is True
