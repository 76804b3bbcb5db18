"""
Testes dos utilitários de tempo
"""
from datetime import datetime, timedelta, timezone

from flow_orchestrator.infra.timeutils import formatar_data_br, parsear_iso, tempo_ate_disponivel

AGORA = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def test_parsear_iso_com_z():
    assert parsear_iso("2024-01-15T12:00:00Z") == AGORA


def test_parsear_iso_sem_timezone_assume_utc():
    assert parsear_iso("2024-01-15T12:00:00") == AGORA


def test_parsear_iso_invalido():
    assert parsear_iso("ontem") is None
    assert parsear_iso(None) is None


def test_formatar_data_no_fuso_brasileiro():
    assert formatar_data_br(datetime(2024, 1, 16, 1, 0, tzinfo=timezone.utc)) == "15/01/2024"


def test_tempo_ate_disponivel():
    assert tempo_ate_disponivel(AGORA - timedelta(minutes=1), AGORA) == "Disponível agora"
    assert tempo_ate_disponivel(AGORA + timedelta(minutes=30), AGORA) == "Disponível em breve"
    assert tempo_ate_disponivel(AGORA + timedelta(hours=1, minutes=5), AGORA) == "Disponível em 1 hora"
    assert tempo_ate_disponivel(AGORA + timedelta(days=2, hours=3), AGORA) == "Disponível em 2 dias"
