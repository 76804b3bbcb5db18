"""
Utilitários de tempo
Timestamps persistidos sempre em UTC; formatação para o paciente no fuso brasileiro
"""
from datetime import datetime, timezone, timedelta
from typing import Optional

# Timezone do Brasil (UTC-3)
TIMEZONE_BRASIL = timezone(timedelta(hours=-3))


def agora_utc() -> datetime:
    """Retorna datetime atual em UTC"""
    return datetime.now(timezone.utc)


def garantir_utc(dt: datetime) -> datetime:
    """Datetimes sem timezone são tratados como UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parsear_iso(valor: Optional[str]) -> Optional[datetime]:
    """Converte string ISO8601 (com ou sem 'Z') para datetime UTC"""
    if not valor:
        return None
    if valor.endswith("Z"):
        valor = valor[:-1] + "+00:00"
    try:
        return garantir_utc(datetime.fromisoformat(valor))
    except ValueError:
        return None


def formatar_data_br(dt: datetime, formato: str = "%d/%m/%Y") -> str:
    """Formata datetime para string no formato brasileiro"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(TIMEZONE_BRASIL).strftime(formato)


def tempo_ate_disponivel(disponivel_em: datetime, agora: Optional[datetime] = None) -> str:
    """Texto amigável em português para o tempo restante de uma espera"""
    if agora is None:
        agora = agora_utc()

    diff = garantir_utc(disponivel_em) - garantir_utc(agora)
    segundos = diff.total_seconds()

    if segundos <= 0:
        return "Disponível agora"

    dias = int(segundos // 86400)
    horas = int((segundos % 86400) // 3600)

    if dias > 0:
        return f"Disponível em {dias} dia{'s' if dias > 1 else ''}"
    if horas > 0:
        return f"Disponível em {horas} hora{'s' if horas > 1 else ''}"
    return "Disponível em breve"
