"""
Validações antes do envio de WhatsApp e registro de atividade de opt-in
"""
from dataclasses import dataclass
from typing import Optional

from flow_orchestrator.infra.logging import mascarar_telefone, obter_logger
from flow_orchestrator.infra.store import OptInActivityStore

logger = obter_logger(__name__)

ATIVIDADE_ENVIADO = "whatsapp_sent"
ATIVIDADE_FALHOU = "whatsapp_failed"
ATIVIDADE_OPT_OUT = "opt_out"
ATIVIDADE_OPT_IN = "opt_in"


def normalizar_telefone(telefone: Optional[str]) -> str:
    """
    Normaliza número de telefone para envio
    Remove caracteres especiais e padroniza com DDI 55
    """
    if not telefone:
        return ""

    digits = ''.join(filter(str.isdigit, telefone))

    # Se começar com 55 (código do Brasil), mantém
    if len(digits) >= 12 and digits.startswith('55'):
        return digits
    elif len(digits) >= 10:
        return f"55{digits}"
    else:
        return digits


@dataclass
class ValidationResult:
    can_send: bool
    phone: str = ""
    reason: Optional[str] = None


class WhatsAppValidator:
    """Decide se um envio pode acontecer e registra o resultado"""

    def __init__(self, activity_store: OptInActivityStore):
        self.activity_store = activity_store

    def validar_envio(self, telefone: Optional[str], template_name: str, patient_id: str) -> ValidationResult:
        numero = normalizar_telefone(telefone)

        if len(numero) < 12:
            logger.warning("Telefone inválido para WhatsApp",
                           patient_id=patient_id,
                           telefone=mascarar_telefone(telefone or ""))
            return ValidationResult(can_send=False, phone=numero, reason="telefone_invalido")

        ultima = self.activity_store.last(patient_id)
        if ultima is not None and ultima.activity_type == ATIVIDADE_OPT_OUT:
            logger.info("Paciente optou por não receber WhatsApp",
                        patient_id=patient_id,
                        template=template_name)
            return ValidationResult(can_send=False, phone=numero, reason="opt_out")

        return ValidationResult(can_send=True, phone=numero)

    def registrar_atividade(self, patient_id: str, telefone: str, tipo: str, **meta) -> None:
        """Registro best-effort: falha aqui não afeta o envio"""
        try:
            self.activity_store.append(patient_id, telefone, tipo, meta)
        except Exception as e:
            logger.error("Erro ao registrar atividade de opt-in",
                         patient_id=patient_id,
                         tipo=tipo,
                         error=str(e))
