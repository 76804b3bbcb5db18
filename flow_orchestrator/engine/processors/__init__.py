"""
Registro de processadores por tipo de nó

Tipos sem processador (calculator, conditions, formSelect e desconhecidos)
fazem o motor falhar com UnsupportedNodeType.
"""
from typing import Dict

from flow_orchestrator.engine.processors.base import (
    EfeitoPendente,
    NodeContext,
    NodeProcessor,
    Resultado,
)
from flow_orchestrator.engine.processors.delay import DelayProcessor
from flow_orchestrator.engine.processors.end import EndProcessor
from flow_orchestrator.engine.processors.form_end import FormEndProcessor
from flow_orchestrator.engine.processors.form_start import FormStartProcessor
from flow_orchestrator.engine.processors.question import QuestionProcessor
from flow_orchestrator.engine.processors.start import StartProcessor
from flow_orchestrator.engine.processors.whatsapp import WhatsAppProcessor

__all__ = [
    "EfeitoPendente",
    "NodeContext",
    "NodeProcessor",
    "Resultado",
    "criar_processadores",
]


def criar_processadores(patient_notifier, operator_notifier) -> Dict[str, NodeProcessor]:
    processadores = [
        StartProcessor(),
        FormStartProcessor(patient_notifier),
        FormEndProcessor(patient_notifier),
        DelayProcessor(),
        QuestionProcessor(),
        WhatsAppProcessor(),
        EndProcessor(operator_notifier),
    ]
    return {p.tipo: p for p in processadores}
