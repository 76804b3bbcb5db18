"""
Notificações internas para o operador da clínica
"""
from flow_orchestrator.engine.state import FlowExecution
from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.store import NotificationStore

logger = obter_logger(__name__)

CATEGORIA_FLUXO = "flow"


class OperatorNotifier:
    def __init__(self, store: NotificationStore):
        self.store = store

    def fluxo_concluido(self, execution: FlowExecution) -> str:
        logger.info("Notificando operador: fluxo concluído", execution_id=execution.id)
        return self.store.create(
            tipo="success",
            categoria=CATEGORIA_FLUXO,
            titulo="Fluxo Concluído",
            mensagem=f"O paciente {execution.patient_id} concluiu o fluxo {execution.flow_id}.",
            execution_id=execution.id,
        )

    def erro_no_fluxo(self, execution: FlowExecution, node_type: str, error: str) -> str:
        logger.info("Notificando operador: erro no fluxo",
                    execution_id=execution.id,
                    node_type=node_type)
        return self.store.create(
            tipo="error",
            categoria=CATEGORIA_FLUXO,
            titulo="Erro no Fluxo",
            mensagem=(
                f"A execução {execution.id} do paciente {execution.patient_id} "
                f"falhou no nó {node_type}: {error}"
            ),
            actionable=True,
            execution_id=execution.id,
        )
