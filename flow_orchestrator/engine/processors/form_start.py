from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import ExecutionStatus, FlowNode, NodeType
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class FormStartProcessor(NodeProcessor):
    """Ativa a execução e avisa o paciente de que há um novo formulário"""
    tipo = NodeType.FORM_START.value

    def __init__(self, patient_notifier):
        self.patient_notifier = patient_notifier

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        if ctx.encerrando:
            return Resultado.CONTINUAR

        execution = ctx.execution
        execution.status = ExecutionStatus.ACTIVE
        execution.current_node = node.id
        if execution.completed_steps == 0:
            execution.progress = 0
        else:
            execution.recalcular_progresso()

        logger.info("Início de formulário", execution_id=execution.id, node_id=node.id)
        ctx.agendar(
            f"novo_formulario:{execution.id}",
            self.patient_notifier.notificar_novo_formulario,
            execution.id,
            execution.patient_id,
            node.titulo or None,
        )
        return Resultado.CONTINUAR
