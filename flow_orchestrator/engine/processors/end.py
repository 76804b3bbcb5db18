from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import ExecutionStatus, FlowNode, NodeType
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class EndProcessor(NodeProcessor):
    """Conclui a execução e avisa o operador da clínica"""
    tipo = NodeType.END.value

    def __init__(self, operator_notifier):
        self.operator_notifier = operator_notifier

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        execution = ctx.execution
        execution.current_node = node.id
        execution.completed_steps = execution.total_steps
        execution.progress = 100
        execution.status = ExecutionStatus.COMPLETED
        if execution.completed_at is None:
            execution.completed_at = ctx.agora

        logger.info("Fluxo concluído", execution_id=execution.id, node_id=node.id)
        ctx.agendar(
            f"operador_fluxo_concluido:{execution.id}",
            self.operator_notifier.fluxo_concluido,
            execution,
        )
        return Resultado.CONTINUAR
