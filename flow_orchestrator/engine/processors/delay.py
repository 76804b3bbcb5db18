from flow_orchestrator.engine.delay import calcular_proxima_execucao
from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import ExecutionStatus, FlowNode, NodeType
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class DelayProcessor(NodeProcessor):
    """Suspende a execução até now + quantidade × unidade"""
    tipo = NodeType.DELAY.value

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        if ctx.encerrando:
            return Resultado.CONTINUAR

        execution = ctx.execution
        quantidade = node.data.get("quantidade")
        unidade = node.data.get("tipoIntervalo") or node.data.get("unidade")

        execution.status = ExecutionStatus.WAITING
        execution.current_node = node.id
        execution.next_step_available_at = calcular_proxima_execucao(ctx.agora, quantidade, unidade)

        logger.info("Execução aguardando intervalo",
                    execution_id=execution.id,
                    node_id=node.id,
                    quantidade=quantidade,
                    unidade=unidade,
                    disponivel_em=execution.next_step_available_at.isoformat())
        return Resultado.AGUARDAR
