from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import ExecutionStatus, FlowNode, NodeType


class StartProcessor(NodeProcessor):
    tipo = NodeType.START.value

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        execution = ctx.execution
        execution.current_node = node.id
        if not execution.concluida:
            execution.status = ExecutionStatus.ACTIVE
        if execution.started_at is None:
            execution.started_at = ctx.agora
        return Resultado.CONTINUAR
