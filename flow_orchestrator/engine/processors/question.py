from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import ExecutionStatus, FlowNode, NodeType, QuestionStep


class QuestionProcessor(NodeProcessor):
    tipo = NodeType.QUESTION.value

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        if ctx.encerrando:
            return Resultado.CONTINUAR

        data = node.data
        ctx.execution.status = ExecutionStatus.ACTIVE
        ctx.execution.current_step = QuestionStep(
            nodeId=node.id,
            title=data.get("pergunta") or node.titulo or "Pergunta",
            description=data.get("descricao") or "Responda a pergunta para continuar",
            tipoResposta=data.get("tipoResposta"),
            opcoes=list(data.get("opcoes") or []),
        )
        ctx.posicionar_cursor(node)
        return Resultado.AGUARDAR
