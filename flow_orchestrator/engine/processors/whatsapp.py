from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import FlowNode, NodeType, WhatsAppStep


class WhatsAppProcessor(NodeProcessor):
    """Apenas prepara a mensagem; o envio não faz parte deste nó"""
    tipo = NodeType.WHATSAPP.value

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        data = node.data
        ctx.execution.current_step = WhatsAppStep(
            nodeId=node.id,
            phone=data.get("telefone") or data.get("phone") or "",
            message=data.get("mensagem") or data.get("message") or "",
        )
        ctx.execution.current_node = node.id
        return Resultado.CONTINUAR
