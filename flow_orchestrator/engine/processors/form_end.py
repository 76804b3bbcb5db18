"""
Fim de formulário: exibe a mensagem final com os arquivos e notifica o paciente
"""
from flow_orchestrator.content.files import normalizar_arquivos
from flow_orchestrator.engine.processors.base import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import FlowNode, FormEndStep, NodeType
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class FormEndProcessor(NodeProcessor):
    tipo = NodeType.FORM_END.value

    def __init__(self, patient_notifier):
        self.patient_notifier = patient_notifier

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        if ctx.encerrando:
            return Resultado.CONTINUAR

        execution = ctx.execution
        arquivos = normalizar_arquivos(node.data.get("arquivos") or [])

        execution.current_step = FormEndStep(
            nodeId=node.id,
            title=node.titulo or "Formulário concluído",
            mensagemFinal=node.data.get("mensagemFinal"),
            arquivos=arquivos,
        )
        ctx.posicionar_cursor(node)

        logger.info("Fim de formulário alcançado",
                    execution_id=execution.id,
                    node_id=node.id,
                    arquivos=len(arquivos))

        # O emissor de tokens só é chamado pelo notificador quando há arquivos
        ctx.agendar(
            f"formulario_concluido:{execution.id}",
            self.patient_notifier.notificar_formulario_concluido,
            execution.id,
            execution.patient_id,
            arquivos,
            node.titulo or None,
        )
        return Resultado.AGUARDAR
