"""
Motor de execução de fluxos

Recebe eventos de conclusão de etapa, avança o estado da execução uma única
vez por evento, percorre o grafo despachando cada nó ao seu processador e
grava a execução inteira com controle de versão otimista. Efeitos colaterais
(notificações) só são disparados depois que a gravação é aceita.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import ulid
from botocore.exceptions import ClientError
from pydantic import ValidationError

from flow_orchestrator.engine.delay import espera_expirada
from flow_orchestrator.engine.errors import (
    ConcurrentUpdate,
    ExecutionError,
    ExecutionFailed,
    ExecutionNotFound,
    FlowDefinitionInvalid,
    FlowNotFound,
    NodeProcessingFailed,
    ResultCode,
    StepNotAvailable,
    StepNotCompleted,
    StepNotFound,
    StoreError,
    UnsupportedNodeType,
)
from flow_orchestrator.engine.processors import NodeContext, NodeProcessor, Resultado
from flow_orchestrator.engine.state import (
    TIPOS_ETAPA,
    ExecutionCursor,
    ExecutionSnapshot,
    ExecutionStatus,
    FailedStep,
    FlowDefinition,
    FlowExecution,
    FlowNode,
    StepSummary,
)
from flow_orchestrator.infra.background import BackgroundNotifier
from flow_orchestrator.infra.dynamo_client import is_conditional_check_failed
from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.store import ExecutionStore, FlowStore
from flow_orchestrator.infra.timeutils import agora_utc

logger = obter_logger(__name__)

EXECUTION_WRITE_RETRIES = 3

# Operação interna: recebe o contexto e devolve (código, houve alteração)
Operacao = Callable[[NodeContext], Tuple[ResultCode, bool]]


class ExecutionEngine:
    """Único dono das mutações de FlowExecution"""

    def __init__(self,
                 flow_store: FlowStore,
                 execution_store: ExecutionStore,
                 processadores: Dict[str, NodeProcessor],
                 background: BackgroundNotifier,
                 operator_notifier,
                 relogio: Callable[[], datetime] = agora_utc,
                 max_write_retries: int = EXECUTION_WRITE_RETRIES):
        self.flow_store = flow_store
        self.execution_store = execution_store
        self.processadores = processadores
        self.background = background
        self.operator_notifier = operator_notifier
        self._relogio = relogio
        self.max_write_retries = max(1, max_write_retries)
        logger.info("ExecutionEngine inicializado", processadores=sorted(processadores))

    # Operações públicas

    def assign_flow(self, flow_id: str, patient_id: str) -> ExecutionSnapshot:
        """Cria a execução de um fluxo para o paciente e percorre até o primeiro nó de espera"""
        flow = self._carregar_fluxo(flow_id)
        start = flow.start_node()
        if start is None:
            raise FlowDefinitionInvalid("Fluxo sem nó de início", flow_id=flow_id)

        history = [
            StepSummary(nodeId=node.id, nodeType=node.type, title=node.titulo)
            for node in flow.caminho()
            if node.type in TIPOS_ETAPA
        ]
        agora = self._relogio()
        execution = FlowExecution(
            id=str(ulid.ULID()),
            flow_id=flow.id,
            patient_id=patient_id,
            status=ExecutionStatus.PENDING,
            progress=0,
            total_steps=len(history),
            cursor=ExecutionCursor(index=0, history=history),
            created_at=agora,
            updated_at=agora,
        )

        logger.info("Atribuindo fluxo ao paciente",
                    flow_id=flow_id,
                    patient_id=patient_id,
                    execution_id=execution.id,
                    total_steps=execution.total_steps)

        ctx = NodeContext(execution=execution, agora=agora, flow=flow)
        falha = None
        try:
            self._percorrer(ctx, start)
            self._reconciliar(ctx)
        except (UnsupportedNodeType, NodeProcessingFailed) as erro:
            self._marcar_falha(ctx, erro)
            falha = erro

        try:
            self._salvar(execution, expected_version=0)
        except ClientError as e:
            raise StoreError("Erro ao criar execução", execution_id=execution.id, error=str(e)) from e

        self._disparar_efeitos(ctx)
        if falha is not None:
            raise falha
        return ExecutionSnapshot(codigo=ResultCode.SUCCESS.value, execution=execution)

    def get(self, execution_id: str) -> ExecutionSnapshot:
        execution = self._carregar(execution_id)
        codigo = ResultCode.ALREADY_COMPLETED if execution.concluida else ResultCode.SUCCESS
        return ExecutionSnapshot(codigo=codigo.value, execution=execution)

    def list_by_patient(self, patient_id: str) -> List[FlowExecution]:
        try:
            return self.execution_store.list_by_patient(patient_id)
        except (ClientError, ValidationError) as e:
            raise StoreError("Erro ao listar execuções", patient_id=patient_id, error=str(e)) from e

    def advance(self, execution_id: str, response: Any = None,
                node_id: Optional[str] = None) -> ExecutionSnapshot:
        """
        Conclui a etapa atual (ou a etapa `node_id`) com a resposta do paciente

        Execução já concluída é no-op e devolve AlreadyCompleted. Responder de
        novo uma etapa concluída substitui a resposta sem mexer no progresso.

        A etapa alvo é fixada na primeira leitura: numa retentativa por conflito
        de versão a resposta continua indo para a mesma etapa, mesmo que outra
        request já a tenha concluído e movido o cursor.
        """
        alvo = node_id
        so_retomar = False

        def operacao(ctx: NodeContext) -> Tuple[ResultCode, bool]:
            nonlocal alvo, so_retomar
            execution = ctx.execution
            if execution.concluida:
                logger.info("Execução já concluída, avanço ignorado", execution_id=execution.id)
                return ResultCode.ALREADY_COMPLETED, False
            if execution.status == ExecutionStatus.FAILED:
                raise ExecutionFailed("Execução em falha aguardando intervenção",
                                      execution_id=execution.id)

            ctx.flow = self._carregar_fluxo(execution.flow_id)

            if so_retomar and execution.status != ExecutionStatus.WAITING:
                # Outra request já retomou a espera
                return ResultCode.SUCCESS, False

            if execution.status == ExecutionStatus.WAITING:
                if not espera_expirada(execution.next_step_available_at, ctx.agora):
                    raise StepNotAvailable(
                        "Próxima etapa ainda não disponível",
                        execution_id=execution.id,
                        disponivel_em=execution.next_step_available_at.isoformat(),
                    )
                self._retomar(ctx)
                # Sem node_id a resposta não pode ser de uma etapa que o paciente ainda não viu
                if execution.concluida or alvo is None:
                    so_retomar = True
                    return ResultCode.SUCCESS, True

            cursor = execution.cursor
            if alvo is None:
                atual = cursor.etapa(cursor.index)
                alvo = atual.nodeId if atual is not None else None
            indice = cursor.indice_do_no(alvo) if alvo else cursor.index
            etapa = cursor.etapa(indice) if indice is not None else None
            if etapa is None:
                raise StepNotFound("Etapa não encontrada",
                                   execution_id=execution.id,
                                   node_id=alvo,
                                   index=indice)

            if etapa.completed:
                etapa.response = response
                pendente = cursor.primeiro_pendente()
                cursor.index = pendente if pendente is not None else indice
                logger.info("Resposta de etapa já concluída substituída",
                            execution_id=execution.id,
                            node_id=etapa.nodeId)
                return ResultCode.SUCCESS, True

            if indice != cursor.index and etapa.nodeId != execution.current_node:
                raise StepNotAvailable("Etapa ainda não alcançada",
                                       execution_id=execution.id,
                                       node_id=etapa.nodeId)

            etapa.response = self._mesclar(etapa.response, response)
            etapa.completed = True
            etapa.completed_at = ctx.agora
            execution.completed_steps += 1
            execution.recalcular_progresso()

            if execution.progress >= 100:
                execution.status = ExecutionStatus.COMPLETED
                execution.completed_at = ctx.agora
            else:
                pendente = cursor.primeiro_pendente()
                cursor.index = pendente if pendente is not None else indice

            logger.info("Etapa concluída",
                        execution_id=execution.id,
                        node_id=etapa.nodeId,
                        completed_steps=execution.completed_steps,
                        total_steps=execution.total_steps,
                        progress=execution.progress)

            if execution.current_node == etapa.nodeId:
                self._percorrer(ctx, ctx.flow.proximo_no(etapa.nodeId))
            self._reconciliar(ctx)
            return ResultCode.SUCCESS, True

        return self._com_retentativa(execution_id, operacao)

    def go_back_to_step(self, execution_id: str, target_index: int) -> ExecutionSnapshot:
        """Volta o cursor para uma etapa já concluída sem alterar progresso"""
        def operacao(ctx: NodeContext) -> Tuple[ResultCode, bool]:
            cursor = ctx.execution.cursor
            etapa = cursor.etapa(target_index)
            if etapa is None:
                raise StepNotFound("Etapa não encontrada",
                                   execution_id=ctx.execution.id,
                                   index=target_index)
            if not etapa.completed:
                raise StepNotCompleted("Só é possível voltar para etapas concluídas",
                                       execution_id=ctx.execution.id,
                                       index=target_index)
            if cursor.index == target_index:
                return ResultCode.SUCCESS, False

            cursor.index = target_index
            logger.info("Cursor movido para etapa anterior",
                        execution_id=ctx.execution.id,
                        index=target_index)
            return ResultCode.SUCCESS, True

        return self._com_retentativa(execution_id, operacao)

    def dispatch_node(self, execution_id: str, node_id: str) -> ExecutionSnapshot:
        """Despacha um nó do fluxo ao seu processador e segue a caminhada a partir dele"""
        def operacao(ctx: NodeContext) -> Tuple[ResultCode, bool]:
            execution = ctx.execution
            if execution.status == ExecutionStatus.FAILED:
                raise ExecutionFailed("Execução em falha aguardando intervenção",
                                      execution_id=execution.id)

            ctx.flow = self._carregar_fluxo(execution.flow_id)
            node = ctx.flow.get_node(node_id)
            if node is None:
                raise StepNotFound("Nó não encontrado no fluxo",
                                   execution_id=execution.id,
                                   node_id=node_id)

            self._percorrer(ctx, node)
            self._reconciliar(ctx)
            return ResultCode.SUCCESS, True

        return self._com_retentativa(execution_id, operacao)

    def refresh(self, execution_id: str) -> ExecutionSnapshot:
        """Verifica expiração de espera: waiting vencido volta a active e a caminhada continua"""
        def operacao(ctx: NodeContext) -> Tuple[ResultCode, bool]:
            execution = ctx.execution
            if execution.status != ExecutionStatus.WAITING:
                codigo = ResultCode.ALREADY_COMPLETED if execution.concluida else ResultCode.SUCCESS
                return codigo, False
            if not espera_expirada(execution.next_step_available_at, ctx.agora):
                return ResultCode.SUCCESS, False

            ctx.flow = self._carregar_fluxo(execution.flow_id)
            self._retomar(ctx)
            return ResultCode.SUCCESS, True

        return self._com_retentativa(execution_id, operacao)

    # Caminhada pelo grafo

    def _percorrer(self, ctx: NodeContext, node: Optional[FlowNode]) -> None:
        """Segue a primeira aresta de saída até um nó de espera ou o fim do grafo"""
        limite = len(ctx.flow.nodes)
        passos = 0
        while node is not None:
            passos += 1
            if passos > limite:
                logger.warning("Limite de nós atingido, possível ciclo no fluxo",
                               execution_id=ctx.execution.id,
                               flow_id=ctx.flow.id,
                               node_id=node.id)
                return

            if self._despachar(ctx, node) == Resultado.AGUARDAR:
                return
            node = ctx.flow.proximo_no(node.id)

    def _despachar(self, ctx: NodeContext, node: FlowNode) -> Resultado:
        processador = self.processadores.get(node.type)
        if processador is None:
            if ctx.encerrando:
                logger.warning("Nó sem processador ignorado após conclusão",
                               execution_id=ctx.execution.id,
                               node_id=node.id,
                               node_type=node.type)
                return Resultado.CONTINUAR
            raise UnsupportedNodeType(f"Tipo de nó não suportado: {node.type}",
                                      node_id=node.id,
                                      node_type=node.type)

        logger.info("Processando nó",
                    execution_id=ctx.execution.id,
                    node_id=node.id,
                    node_type=node.type,
                    encerrando=ctx.encerrando)
        try:
            return processador.processar(node, ctx)
        except ExecutionError:
            raise
        except Exception as e:
            if ctx.encerrando:
                logger.error("Erro em nó após conclusão",
                             execution_id=ctx.execution.id,
                             node_id=node.id,
                             node_type=node.type,
                             error=str(e))
                return Resultado.CONTINUAR
            raise NodeProcessingFailed(str(e), node_id=node.id, node_type=node.type) from e

    def _retomar(self, ctx: NodeContext) -> None:
        execution = ctx.execution
        logger.info("Intervalo expirado, retomando execução",
                    execution_id=execution.id,
                    node_id=execution.current_node)
        execution.status = ExecutionStatus.ACTIVE
        execution.next_step_available_at = None
        proximo = ctx.flow.proximo_no(execution.current_node) if execution.current_node else None
        self._percorrer(ctx, proximo)
        self._reconciliar(ctx)

    def _reconciliar(self, ctx: NodeContext) -> None:
        """Mantém status 'completed' se e somente se progress >= 100"""
        execution = ctx.execution
        if execution.status == ExecutionStatus.FAILED:
            return
        if execution.progress >= 100 and execution.status != ExecutionStatus.COMPLETED:
            execution.status = ExecutionStatus.COMPLETED
            execution.completed_at = execution.completed_at or ctx.agora

    def _marcar_falha(self, ctx: NodeContext, erro: ExecutionError) -> None:
        execution = ctx.execution
        node_id = erro.contexto.get("node_id") or execution.current_node or ""
        node_type = erro.contexto.get("node_type") or ""

        logger.error("Falha ao processar nó",
                     execution_id=execution.id,
                     node_id=node_id,
                     node_type=node_type,
                     codigo=erro.codigo.value,
                     error=erro.mensagem)

        execution.status = ExecutionStatus.FAILED
        execution.current_node = node_id or execution.current_node
        execution.current_step = FailedStep(nodeId=node_id, nodeType=node_type, error=erro.mensagem)

        # Efeitos da caminhada que falhou são descartados
        ctx.efeitos.clear()
        ctx.agendar(
            f"operador_erro_no_fluxo:{execution.id}",
            self.operator_notifier.erro_no_fluxo,
            execution,
            node_type,
            erro.mensagem,
        )

    # Persistência

    def _com_retentativa(self, execution_id: str, operacao: Operacao) -> ExecutionSnapshot:
        """Ler, calcular e gravar; em conflito de versão recarrega e recalcula"""
        for tentativa in range(1, self.max_write_retries + 1):
            execution = self._carregar(execution_id)
            versao = execution.version
            ctx = NodeContext(execution=execution, agora=self._relogio())

            falha = None
            try:
                codigo, alterou = operacao(ctx)
            except (UnsupportedNodeType, NodeProcessingFailed) as erro:
                self._marcar_falha(ctx, erro)
                codigo, alterou, falha = erro.codigo, True, erro

            if not alterou:
                return ExecutionSnapshot(codigo=codigo.value, execution=execution)

            try:
                self._salvar(execution, expected_version=versao)
            except ClientError as e:
                if is_conditional_check_failed(e):
                    logger.warning("Conflito de versão, recalculando",
                                   execution_id=execution_id,
                                   tentativa=tentativa,
                                   max_tentativas=self.max_write_retries)
                    continue
                raise StoreError("Erro ao gravar execução",
                                 execution_id=execution_id,
                                 error=str(e)) from e

            self._disparar_efeitos(ctx)
            if falha is not None:
                raise falha
            return ExecutionSnapshot(codigo=codigo.value, execution=execution)

        raise ConcurrentUpdate("Execução alterada concorrentemente",
                               execution_id=execution_id,
                               tentativas=self.max_write_retries)

    def _carregar(self, execution_id: str) -> FlowExecution:
        try:
            execution = self.execution_store.get(execution_id)
        except (ClientError, ValidationError) as e:
            raise StoreError("Erro ao carregar execução",
                             execution_id=execution_id,
                             error=str(e)) from e
        if execution is None:
            raise ExecutionNotFound("Execução não encontrada", execution_id=execution_id)
        return execution

    def _carregar_fluxo(self, flow_id: str) -> FlowDefinition:
        try:
            flow = self.flow_store.get(flow_id)
        except (ClientError, ValidationError) as e:
            raise StoreError("Erro ao carregar fluxo", flow_id=flow_id, error=str(e)) from e
        if flow is None:
            raise FlowNotFound("Fluxo não encontrado", flow_id=flow_id)
        return flow

    def _salvar(self, execution: FlowExecution, expected_version: int) -> None:
        """ClientError de conflito sobe intacto; estado inválido vira StoreError"""
        execution.updated_at = self._relogio()
        try:
            self.execution_store.put(execution, expected_version=expected_version)
        except ValidationError as e:
            raise StoreError("Estado de execução inválido",
                             execution_id=execution.id,
                             error=str(e)) from e

    def _disparar_efeitos(self, ctx: NodeContext) -> None:
        for efeito in ctx.efeitos:
            try:
                self.background.submit(efeito.descricao, efeito.func, *efeito.args, **efeito.kwargs)
            except RuntimeError as e:
                # Executor já encerrado (shutdown da aplicação)
                logger.error("Não foi possível agendar efeito",
                             tarefa=efeito.descricao,
                             error=str(e))
        ctx.efeitos.clear()

    @staticmethod
    def _mesclar(anterior: Any, nova: Any) -> Any:
        if isinstance(anterior, dict) and isinstance(nova, dict):
            return {**anterior, **nova}
        return nova
