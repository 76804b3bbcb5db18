"""
Rotas da API FastAPI
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from flow_orchestrator.api.deps import (
    get_engine,
    get_execution_store,
    get_issuer,
    get_materials_service,
)
from flow_orchestrator.api.schemas import (
    AdvanceRequest,
    AssignFlowRequest,
    ErrorResponse,
    ExecutionListResponse,
    ExecutionResponse,
    GoBackRequest,
    HealthResponse,
    SendWhatsAppRequest,
    SendWhatsAppResponse,
    ServeContentResponse,
)
from flow_orchestrator.content.access import ContentAccessError, ContentAccessIssuer
from flow_orchestrator.content.materials import MaterialsDeliveryError, MaterialsDeliveryService
from flow_orchestrator.engine.engine import ExecutionEngine
from flow_orchestrator.engine.errors import ExecutionError, ResultCode
from flow_orchestrator.engine.state import ExecutionSnapshot, ExecutionStatus
from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.store import ExecutionStore
from flow_orchestrator.infra.timeutils import tempo_ate_disponivel

logger = obter_logger(__name__)

# Router principal
router = APIRouter()

STATUS_POR_CODIGO = {
    ResultCode.EXECUTION_NOT_FOUND: 404,
    ResultCode.FLOW_NOT_FOUND: 404,
    ResultCode.STEP_NOT_FOUND: 404,
    ResultCode.STEP_NOT_COMPLETED: 409,
    ResultCode.STEP_NOT_AVAILABLE: 409,
    ResultCode.EXECUTION_FAILED: 409,
    ResultCode.CONCURRENT_UPDATE: 409,
    ResultCode.UNSUPPORTED_NODE_TYPE: 422,
    ResultCode.FLOW_DEFINITION_INVALID: 422,
    ResultCode.NODE_PROCESSING_FAILED: 500,
    ResultCode.STORE_ERROR: 500,
}


def _resposta(snapshot: ExecutionSnapshot) -> ExecutionResponse:
    execution = snapshot.execution
    disponibilidade = None
    if execution.status == ExecutionStatus.WAITING and execution.next_step_available_at:
        disponibilidade = tempo_ate_disponivel(execution.next_step_available_at)
    return ExecutionResponse(codigo=snapshot.codigo, execution=execution, disponibilidade=disponibilidade)


async def execution_error_handler(request: Request, exc: ExecutionError) -> JSONResponse:
    status_code = STATUS_POR_CODIGO.get(exc.codigo, 500)
    logger.warning("Erro do motor de execução",
                   request_id=getattr(request.state, "request_id", None),
                   codigo=exc.codigo.value,
                   mensagem=exc.mensagem,
                   status_code=status_code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@router.post("/executions", response_model=ExecutionResponse)
def assign_flow(body: AssignFlowRequest, engine: ExecutionEngine = Depends(get_engine)):
    """Atribui um fluxo a um paciente"""
    return _resposta(engine.assign_flow(body.flow_id, body.patient_id))


@router.get("/executions/{execution_id}", response_model=ExecutionResponse)
def get_execution(execution_id: str, engine: ExecutionEngine = Depends(get_engine)):
    """
    Estado atual da execução (usado no polling da UI)

    Aplica a verificação de expiração de espera antes de responder.
    """
    return _resposta(engine.refresh(execution_id))


@router.post("/executions/{execution_id}/advance", response_model=ExecutionResponse)
def advance(execution_id: str, body: AdvanceRequest, engine: ExecutionEngine = Depends(get_engine)):
    return _resposta(engine.advance(execution_id, body.response, node_id=body.node_id))


@router.post("/executions/{execution_id}/go-back", response_model=ExecutionResponse)
def go_back(execution_id: str, body: GoBackRequest, engine: ExecutionEngine = Depends(get_engine)):
    return _resposta(engine.go_back_to_step(execution_id, body.target_index))


@router.get("/patients/{patient_id}/executions", response_model=ExecutionListResponse)
def list_patient_executions(patient_id: str, engine: ExecutionEngine = Depends(get_engine)):
    return ExecutionListResponse(patient_id=patient_id, executions=engine.list_by_patient(patient_id))


@router.post(
    "/send-whatsapp",
    response_model=SendWhatsAppResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def send_whatsapp(body: SendWhatsAppRequest,
                  service: MaterialsDeliveryService = Depends(get_materials_service)):
    """Gera link de acesso aos materiais e envia ao paciente por WhatsApp"""
    try:
        entrega = service.enviar(body.patientId, body.executionId, body.files)
    except MaterialsDeliveryError as e:
        logger.error("Erro no envio de materiais", status_code=e.status_code, error=e.mensagem)
        return JSONResponse(
            status_code=e.status_code,
            content=ErrorResponse(error=e.mensagem, message=e.mensagem, details=e.details).model_dump()
        )
    return entrega.to_dict()


@router.get("/serve-content", response_model=ServeContentResponse)
def serve_content(token: str = Query(..., min_length=1),
                  execution_id: Optional[str] = Query(None),
                  patient_id: Optional[str] = Query(None),
                  issuer: ContentAccessIssuer = Depends(get_issuer)):
    """Resolve token de acesso em lista de arquivos (404 inexistente, 410 expirado, 403 vínculo)"""
    try:
        record = issuer.resolve(token, execution_id=execution_id, patient_id=patient_id)
    except ContentAccessError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return ServeContentResponse(
        execution_id=record.execution_id,
        files=record.files,
        expires_at=record.expires_at,
    )


@router.get("/healthz", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check simples"""
    return HealthResponse(status="ok", message="Flow Orchestrator está funcionando")


@router.get("/readyz", response_model=HealthResponse)
def readiness_check(execution_store: ExecutionStore = Depends(get_execution_store)) -> HealthResponse:
    """Readiness check - valida acesso à tabela de execuções"""
    if not execution_store.verificar_tabela():
        logger.error("Readiness check falhou")
        raise HTTPException(status_code=503, detail="Sistema não está pronto: tabela de execuções inacessível")
    return HealthResponse(status="ready", message="Todos os sistemas estão prontos")


@router.get("/")
def root():
    """Endpoint raiz"""
    return {
        "service": "Flow Orchestrator",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "executions": "/executions",
            "send_whatsapp": "/send-whatsapp",
            "serve_content": "/serve-content",
            "health": "/healthz",
            "readiness": "/readyz"
        }
    }
