"""
Schemas Pydantic para validação de requests/responses da API
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from flow_orchestrator.engine.state import FlowExecution


class AssignFlowRequest(BaseModel):
    """Atribuição de um fluxo a um paciente"""
    flow_id: str = Field(..., description="ID do fluxo")
    patient_id: str = Field(..., description="ID do paciente")


class AdvanceRequest(BaseModel):
    """Conclusão de etapa pelo paciente"""
    response: Optional[Any] = Field(None, description="Resposta da etapa")
    node_id: Optional[str] = Field(None, description="Nó da etapa respondida (padrão: etapa atual)")


class GoBackRequest(BaseModel):
    target_index: int = Field(..., ge=0, description="Índice de uma etapa já concluída")


class ExecutionResponse(BaseModel):
    """Snapshot de uma execução após uma operação do motor"""
    success: bool = True
    codigo: str = Field(..., description="Código de resultado do motor")
    execution: FlowExecution
    disponibilidade: Optional[str] = Field(None, description="Texto de disponibilidade quando aguardando")


class ExecutionListResponse(BaseModel):
    patient_id: str
    executions: List[FlowExecution]


class SendWhatsAppRequest(BaseModel):
    """Envio de materiais (campos validados pelo serviço para responder 400)"""
    patientId: Optional[str] = None
    executionId: Optional[str] = None
    files: Optional[List[Dict[str, Any]]] = None


class SendWhatsAppResponse(BaseModel):
    success: bool
    accessId: str
    downloadLink: str
    providerResult: Optional[Dict[str, Any]] = None


class ServeContentResponse(BaseModel):
    execution_id: str
    files: List[Dict[str, Any]]
    expires_at: datetime


class HealthResponse(BaseModel):
    status: str
    message: str


class ErrorResponse(BaseModel):
    """Schema para resposta de erro"""
    success: bool = Field(False, description="Sempre False para erros")
    error: str = Field(..., description="Tipo do erro")
    message: str = Field(..., description="Mensagem de erro")
    details: Optional[Any] = Field(None, description="Detalhes adicionais do erro")
