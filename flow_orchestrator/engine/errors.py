"""
Taxonomia de erros do motor de execução
"""
from enum import Enum
from typing import Any, Dict


class ResultCode(str, Enum):
    """Códigos de resultado expostos pelo motor"""
    SUCCESS = "success"
    EXECUTION_NOT_FOUND = "ExecutionNotFound"
    STEP_NOT_FOUND = "StepNotFound"
    STEP_NOT_COMPLETED = "StepNotCompleted"
    STEP_NOT_AVAILABLE = "StepNotAvailable"
    UNSUPPORTED_NODE_TYPE = "UnsupportedNodeType"
    ALREADY_COMPLETED = "AlreadyCompleted"
    DISPATCH_FAILED = "DispatchFailed"
    EXECUTION_FAILED = "ExecutionFailed"
    NODE_PROCESSING_FAILED = "NodeProcessingFailed"
    FLOW_NOT_FOUND = "FlowNotFound"
    FLOW_DEFINITION_INVALID = "FlowDefinitionInvalid"
    CONCURRENT_UPDATE = "ConcurrentUpdate"
    STORE_ERROR = "StoreError"


class ExecutionError(Exception):
    """Erro base do motor; carrega código e contexto estruturado"""
    codigo = ResultCode.NODE_PROCESSING_FAILED

    def __init__(self, mensagem: str, **contexto: Any):
        super().__init__(mensagem)
        self.mensagem = mensagem
        self.contexto: Dict[str, Any] = contexto

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.codigo.value,
            "message": self.mensagem,
            "details": self.contexto or None,
        }


# Erros de dados: operação abortada, estado inalterado

class ExecutionNotFound(ExecutionError):
    codigo = ResultCode.EXECUTION_NOT_FOUND


class FlowNotFound(ExecutionError):
    codigo = ResultCode.FLOW_NOT_FOUND


class FlowDefinitionInvalid(ExecutionError):
    codigo = ResultCode.FLOW_DEFINITION_INVALID


class StepNotFound(ExecutionError):
    codigo = ResultCode.STEP_NOT_FOUND


class StepNotCompleted(ExecutionError):
    codigo = ResultCode.STEP_NOT_COMPLETED


class StepNotAvailable(ExecutionError):
    codigo = ResultCode.STEP_NOT_AVAILABLE


class ExecutionFailed(ExecutionError):
    """Execução em estado de falha aguardando intervenção do operador"""
    codigo = ResultCode.EXECUTION_FAILED


# Erros de workflow: execução marcada como failed

class UnsupportedNodeType(ExecutionError):
    codigo = ResultCode.UNSUPPORTED_NODE_TYPE


class NodeProcessingFailed(ExecutionError):
    codigo = ResultCode.NODE_PROCESSING_FAILED


# Erros de infraestrutura convertidos na fronteira do motor

class ConcurrentUpdate(ExecutionError):
    codigo = ResultCode.CONCURRENT_UPDATE


class StoreError(ExecutionError):
    codigo = ResultCode.STORE_ERROR
