"""
Modelos de estado do fluxo usando Pydantic v2

FlowDefinition é somente leitura para o motor; FlowExecution é o único
registro mutável e é validado na fronteira do armazenamento.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class NodeType(str, Enum):
    """Tipos de nó conhecidos pelo editor de fluxos"""
    START = "start"
    END = "end"
    FORM_START = "formStart"
    FORM_END = "formEnd"
    FORM_SELECT = "formSelect"
    DELAY = "delay"
    QUESTION = "question"
    CALCULATOR = "calculator"
    CONDITIONS = "conditions"
    WHATSAPP = "whatsapp"


# Nós que viram etapas respondidas pelo paciente
TIPOS_ETAPA = (NodeType.QUESTION.value, NodeType.FORM_END.value)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"


class FlowNode(BaseModel):
    """Nó do grafo; `type` fica como string para aceitar tipos sem processador"""
    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def titulo(self) -> str:
        data = self.data
        return data.get("titulo") or data.get("pergunta") or data.get("label") or ""


class FlowEdge(BaseModel):
    source: str
    target: str
    id: Optional[str] = None
    sourceHandle: Optional[str] = None
    label: Optional[str] = None


class FlowDefinition(BaseModel):
    """Grafo imutável de nós e arestas pertencente à clínica"""
    id: str
    nome: str = ""
    clinica_id: Optional[str] = None
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    ativo: bool = True

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def start_node(self) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.type == NodeType.START.value:
                return node
        return None

    def proximo_no(self, node_id: str) -> Optional[FlowNode]:
        """Destino da primeira aresta de saída (ordem de definição)"""
        for edge in self.edges:
            if edge.source == node_id:
                return self.get_node(edge.target)
        return None

    def caminho(self) -> List[FlowNode]:
        """Nós alcançados a partir do início seguindo a primeira aresta, sem repetir"""
        visitados = set()
        resultado = []
        node = self.start_node()
        while node is not None and node.id not in visitados:
            visitados.add(node.id)
            resultado.append(node)
            node = self.proximo_no(node.id)
        return resultado


class StepSummary(BaseModel):
    """Resumo de uma etapa do paciente"""
    nodeId: str
    nodeType: str
    title: str = ""
    completed: bool = False
    completed_at: Optional[datetime] = None
    response: Optional[Any] = None


class ExecutionCursor(BaseModel):
    """Ponteiro da etapa atual e histórico ordenado das etapas"""
    index: int = 0
    history: List[StepSummary] = Field(default_factory=list)

    def etapa(self, index: int) -> Optional[StepSummary]:
        if 0 <= index < len(self.history):
            return self.history[index]
        return None

    def indice_do_no(self, node_id: str) -> Optional[int]:
        for i, step in enumerate(self.history):
            if step.nodeId == node_id:
                return i
        return None

    def primeiro_pendente(self) -> Optional[int]:
        for i, step in enumerate(self.history):
            if not step.completed:
                return i
        return None


# Dados de renderização do nó ativo (união discriminada por `kind`)

class QuestionStep(BaseModel):
    kind: Literal["question"] = "question"
    nodeId: str
    title: str = "Pergunta"
    description: str = "Responda a pergunta para continuar"
    tipoResposta: Optional[str] = None
    opcoes: List[str] = Field(default_factory=list)
    status: str = "available"


class FormEndStep(BaseModel):
    kind: Literal["formEnd"] = "formEnd"
    nodeId: str
    title: str = "Formulário concluído"
    mensagemFinal: Optional[str] = None
    arquivos: List[Dict[str, Any]] = Field(default_factory=list)
    status: str = "available"


class WhatsAppStep(BaseModel):
    kind: Literal["whatsapp"] = "whatsapp"
    nodeId: str
    phone: str = ""
    message: str = ""
    status: str = "pending"


class FailedStep(BaseModel):
    kind: Literal["failed"] = "failed"
    nodeId: str
    nodeType: str
    error: str
    status: str = "failed"


ActiveStep = Annotated[
    Union[QuestionStep, FormEndStep, WhatsAppStep, FailedStep],
    Field(discriminator="kind"),
]


def calcular_progresso(completed_steps: int, total_steps: int) -> int:
    """Percentual inteiro de etapas concluídas (fluxo sem etapas conta como 100)"""
    if total_steps <= 0:
        return 100
    return round(completed_steps / total_steps * 100)


class FlowExecution(BaseModel):
    """Execução de um fluxo por um paciente"""
    id: str
    flow_id: str
    patient_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    progress: int = 0
    completed_steps: int = 0
    total_steps: int = 0
    current_node: Optional[str] = None
    current_step: Optional[ActiveStep] = None
    cursor: ExecutionCursor = Field(default_factory=ExecutionCursor)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_step_available_at: Optional[datetime] = None
    version: int = Field(default=0, exclude=True)

    @model_validator(mode="after")
    def _validar_invariantes(self):
        if self.completed_steps < 0 or self.completed_steps > self.total_steps:
            raise ValueError(
                f"completed_steps fora do intervalo: {self.completed_steps}/{self.total_steps}"
            )
        if not 0 <= self.progress <= 100:
            raise ValueError(f"progress fora do intervalo: {self.progress}")
        return self

    @property
    def concluida(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED or self.progress >= 100

    def recalcular_progresso(self) -> int:
        self.progress = calcular_progresso(self.completed_steps, self.total_steps)
        return self.progress

    def __str__(self) -> str:
        return (
            f"FlowExecution(id={self.id}, status={self.status.value}, "
            f"progress={self.progress}, etapas={self.completed_steps}/{self.total_steps})"
        )


class ExecutionSnapshot(BaseModel):
    """Resultado de uma operação do motor"""
    codigo: str
    execution: FlowExecution
