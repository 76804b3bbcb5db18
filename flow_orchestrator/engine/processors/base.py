"""
Contrato comum dos processadores de nó
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from flow_orchestrator.engine.state import FlowDefinition, FlowExecution, FlowNode


class Resultado(str, Enum):
    """O que o motor faz depois de processar um nó"""
    CONTINUAR = "continuar"
    AGUARDAR = "aguardar"


@dataclass
class EfeitoPendente:
    """Efeito colateral adiado até a gravação da execução"""
    descricao: str
    func: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeContext:
    """Estado de uma caminhada pelo grafo dentro de uma única gravação"""
    execution: FlowExecution
    agora: datetime
    flow: Optional[FlowDefinition] = None
    efeitos: List[EfeitoPendente] = field(default_factory=list)

    @property
    def encerrando(self) -> bool:
        """Depois da conclusão só efeitos de encerramento são aplicados"""
        return self.execution.concluida

    def agendar(self, descricao: str, func: Callable[..., Any], *args, **kwargs) -> None:
        self.efeitos.append(EfeitoPendente(descricao, func, args, kwargs))

    def posicionar_cursor(self, node: FlowNode) -> None:
        """Aponta o nó atual e, se o nó for uma etapa, o índice do cursor"""
        self.execution.current_node = node.id
        indice = self.execution.cursor.indice_do_no(node.id)
        if indice is not None:
            self.execution.cursor.index = indice


class NodeProcessor:
    """Um processador por tipo de nó"""
    tipo: str = ""

    def processar(self, node: FlowNode, ctx: NodeContext) -> Resultado:
        raise NotImplementedError
