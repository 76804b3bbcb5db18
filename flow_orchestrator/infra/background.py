"""
Execução destacada (fire-and-forget) de efeitos colaterais

Tarefas submetidas aqui nunca são aguardadas pelo caminho crítico do fluxo;
o resultado de cada uma é observado apenas pelos logs.
"""
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from flow_orchestrator.engine.errors import ResultCode
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class BackgroundNotifier:
    """Executor de tarefas destacadas com canal próprio de sucesso/falha"""

    def __init__(self, executor: Optional[Executor] = None, max_workers: int = 4):
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="notificacao"
        )

    def submit(self, descricao: str, func: Callable[..., Any], *args, **kwargs) -> Future:
        """Submete tarefa e retorna o Future (o chamador não deve aguardá-lo)"""
        logger.debug("Tarefa destacada submetida", tarefa=descricao)
        future = self._executor.submit(func, *args, **kwargs)
        future.add_done_callback(lambda f: self._registrar_resultado(descricao, f))
        return future

    def _registrar_resultado(self, descricao: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("Tarefa destacada cancelada", tarefa=descricao)
            return

        erro = future.exception()
        if erro is not None:
            logger.error("Tarefa destacada falhou",
                         tarefa=descricao,
                         codigo=ResultCode.DISPATCH_FAILED.value,
                         error=str(erro))
        else:
            logger.info("Tarefa destacada concluída", tarefa=descricao, **_resumo(future.result()))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _resumo(resultado: Any) -> dict:
    """Campos seguros para log: o resultado pode carregar telefone e token de acesso"""
    if resultado is None:
        return {}
    if hasattr(resultado, "success") and hasattr(resultado, "total_tentativas"):
        return {
            "sucesso": resultado.success,
            "tentativas": resultado.total_tentativas,
            "provider": resultado.provider,
        }
    return {"resultado_tipo": type(resultado).__name__}
