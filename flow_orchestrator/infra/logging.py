"""
Logging estruturado (structlog) com saída JSON em PT-BR

O contexto da request (request_id, execution_id) fica em contextvars e é
anexado a todo evento emitido enquanto a request estiver ativa.
"""
import logging
import sys

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars
from structlog.processors import JSONRenderer, TimeStamper, add_log_level, format_exc_info


def configure_logging(log_level: str = "INFO"):
    """Configura structlog sobre o logging da stdlib, emitindo JSON no stdout"""
    structlog.configure(
        processors=[
            merge_contextvars,
            TimeStamper(fmt="iso", utc=True),
            add_log_level,
            structlog.stdlib.add_logger_name,
            format_exc_info,
            JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )


def obter_logger(name: str = None):
    return structlog.get_logger(name)


def vincular_contexto(**contexto) -> None:
    """Anexa chaves a todos os logs seguintes do contexto atual"""
    bind_contextvars(**contexto)


def limpar_contexto() -> None:
    clear_contextvars()


def mascarar_telefone(telefone: str) -> str:
    """Mantém DDI+DDD e os dois últimos dígitos: 5511*******99"""
    digitos = ''.join(filter(str.isdigit, telefone or ""))
    if len(digitos) <= 6:
        return "*" * len(digitos)
    return digitos[:4] + "*" * (len(digitos) - 6) + digitos[-2:]
