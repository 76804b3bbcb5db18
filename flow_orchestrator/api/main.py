"""
FastAPI principal
"""
from fastapi import FastAPI

from flow_orchestrator import __version__
from flow_orchestrator.api.deps import get_settings, initialize_logging, shutdown_components
from flow_orchestrator.api.middleware import configurar_middlewares
from flow_orchestrator.api.routes import execution_error_handler, router
from flow_orchestrator.engine.errors import ExecutionError
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)

# Cria app FastAPI
app = FastAPI(
    title="Flow Orchestrator",
    description="Execução de fluxos de formulários clínicos com notificações WhatsApp",
    version=__version__
)

configurar_middlewares(app)
app.add_exception_handler(ExecutionError, execution_error_handler)
app.include_router(router)


# Event handlers
@app.on_event("startup")
def startup_event():
    """Evento de inicialização"""
    initialize_logging()
    logger.info("Flow Orchestrator iniciando...")

    try:
        get_settings()
        logger.info("Configurações validadas")
    except Exception as e:
        logger.error("Erro na inicialização", error=str(e))
        raise


@app.on_event("shutdown")
def shutdown_event():
    """Evento de finalização"""
    logger.info("Flow Orchestrator finalizando...")
    shutdown_components()
