"""
Middlewares da API: rastreamento de request e CORS
"""
import time
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from flow_orchestrator.infra.logging import limpar_contexto, obter_logger, vincular_contexto

logger = obter_logger(__name__)

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_TEMPO = "X-Process-Time"


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Gera (ou reaproveita) o request id, vincula-o aos logs do motor e
    devolve o tempo de processamento nos headers
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        request.state.request_id = request_id

        limpar_contexto()
        vincular_contexto(request_id=request_id)
        inicio = time.perf_counter()

        logger.info("Request iniciada", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("Erro não tratado na request",
                         path=request.url.path,
                         error=str(e),
                         tempo_ms=self._tempo_ms(inicio))
            raise
        finally:
            limpar_contexto()

        tempo_ms = self._tempo_ms(inicio)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("Request concluída",
            request_id=request_id,
            path=request.url.path,
            status_code=response.status_code,
            tempo_ms=tempo_ms)

        response.headers[HEADER_REQUEST_ID] = request_id
        response.headers[HEADER_TEMPO] = str(tempo_ms)
        return response

    @staticmethod
    def _tempo_ms(inicio: float) -> float:
        return round((time.perf_counter() - inicio) * 1000, 2)


def configurar_cors(app: FastAPI):
    # Painel do paciente e painel da clínica fazem polling direto nesta API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID, HEADER_TEMPO],
    )


def configurar_middlewares(app: FastAPI):
    configurar_cors(app)
    # Adicionado por último para envolver os demais
    app.add_middleware(LoggingMiddleware)
