"""
Cliente HTTP síncrono para as APIs de mensageria (Meta Graph / Evolution)
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)


class ProviderError(Exception):
    """Falha de transporte na chamada ao provider (timeout, conexão)"""
    pass


@dataclass
class ProviderResponse:
    """Resposta HTTP crua do provider"""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WhatsAppHttpClient:
    """Cliente HTTP para comunicação com os providers de WhatsApp"""

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'FlowOrchestrator/1.0'
        })

    def post(self, url: str, payload: Dict[str, Any],
             headers: Optional[Dict[str, str]] = None) -> ProviderResponse:
        """
        Faz POST JSON; status HTTP de erro é devolvido, não levantado,
        para que o provider decida se a mensagem foi aceita
        """
        try:
            response = self.session.request(
                method='POST',
                url=url,
                json=payload,
                headers=headers or {},
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            logger.error("Timeout na requisição", url=url, timeout=self.timeout)
            raise ProviderError(f"Timeout na chamada para {url}")
        except requests.exceptions.ConnectionError:
            logger.error("Erro de conexão", url=url)
            raise ProviderError(f"Erro de conexão com {url}")
        except requests.exceptions.RequestException as e:
            logger.error("Erro inesperado na requisição", url=url, error=str(e))
            raise ProviderError(f"Erro inesperado: {str(e)}")

        logger.info("Requisição HTTP",
                    method='POST',
                    url=url,
                    status_code=response.status_code,
                    response_time=response.elapsed.total_seconds() if response.elapsed else None)

        try:
            body = response.json()
        except ValueError:
            body = {"text": response.text[:500]}

        if not isinstance(body, dict):
            body = {"data": body}

        if response.status_code >= 400:
            logger.warning("Provider respondeu com erro",
                           url=url,
                           status_code=response.status_code,
                           response_text=response.text[:500])

        return ProviderResponse(status_code=response.status_code, body=body)
