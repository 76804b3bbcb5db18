"""
Providers de WhatsApp: Meta Graph API e Evolution API

O dispatcher é polimórfico sobre as capacidades {send_template, send_text}.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flow_orchestrator.infra.http import ProviderResponse, WhatsAppHttpClient
from flow_orchestrator.infra.logging import obter_logger

logger = obter_logger(__name__)

META_GRAPH_URL = "https://graph.facebook.com/v17.0"


class ProviderConfigError(Exception):
    """Configuração de WhatsApp da clínica ausente ou inválida"""
    pass


@dataclass
class TemplateMessage:
    """Mensagem de template oficial com parâmetros de corpo posicionais"""
    name: str
    parametros: List[str] = field(default_factory=list)
    language: str = "pt_BR"


class MessagingProvider:
    """Interface comum dos providers"""
    nome = "base"
    suporta_template = False

    def __init__(self, http_client: WhatsAppHttpClient):
        self.http_client = http_client

    def send_text(self, recipient: str, message: str) -> ProviderResponse:
        raise NotImplementedError

    def send_template(self, recipient: str, template: TemplateMessage) -> ProviderResponse:
        raise NotImplementedError(f"Provider {self.nome} não suporta templates")

    def aceito(self, response: ProviderResponse) -> bool:
        """Critério de aceitação: HTTP 2xx mais o campo de sucesso do provider"""
        return response.ok


class MetaProvider(MessagingProvider):
    """WhatsApp Cloud API (Meta Graph)"""
    nome = "meta"
    suporta_template = True

    def __init__(self, http_client: WhatsAppHttpClient, phone_number: str, access_token: str):
        super().__init__(http_client)
        if not phone_number or not access_token:
            raise ProviderConfigError("Provider meta exige phone_number e access_token")
        self.phone_number = phone_number
        self.access_token = access_token

    @property
    def message_url(self) -> str:
        return f"{META_GRAPH_URL}/{self.phone_number}/messages"

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def send_text(self, recipient: str, message: str) -> ProviderResponse:
        payload = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "text",
            "text": {"body": message},
        }
        return self.http_client.post(self.message_url, payload, headers=self.headers)

    def send_template(self, recipient: str, template: TemplateMessage) -> ProviderResponse:
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "template",
            "template": {
                "name": template.name,
                "language": {"code": template.language},
            },
        }
        if template.parametros:
            payload["template"]["components"] = [{
                "type": "body",
                "parameters": [{"type": "text", "text": p} for p in template.parametros],
            }]
        return self.http_client.post(self.message_url, payload, headers=self.headers)

    def aceito(self, response: ProviderResponse) -> bool:
        return response.ok and bool(response.body.get("messages"))


class EvolutionProvider(MessagingProvider):
    """Evolution API (somente texto)"""
    nome = "evolution"
    suporta_template = False

    def __init__(self, http_client: WhatsAppHttpClient, base_url: str, session_name: str,
                 api_key: Optional[str] = None):
        super().__init__(http_client)
        if not base_url or not session_name:
            raise ProviderConfigError("Provider evolution exige base_url e session_name")
        self.base_url = base_url.rstrip("/")
        self.session_name = session_name
        self.api_key = api_key or ""

    def send_text(self, recipient: str, message: str) -> ProviderResponse:
        url = f"{self.base_url}/message/sendText/{self.session_name}"
        return self.http_client.post(
            url,
            {"number": recipient, "text": message},
            headers={"apikey": self.api_key}
        )

    def aceito(self, response: ProviderResponse) -> bool:
        return response.ok and not response.body.get("error")


def criar_provider(settings: Dict[str, Any], http_client: WhatsAppHttpClient) -> MessagingProvider:
    """Instancia o provider configurado para a clínica"""
    provider = (settings or {}).get("provider")

    if provider == "meta":
        return MetaProvider(
            http_client,
            phone_number=settings.get("phone_number"),
            access_token=settings.get("access_token"),
        )
    if provider == "evolution":
        return EvolutionProvider(
            http_client,
            base_url=settings.get("base_url"),
            session_name=settings.get("session_name"),
            api_key=settings.get("api_key"),
        )

    logger.error("Provider de WhatsApp não suportado", provider=provider)
    raise ProviderConfigError(f"Provider de WhatsApp não suportado: {provider}")
