"""
Entrega de materiais ao paciente (contrato do endpoint /send-whatsapp)

Emite um token de acesso novo para o pacote de arquivos e envia o link por
WhatsApp. Meta tenta o template oficial e cai para texto simples; Evolution
envia apenas texto.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flow_orchestrator.content.access import ContentAccessIssuer
from flow_orchestrator.infra.http import WhatsAppHttpClient
from flow_orchestrator.infra.logging import mascarar_telefone, obter_logger
from flow_orchestrator.infra.store import ProfileStore, WhatsAppSettingsStore
from flow_orchestrator.notifications.dispatcher import NotificationDispatcher
from flow_orchestrator.notifications.messages import (
    TEMPLATE_FORMULARIO_CONCLUIDO,
    mensagem_materiais_prontos,
)
from flow_orchestrator.notifications.providers import (
    ProviderConfigError,
    TemplateMessage,
    criar_provider,
)
from flow_orchestrator.notifications.validation import (
    ATIVIDADE_ENVIADO,
    ATIVIDADE_FALHOU,
    WhatsAppValidator,
    normalizar_telefone,
)

logger = obter_logger(__name__)

TTL_MATERIAIS_DIAS = 30


class MaterialsDeliveryError(Exception):
    """Falha do envio de materiais com status HTTP correspondente"""

    def __init__(self, status_code: int, mensagem: str, details: Optional[Any] = None):
        super().__init__(mensagem)
        self.status_code = status_code
        self.mensagem = mensagem
        self.details = details


@dataclass
class MaterialsDelivery:
    success: bool
    access_id: str
    download_link: str
    provider_result: Optional[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "accessId": self.access_id,
            "downloadLink": self.download_link,
            "providerResult": self.provider_result,
        }


class MaterialsDeliveryService:
    def __init__(self,
                 profile_store: ProfileStore,
                 settings_store: WhatsAppSettingsStore,
                 issuer: ContentAccessIssuer,
                 dispatcher: NotificationDispatcher,
                 http_client: WhatsAppHttpClient,
                 validator: Optional[WhatsAppValidator] = None):
        self.profile_store = profile_store
        self.settings_store = settings_store
        self.issuer = issuer
        self.dispatcher = dispatcher
        self.http_client = http_client
        self.validator = validator

    def enviar(self, patient_id: Optional[str], execution_id: Optional[str],
               files: Optional[List[Dict[str, Any]]]) -> MaterialsDelivery:
        logger.info("Envio de materiais solicitado",
                    patient_id=patient_id,
                    execution_id=execution_id,
                    arquivos=len(files or []))

        if not patient_id or not execution_id or not files:
            raise MaterialsDeliveryError(400, "Missing required parameters")

        perfil = self.profile_store.get(patient_id)
        if not perfil or not perfil.get("phone"):
            raise MaterialsDeliveryError(400, "Patient phone not found")

        settings = self.settings_store.get_ativo(perfil["clinic_id"]) if perfil.get("clinic_id") else None
        if settings is None:
            raise MaterialsDeliveryError(400, "WhatsApp settings not configured")

        try:
            provider = criar_provider(settings, self.http_client)
        except ProviderConfigError as e:
            raise MaterialsDeliveryError(400, "Unsupported WhatsApp provider", details=str(e))

        try:
            token = self.issuer.issue(execution_id, patient_id, files, ttl_days=TTL_MATERIAIS_DIAS)
        except Exception as e:
            logger.error("Erro ao criar acesso a conteúdo", execution_id=execution_id, error=str(e))
            raise MaterialsDeliveryError(500, "Failed to create content access")

        nome = perfil.get("name") or "Paciente"
        telefone = normalizar_telefone(perfil["phone"]) or perfil["phone"]
        mensagem = mensagem_materiais_prontos(nome, token.url, token.expires_at)
        template = TemplateMessage(name=TEMPLATE_FORMULARIO_CONCLUIDO, parametros=[nome, token.url])

        receipt = self.dispatcher.send_with_fallback(provider, telefone, mensagem, template=template)

        if self.validator is not None:
            self.validator.registrar_atividade(
                patient_id, telefone,
                ATIVIDADE_ENVIADO if receipt.success else ATIVIDADE_FALHOU,
                template=TEMPLATE_FORMULARIO_CONCLUIDO,
                execution_id=execution_id,
            )

        if not receipt.success:
            logger.error("Falha ao enviar materiais por WhatsApp",
                         execution_id=execution_id,
                         telefone=mascarar_telefone(telefone),
                         error=receipt.error)
            raise MaterialsDeliveryError(500, "Failed to send WhatsApp message", details=receipt.error)

        logger.info("Materiais enviados por WhatsApp",
                    execution_id=execution_id,
                    access_id=token.access_id,
                    provider=receipt.provider)
        return MaterialsDelivery(
            success=True,
            access_id=token.access_id,
            download_link=token.url,
            provider_result=receipt.provider_result,
        )
