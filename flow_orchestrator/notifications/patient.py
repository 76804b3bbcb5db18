"""
Notificações de WhatsApp para o paciente

Executadas sempre em segundo plano (BackgroundNotifier); nenhuma falha aqui
desfaz uma etapa concluída. Cada método devolve o DeliveryReceipt ou None
quando o envio nem foi tentado.
"""
from typing import Any, Dict, List, Optional

from flow_orchestrator.content.access import ContentAccessIssuer
from flow_orchestrator.infra.http import WhatsAppHttpClient
from flow_orchestrator.infra.logging import mascarar_telefone, obter_logger
from flow_orchestrator.infra.store import ProfileStore, WhatsAppSettingsStore, WhatsAppTemplateStore
from flow_orchestrator.notifications.dispatcher import DeliveryReceipt, NotificationDispatcher
from flow_orchestrator.notifications.messages import (
    TEMPLATE_FORMULARIO_CONCLUIDO,
    TEMPLATE_NOVO_FORMULARIO,
    mensagem_formulario_concluido,
    mensagem_novo_formulario,
)
from flow_orchestrator.notifications.providers import (
    MessagingProvider,
    ProviderConfigError,
    TemplateMessage,
    criar_provider,
)
from flow_orchestrator.notifications.validation import (
    ATIVIDADE_ENVIADO,
    ATIVIDADE_FALHOU,
    WhatsAppValidator,
)

logger = obter_logger(__name__)


class PatientNotifier:
    """Mensagens de novo formulário e de formulário concluído"""

    def __init__(self,
                 profile_store: ProfileStore,
                 settings_store: WhatsAppSettingsStore,
                 template_store: WhatsAppTemplateStore,
                 validator: WhatsAppValidator,
                 dispatcher: NotificationDispatcher,
                 issuer: ContentAccessIssuer,
                 http_client: WhatsAppHttpClient,
                 app_base_url: str):
        self.profile_store = profile_store
        self.settings_store = settings_store
        self.template_store = template_store
        self.validator = validator
        self.dispatcher = dispatcher
        self.issuer = issuer
        self.http_client = http_client
        self.app_base_url = app_base_url.rstrip("/")

    def link_fallback(self, execution_id: str) -> str:
        return f"{self.app_base_url}/conteudo-formulario/{execution_id}"

    def notificar_novo_formulario(self, execution_id: str, patient_id: str,
                                  titulo: Optional[str]) -> Optional[DeliveryReceipt]:
        perfil = self._perfil(patient_id, execution_id)
        if perfil is None:
            return None

        mensagem = mensagem_novo_formulario(perfil["name"], titulo, f"{self.app_base_url}/")
        template = self._template(
            TEMPLATE_NOVO_FORMULARIO,
            [perfil["name"], titulo or "Formulário", f"{self.app_base_url}/"]
        )
        return self._enviar(perfil, patient_id, execution_id, TEMPLATE_NOVO_FORMULARIO, mensagem, template)

    def notificar_formulario_concluido(self, execution_id: str, patient_id: str,
                                       arquivos: List[Dict[str, Any]],
                                       titulo: Optional[str] = None) -> Optional[DeliveryReceipt]:
        perfil = self._perfil(patient_id, execution_id)
        if perfil is None:
            return None

        link = ""
        if arquivos:
            logger.info("Gerando link de conteúdo",
                        execution_id=execution_id,
                        arquivos=len(arquivos))
            try:
                link = self.issuer.issue_or_reuse(execution_id, patient_id, arquivos).url
            except Exception as e:
                logger.error("Erro ao gerar link de conteúdo, usando link padrão",
                             execution_id=execution_id,
                             error=str(e))
        if not link:
            link = self.link_fallback(execution_id)

        mensagem = mensagem_formulario_concluido(perfil["name"], link)
        template = self._template(TEMPLATE_FORMULARIO_CONCLUIDO, [perfil["name"], link])
        return self._enviar(perfil, patient_id, execution_id, TEMPLATE_FORMULARIO_CONCLUIDO, mensagem, template)

    def _perfil(self, patient_id: str, execution_id: str) -> Optional[Dict[str, Any]]:
        perfil = self.profile_store.get(patient_id)
        if not perfil or not perfil.get("phone"):
            # Paciente sem telefone: estado terminal reconhecido, não é erro
            logger.warning("Paciente sem telefone configurado",
                           patient_id=patient_id,
                           execution_id=execution_id)
            return None
        perfil["name"] = perfil.get("name") or "Paciente"
        return perfil

    def _template(self, nome: str, parametros: List[str]) -> Optional[TemplateMessage]:
        if self.template_store.get_ativo(nome) is None:
            logger.warning("Template não encontrado ou inativo, usando texto simples", template=nome)
            return None
        return TemplateMessage(name=nome, parametros=parametros)

    def _provider(self, clinic_id: Optional[str], patient_id: str) -> Optional[MessagingProvider]:
        settings = self.settings_store.get_ativo(clinic_id) if clinic_id else None
        if settings is None:
            logger.warning("Configuração de WhatsApp não encontrada",
                           patient_id=patient_id,
                           clinic_id=clinic_id)
            return None
        try:
            return criar_provider(settings, self.http_client)
        except ProviderConfigError as e:
            logger.error("Configuração de WhatsApp inválida", clinic_id=clinic_id, error=str(e))
            return None

    def _enviar(self, perfil: Dict[str, Any], patient_id: str, execution_id: str,
                template_name: str, mensagem: str,
                template: Optional[TemplateMessage]) -> Optional[DeliveryReceipt]:
        validacao = self.validator.validar_envio(perfil["phone"], template_name, patient_id)
        if not validacao.can_send:
            logger.warning("Envio WhatsApp bloqueado",
                           patient_id=patient_id,
                           motivo=validacao.reason)
            return None

        provider = self._provider(perfil.get("clinic_id"), patient_id)
        if provider is None:
            return None

        receipt = self.dispatcher.send_with_fallback(provider, validacao.phone, mensagem, template=template)

        tipo = ATIVIDADE_ENVIADO if receipt.success else ATIVIDADE_FALHOU
        self.validator.registrar_atividade(
            patient_id, validacao.phone, tipo,
            template=template_name,
            execution_id=execution_id,
            tentativas=receipt.total_tentativas,
        )

        logger.info("Notificação ao paciente finalizada",
                    execution_id=execution_id,
                    telefone=mascarar_telefone(validacao.phone),
                    sucesso=receipt.success,
                    tentativas=receipt.total_tentativas)
        return receipt
