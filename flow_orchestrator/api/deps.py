"""
Dependências da API - Configuração e inicialização de componentes
"""
import os
from functools import lru_cache

from dotenv import load_dotenv

from flow_orchestrator.content.access import ContentAccessIssuer
from flow_orchestrator.content.materials import MaterialsDeliveryService
from flow_orchestrator.engine.engine import ExecutionEngine
from flow_orchestrator.engine.processors import criar_processadores
from flow_orchestrator.infra.background import BackgroundNotifier
from flow_orchestrator.infra.dynamo_client import get_table
from flow_orchestrator.infra.http import WhatsAppHttpClient
from flow_orchestrator.infra.logging import configure_logging, obter_logger
from flow_orchestrator.infra.store import (
    ContentAccessStore,
    ExecutionStore,
    FlowStore,
    NotificationStore,
    OptInActivityStore,
    ProfileStore,
    WhatsAppSettingsStore,
    WhatsAppTemplateStore,
)
from flow_orchestrator.notifications.dispatcher import NotificationDispatcher, RetryPolicy
from flow_orchestrator.notifications.operator import OperatorNotifier
from flow_orchestrator.notifications.patient import PatientNotifier
from flow_orchestrator.notifications.validation import WhatsAppValidator

# Carrega variáveis de ambiente
load_dotenv()

logger = obter_logger(__name__)


class Settings:
    """Configurações da aplicação"""

    def __init__(self):
        # AWS
        self.aws_region = os.getenv("AWS_REGION", "sa-east-1")

        # DynamoDB
        self.table_flows = os.getenv("DDB_TABLE_FLOWS", "Flows")
        self.table_executions = os.getenv("DDB_TABLE_EXECUTIONS", "FlowExecutions")
        self.table_profiles = os.getenv("DDB_TABLE_PROFILES", "Profiles")
        self.table_whatsapp_settings = os.getenv("DDB_TABLE_WHATSAPP_SETTINGS", "WhatsAppSettings")
        self.table_whatsapp_templates = os.getenv("DDB_TABLE_WHATSAPP_TEMPLATES", "WhatsAppTemplates")
        self.table_content_access = os.getenv("DDB_TABLE_CONTENT_ACCESS", "ContentAccess")
        self.table_opt_in_activity = os.getenv("DDB_TABLE_OPT_IN_ACTIVITY", "WhatsAppOptInActivity")
        self.table_notifications = os.getenv("DDB_TABLE_NOTIFICATIONS", "Notifications")

        # URLs públicas
        self.app_base_url = os.getenv("APP_BASE_URL")
        self.content_base_url = os.getenv("CONTENT_BASE_URL")
        self.content_access_ttl_days = int(os.getenv("CONTENT_ACCESS_TTL_DAYS", "30"))

        # Notificações
        self.notification_max_attempts = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))
        self.notification_backoff_seconds = float(os.getenv("NOTIFICATION_BACKOFF_SECONDS", "1"))
        self.notification_template_backoff_seconds = float(
            os.getenv("NOTIFICATION_TEMPLATE_BACKOFF_SECONDS", "3")
        )
        self.notification_workers = int(os.getenv("NOTIFICATION_WORKERS", "4"))
        self.whatsapp_http_timeout = int(os.getenv("WHATSAPP_HTTP_TIMEOUT", "30"))

        # Motor
        self.execution_write_retries = int(os.getenv("EXECUTION_WRITE_RETRIES", "3"))

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        # Validações
        self._validate_required_settings()

    def _validate_required_settings(self):
        """Valida configurações obrigatórias"""
        required_settings = [
            ("APP_BASE_URL", self.app_base_url),
            ("CONTENT_BASE_URL", self.content_base_url),
        ]

        missing = [name for name, value in required_settings if not value]
        if missing:
            raise ValueError(f"Variáveis de ambiente obrigatórias não configuradas: {', '.join(missing)}")


@lru_cache()
def get_settings() -> Settings:
    """Retorna configurações (cached)"""
    return Settings()


# Componentes globais (inicializados uma vez)
_components = {}


def _componente(nome: str, fabrica):
    if nome not in _components:
        _components[nome] = fabrica()
    return _components[nome]


def get_flow_store() -> FlowStore:
    return _componente("flow_store", lambda: FlowStore(get_table(get_settings().table_flows)))


def get_execution_store() -> ExecutionStore:
    return _componente("execution_store", lambda: ExecutionStore(get_table(get_settings().table_executions)))


def get_profile_store() -> ProfileStore:
    return _componente("profile_store", lambda: ProfileStore(get_table(get_settings().table_profiles)))


def get_settings_store() -> WhatsAppSettingsStore:
    return _componente(
        "settings_store",
        lambda: WhatsAppSettingsStore(get_table(get_settings().table_whatsapp_settings))
    )


def get_template_store() -> WhatsAppTemplateStore:
    return _componente(
        "template_store",
        lambda: WhatsAppTemplateStore(get_table(get_settings().table_whatsapp_templates))
    )


def get_content_access_store() -> ContentAccessStore:
    return _componente(
        "content_access_store",
        lambda: ContentAccessStore(get_table(get_settings().table_content_access))
    )


def get_notification_store() -> NotificationStore:
    return _componente(
        "notification_store",
        lambda: NotificationStore(get_table(get_settings().table_notifications))
    )


def get_validator() -> WhatsAppValidator:
    return _componente(
        "validator",
        lambda: WhatsAppValidator(OptInActivityStore(get_table(get_settings().table_opt_in_activity)))
    )


def get_http_client() -> WhatsAppHttpClient:
    """Retorna cliente HTTP dos providers"""
    return _componente("http_client", lambda: WhatsAppHttpClient(timeout=get_settings().whatsapp_http_timeout))


def get_dispatcher() -> NotificationDispatcher:
    def fabrica():
        settings = get_settings()
        return NotificationDispatcher(RetryPolicy(
            max_tentativas=settings.notification_max_attempts,
            backoff_segundos=settings.notification_backoff_seconds,
            backoff_template_segundos=settings.notification_template_backoff_seconds,
        ))
    return _componente("dispatcher", fabrica)


def get_background() -> BackgroundNotifier:
    return _componente("background", lambda: BackgroundNotifier(max_workers=get_settings().notification_workers))


def get_issuer() -> ContentAccessIssuer:
    def fabrica():
        settings = get_settings()
        return ContentAccessIssuer(
            get_content_access_store(),
            base_url=settings.content_base_url,
            ttl_dias=settings.content_access_ttl_days,
        )
    return _componente("issuer", fabrica)


def get_operator_notifier() -> OperatorNotifier:
    return _componente("operator_notifier", lambda: OperatorNotifier(get_notification_store()))


def get_patient_notifier() -> PatientNotifier:
    def fabrica():
        return PatientNotifier(
            profile_store=get_profile_store(),
            settings_store=get_settings_store(),
            template_store=get_template_store(),
            validator=get_validator(),
            dispatcher=get_dispatcher(),
            issuer=get_issuer(),
            http_client=get_http_client(),
            app_base_url=get_settings().app_base_url,
        )
    return _componente("patient_notifier", fabrica)


def get_engine() -> ExecutionEngine:
    """Retorna motor de execução"""
    def fabrica():
        return ExecutionEngine(
            flow_store=get_flow_store(),
            execution_store=get_execution_store(),
            processadores=criar_processadores(get_patient_notifier(), get_operator_notifier()),
            background=get_background(),
            operator_notifier=get_operator_notifier(),
            max_write_retries=get_settings().execution_write_retries,
        )
    return _componente("engine", fabrica)


def get_materials_service() -> MaterialsDeliveryService:
    def fabrica():
        return MaterialsDeliveryService(
            profile_store=get_profile_store(),
            settings_store=get_settings_store(),
            issuer=get_issuer(),
            dispatcher=get_dispatcher(),
            http_client=get_http_client(),
            validator=get_validator(),
        )
    return _componente("materials_service", fabrica)


def shutdown_components():
    """Encerra o executor de notificações e descarta os componentes"""
    background = _components.get("background")
    if background is not None:
        background.shutdown(wait=False)
    _components.clear()


def initialize_logging():
    """Inicializa logging"""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Sistema inicializado", log_level=settings.log_level)
