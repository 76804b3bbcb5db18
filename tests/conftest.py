"""
Configurações compartilhadas dos testes
"""
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from flow_orchestrator.api.deps import get_settings
from flow_orchestrator.engine.engine import ExecutionEngine
from flow_orchestrator.engine.processors import criar_processadores
from flow_orchestrator.engine.state import FlowDefinition, FlowEdge, FlowNode
from flow_orchestrator.infra.background import BackgroundNotifier
from flow_orchestrator.infra.dynamo_client import (
    TABLE_CONTENT_ACCESS,
    TABLE_EXECUTIONS,
    TABLE_FLOWS,
    TABLE_NOTIFICATIONS,
    TABLE_OPT_IN_ACTIVITY,
    TABLE_PROFILES,
    TABLE_WHATSAPP_SETTINGS,
    TABLE_WHATSAPP_TEMPLATES,
    table_specs,
)
from flow_orchestrator.infra.http import ProviderResponse
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
from flow_orchestrator.notifications.operator import OperatorNotifier
from flow_orchestrator.notifications.patient import PatientNotifier
from flow_orchestrator.notifications.providers import MessagingProvider

AGORA = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class InlineExecutor(Executor):
    """Executa tarefas destacadas de forma síncrona"""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class RelogioFixo:
    """Relógio controlável injetado no motor e no emissor de tokens"""

    def __init__(self, agora: datetime = AGORA):
        self.agora = agora

    def __call__(self) -> datetime:
        return self.agora

    def avancar(self, **delta) -> datetime:
        self.agora = self.agora + timedelta(**delta)
        return self.agora


# Fixtures para variáveis de ambiente de teste
@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Configura variáveis de ambiente para testes"""
    test_env = {
        "APP_BASE_URL": "https://app.clinica.test",
        "CONTENT_BASE_URL": "https://conteudo.clinica.test",
        "AWS_REGION": "us-east-1",
        "AWS_DEFAULT_REGION": "us-east-1",
        "AWS_ACCESS_KEY_ID": "testing",
        "AWS_SECRET_ACCESS_KEY": "testing",
        "AWS_SECURITY_TOKEN": "testing",
        "AWS_SESSION_TOKEN": "testing",
        "LOG_LEVEL": "ERROR"  # Reduz logs durante testes
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def dynamodb_tables():
    """Cria todas as tabelas mock a partir de table_specs()"""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        tabelas = {}
        for table_name, spec in table_specs().items():
            tabelas[table_name] = dynamodb.create_table(
                TableName=table_name,
                BillingMode='PAY_PER_REQUEST',
                **spec
            )
        yield tabelas


@pytest.fixture
def flow_store(dynamodb_tables):
    return FlowStore(dynamodb_tables[TABLE_FLOWS])


@pytest.fixture
def execution_store(dynamodb_tables):
    return ExecutionStore(dynamodb_tables[TABLE_EXECUTIONS])


@pytest.fixture
def profile_store(dynamodb_tables):
    return ProfileStore(dynamodb_tables[TABLE_PROFILES])


@pytest.fixture
def settings_store(dynamodb_tables):
    return WhatsAppSettingsStore(dynamodb_tables[TABLE_WHATSAPP_SETTINGS])


@pytest.fixture
def template_store(dynamodb_tables):
    return WhatsAppTemplateStore(dynamodb_tables[TABLE_WHATSAPP_TEMPLATES])


@pytest.fixture
def content_access_store(dynamodb_tables):
    return ContentAccessStore(dynamodb_tables[TABLE_CONTENT_ACCESS])


@pytest.fixture
def activity_store(dynamodb_tables):
    return OptInActivityStore(dynamodb_tables[TABLE_OPT_IN_ACTIVITY])


@pytest.fixture
def notification_store(dynamodb_tables):
    return NotificationStore(dynamodb_tables[TABLE_NOTIFICATIONS])


@pytest.fixture
def relogio():
    return RelogioFixo()


@pytest.fixture
def background():
    return BackgroundNotifier(executor=InlineExecutor())


@pytest.fixture
def mock_patient_notifier():
    """Mock do notificador do paciente"""
    return Mock(spec=PatientNotifier)


@pytest.fixture
def mock_operator_notifier():
    """Mock do notificador do operador"""
    return Mock(spec=OperatorNotifier)


@pytest.fixture
def engine(flow_store, execution_store, background, mock_patient_notifier,
           mock_operator_notifier, relogio):
    return ExecutionEngine(
        flow_store=flow_store,
        execution_store=execution_store,
        processadores=criar_processadores(mock_patient_notifier, mock_operator_notifier),
        background=background,
        operator_notifier=mock_operator_notifier,
        relogio=relogio,
    )


@pytest.fixture
def salvar_fluxo(flow_store):
    """Salva um fluxo linear: cada nó aponta para o seguinte"""
    def _salvar(flow_id, nos):
        nodes = [FlowNode(id=node_id, type=tipo, data=data) for node_id, tipo, data in nos]
        edges = [
            FlowEdge(source=a.id, target=b.id, id=f"e-{a.id}-{b.id}")
            for a, b in zip(nodes, nodes[1:])
        ]
        flow = FlowDefinition(id=flow_id, nome=flow_id, clinica_id="clinic-1", nodes=nodes, edges=edges)
        flow_store.put(flow)
        return flow
    return _salvar


@pytest.fixture
def fluxo_formulario(salvar_fluxo):
    """Formulário com quatro perguntas e um fim de formulário (cinco etapas)"""
    return salvar_fluxo("flow-form", [
        ("start", "start", {}),
        ("form-start", "formStart", {"titulo": "Avaliação inicial"}),
        ("q1", "question", {"pergunta": "Como você está?"}),
        ("q2", "question", {"pergunta": "Sente dor?", "tipoResposta": "escolha", "opcoes": ["sim", "não"]}),
        ("q3", "question", {"pergunta": "Dormiu bem?"}),
        ("q4", "question", {"pergunta": "Está se alimentando?"}),
        ("form-end", "formEnd", {"mensagemFinal": "Obrigado!", "arquivos": []}),
        ("end", "end", {}),
    ])


@pytest.fixture
def mock_provider():
    """Provider que aceita tudo; testes ajustam side effects conforme o caso"""
    provider = Mock(spec=MessagingProvider)
    provider.nome = "meta"
    provider.suporta_template = True
    provider.send_text.return_value = ProviderResponse(200, {"messages": [{"id": "wamid.1"}]})
    provider.send_template.return_value = ProviderResponse(200, {"messages": [{"id": "wamid.2"}]})
    provider.aceito.side_effect = lambda response: response.ok and bool(response.body.get("messages"))
    return provider
