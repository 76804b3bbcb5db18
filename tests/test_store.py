"""
Testes dos stores DynamoDB (moto)
"""
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from flow_orchestrator.engine.state import (
    ExecutionStatus,
    FlowDefinition,
    FlowEdge,
    FlowExecution,
    FlowNode,
)
from flow_orchestrator.infra.store import ContentAccessRecord


def _execucao(execution_id="exec-1", patient_id="patient-1", created_at=None, **campos):
    return FlowExecution(
        id=execution_id,
        flow_id="flow-1",
        patient_id=patient_id,
        total_steps=3,
        created_at=created_at or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc),
        **campos,
    )


class TestFlowStore:

    def test_salvar_e_carregar(self, flow_store):
        flow = FlowDefinition(
            id="flow-1",
            nome="Pós-operatório",
            clinica_id="clinic-1",
            nodes=[FlowNode(id="s", type="start"), FlowNode(id="f", type="end")],
            edges=[FlowEdge(source="s", target="f")],
        )
        flow_store.put(flow)

        carregado = flow_store.get("flow-1")

        assert carregado.nome == "Pós-operatório"
        assert carregado.clinica_id == "clinic-1"
        assert [n.id for n in carregado.nodes] == ["s", "f"]
        assert carregado.edges[0].target == "f"

    def test_inexistente(self, flow_store):
        assert flow_store.get("nao-existe") is None


class TestExecutionStore:

    def test_criacao_exige_versao_zero(self, execution_store):
        versao = execution_store.put(_execucao(), expected_version=0)

        assert versao == 1
        carregada = execution_store.get("exec-1")
        assert carregada.version == 1
        assert carregada.total_steps == 3

    def test_criacao_duplicada_conflita(self, execution_store):
        execution_store.put(_execucao(), expected_version=0)

        with pytest.raises(ClientError) as exc_info:
            execution_store.put(_execucao(), expected_version=0)
        assert exc_info.value.response['Error']['Code'] == 'ConditionalCheckFailedException'

    def test_versao_desatualizada_conflita(self, execution_store):
        execution_store.put(_execucao(), expected_version=0)
        primeira = execution_store.get("exec-1")
        segunda = execution_store.get("exec-1")

        primeira.progress = 33
        primeira.completed_steps = 1
        execution_store.put(primeira, expected_version=primeira.version)

        segunda.status = ExecutionStatus.ACTIVE
        with pytest.raises(ClientError):
            execution_store.put(segunda, expected_version=segunda.version)

        assert execution_store.get("exec-1").progress == 33

    def test_estado_invalido_nao_e_gravado(self, execution_store):
        invalida = FlowExecution.model_construct(
            id="exec-x", flow_id="flow-1", patient_id="patient-1",
            status=ExecutionStatus.ACTIVE, progress=150, completed_steps=5, total_steps=3,
        )

        with pytest.raises(ValidationError):
            execution_store.put(invalida, expected_version=0)
        assert execution_store.get("exec-x") is None

    def test_datas_preservadas(self, execution_store):
        disponivel = datetime(2024, 1, 16, 9, 30, tzinfo=timezone.utc)
        execution_store.put(
            _execucao(status=ExecutionStatus.WAITING, next_step_available_at=disponivel),
            expected_version=0,
        )

        assert execution_store.get("exec-1").next_step_available_at == disponivel

    def test_listar_por_paciente_mais_recentes_primeiro(self, execution_store):
        base = datetime(2024, 1, 15, tzinfo=timezone.utc)
        execution_store.put(_execucao("exec-a", created_at=base), expected_version=0)
        execution_store.put(_execucao("exec-b", created_at=base + timedelta(days=2)), expected_version=0)
        execution_store.put(_execucao("exec-c", created_at=base + timedelta(days=1)), expected_version=0)
        execution_store.put(_execucao("exec-z", patient_id="outro"), expected_version=0)

        execucoes = execution_store.list_by_patient("patient-1")

        assert [e.id for e in execucoes] == ["exec-b", "exec-c", "exec-a"]

    def test_verificar_tabela(self, execution_store):
        assert execution_store.verificar_tabela() is True


class TestProfileStore:

    def test_salvar_e_carregar(self, profile_store):
        profile_store.put("patient-1", "Ana", "11999999999", "clinic-1")

        assert profile_store.get("patient-1") == {
            "user_id": "patient-1",
            "name": "Ana",
            "phone": "11999999999",
            "clinic_id": "clinic-1",
        }

    def test_sem_telefone(self, profile_store):
        profile_store.put("patient-1", "Ana", None, None)

        assert profile_store.get("patient-1")["phone"] is None


class TestWhatsAppSettingsStore:

    def test_configuracao_ativa(self, settings_store):
        settings_store.put("clinic-1", "meta", phone_number="123", access_token="tok")

        settings = settings_store.get_ativo("clinic-1")

        assert settings["provider"] == "meta"
        assert settings["phone_number"] == "123"
        assert settings["access_token"] == "tok"

    def test_inativa_retorna_none(self, settings_store):
        settings_store.put("clinic-1", "meta", is_active=False, phone_number="123", access_token="tok")

        assert settings_store.get_ativo("clinic-1") is None

    def test_inexistente(self, settings_store):
        assert settings_store.get_ativo("clinic-x") is None


class TestWhatsAppTemplateStore:

    def test_template_ativo(self, template_store):
        template_store.put("novo_formulario", is_official=True)

        assert template_store.get_ativo("novo_formulario") == {
            "name": "novo_formulario",
            "is_active": True,
            "is_official": True,
        }

    def test_template_inativo(self, template_store):
        template_store.put("novo_formulario", is_active=False, is_official=True)

        assert template_store.get_ativo("novo_formulario") is None


class TestContentAccessStore:

    def _record(self, token, execution_id="exec-1"):
        return ContentAccessRecord(
            id=f"acc-{token}",
            access_token=token,
            execution_id=execution_id,
            patient_id="patient-1",
            files=[{"id": "doc-1", "url": "https://cdn.test/a.pdf"}],
            expires_at=datetime(2024, 2, 14, 12, 0, tzinfo=timezone.utc),
            file_set_hash="hash",
        )

    def test_criar_e_buscar_por_token(self, content_access_store):
        content_access_store.create(self._record("tok-1"))

        record = content_access_store.get_by_token("tok-1")

        assert record.id == "acc-tok-1"
        assert record.files == [{"id": "doc-1", "url": "https://cdn.test/a.pdf"}]
        assert record.expires_at == datetime(2024, 2, 14, 12, 0, tzinfo=timezone.utc)
        assert record.created_at is not None

    def test_token_duplicado_falha(self, content_access_store):
        content_access_store.create(self._record("tok-1"))

        with pytest.raises(ClientError):
            content_access_store.create(self._record("tok-1"))

    def test_listar_por_execucao(self, content_access_store):
        content_access_store.create(self._record("tok-1"))
        content_access_store.create(self._record("tok-2"))
        content_access_store.create(self._record("tok-3", execution_id="exec-2"))

        tokens = {r.access_token for r in content_access_store.list_by_execution("exec-1")}

        assert tokens == {"tok-1", "tok-2"}


class TestOptInActivityStore:

    def test_ultima_atividade(self, activity_store):
        activity_store.table.put_item(Item={
            "patientId": "patient-1", "createdAtEpoch": 1000, "phone": "5511", "activityType": "opt_in", "meta": "{}",
        })
        activity_store.table.put_item(Item={
            "patientId": "patient-1", "createdAtEpoch": 2000, "phone": "5511", "activityType": "opt_out", "meta": "{}",
        })

        assert activity_store.last("patient-1").activity_type == "opt_out"

    def test_append_registra_meta(self, activity_store):
        activity_store.append("patient-1", "5511999999999", "whatsapp_sent", {"template": "novo_formulario"})

        ultima = activity_store.last("patient-1")

        assert ultima.activity_type == "whatsapp_sent"
        assert ultima.meta == {"template": "novo_formulario"}

    def test_sem_atividade(self, activity_store):
        assert activity_store.last("patient-1") is None


class TestNotificationStore:

    def test_criar(self, notification_store):
        notification_id = notification_store.create(
            "error", "flow", "Erro no Fluxo", "Falha no nó delay",
            actionable=True, execution_id="exec-1",
        )

        item = notification_store.get(notification_id)

        assert item["type"] == "error"
        assert item["actionable"] is True
        assert item["read"] is False
        assert item["executionId"] == "exec-1"
