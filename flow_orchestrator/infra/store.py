"""
Camada de acesso a dados (DAO/Repository) para DynamoDB
"""
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import orjson
import ulid
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from flow_orchestrator.engine.state import FlowDefinition, FlowExecution
from flow_orchestrator.infra.dynamo_client import (
    INDEX_CONTENT_ACCESS_EXECUTION,
    TABLE_CONTENT_ACCESS,
    TABLE_EXECUTIONS,
    TABLE_FLOWS,
    TABLE_NOTIFICATIONS,
    TABLE_OPT_IN_ACTIVITY,
    TABLE_PROFILES,
    TABLE_WHATSAPP_SETTINGS,
    TABLE_WHATSAPP_TEMPLATES,
    get_current_timestamp,
    get_table,
    handle_dynamo_error,
    is_conditional_check_failed,
    retry_on_throttle,
)
from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.timeutils import parsear_iso

logger = obter_logger(__name__)


def _dumps(valor: Any) -> str:
    return orjson.dumps(valor).decode("utf-8")


def _loads(valor: Any) -> Any:
    if isinstance(valor, (str, bytes)):
        return orjson.loads(valor)
    return valor


@dataclass
class ContentAccessRecord:
    """Registro de acesso a conteúdo (imutável após criação)"""
    id: str
    access_token: str
    execution_id: str
    patient_id: str
    files: List[Dict[str, Any]]
    expires_at: datetime
    file_set_hash: str
    created_at: Optional[str] = None


@dataclass
class OptInActivity:
    """Evento de opt-in/envio de WhatsApp de um paciente"""
    patient_id: str
    phone: str
    activity_type: str
    created_at_epoch: int
    meta: Dict[str, Any] = field(default_factory=dict)


class FlowStore:
    """Store para definições de fluxo (somente leitura para o motor)"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_FLOWS)

    @retry_on_throttle
    def get(self, flow_id: str) -> Optional[FlowDefinition]:
        try:
            response = self.table.get_item(Key={'flowId': flow_id})
        except ClientError as e:
            handle_dynamo_error(e, "FlowStore.get", flow_id=flow_id)
            raise

        item = response.get('Item')
        if not item:
            logger.debug("Fluxo não encontrado", flow_id=flow_id)
            return None

        return FlowDefinition(
            id=item['flowId'],
            nome=item.get('nome', ''),
            clinica_id=item.get('clinicaId'),
            nodes=_loads(item.get('nodes', '[]')),
            edges=_loads(item.get('edges', '[]')),
            ativo=item.get('ativo', True),
        )

    @retry_on_throttle
    def put(self, flow: FlowDefinition) -> None:
        item = {
            'flowId': flow.id,
            'nome': flow.nome,
            'nodes': _dumps([node.model_dump() for node in flow.nodes]),
            'edges': _dumps([edge.model_dump() for edge in flow.edges]),
            'ativo': flow.ativo,
            'updatedAt': get_current_timestamp(),
        }
        if flow.clinica_id:
            item['clinicaId'] = flow.clinica_id

        try:
            self.table.put_item(Item=item)
            logger.info("Fluxo salvo", flow_id=flow.id, nos=len(flow.nodes))
        except ClientError as e:
            handle_dynamo_error(e, "FlowStore.put", flow_id=flow.id)
            raise


class ExecutionStore:
    """Store para execuções de fluxo com controle de versão otimista (OCC)"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_EXECUTIONS)

    @retry_on_throttle
    def get(self, execution_id: str) -> Optional[FlowExecution]:
        """
        Recupera execução validada; a versão atual fica em `execution.version`
        """
        try:
            response = self.table.get_item(Key={'executionId': execution_id})
        except ClientError as e:
            handle_dynamo_error(e, "ExecutionStore.get", execution_id=execution_id)
            raise

        item = response.get('Item')
        if not item:
            logger.debug("Execução não encontrada", execution_id=execution_id)
            return None

        execution = FlowExecution.model_validate(_loads(item['estado']))
        execution.version = int(item.get('version', 0))
        return execution

    @retry_on_throttle
    def put(self, execution: FlowExecution, expected_version: int) -> int:
        """
        Salva execução inteira se a versão persistida for a esperada

        Returns:
            Nova versão após salvamento

        Raises:
            ClientError (ConditionalCheckFailedException) em conflito de versão
            ValidationError se o estado violar as invariantes do modelo
        """
        # Revalida antes de gravar
        validado = FlowExecution.model_validate(execution.model_dump())
        new_version = expected_version + 1

        item = {
            'executionId': validado.id,
            'flowId': validado.flow_id,
            'patientId': validado.patient_id,
            'status': validado.status.value,
            'version': new_version,
            'estado': _dumps(validado.model_dump(mode="json")),
            'updatedAt': get_current_timestamp(),
        }

        if expected_version == 0:
            condition = Attr('executionId').not_exists()
        else:
            condition = Attr('version').eq(expected_version)

        try:
            self.table.put_item(Item=item, ConditionExpression=condition)
        except ClientError as e:
            if is_conditional_check_failed(e):
                logger.warning(
                    "Conflito de versão detectado (OCC)",
                    execution_id=validado.id,
                    expected_version=expected_version
                )
                raise
            handle_dynamo_error(e, "ExecutionStore.put", execution_id=validado.id)
            raise

        execution.version = new_version
        logger.debug(
            "Execução salva",
            execution_id=validado.id,
            old_version=expected_version,
            new_version=new_version,
            status=validado.status.value
        )
        return new_version

    @retry_on_throttle
    def list_by_patient(self, patient_id: str) -> List[FlowExecution]:
        """Execuções de um paciente, mais recentes primeiro"""
        try:
            # Em produção, usar GSI patientId-index
            response = self.table.scan(FilterExpression=Attr('patientId').eq(patient_id))
        except ClientError as e:
            handle_dynamo_error(e, "ExecutionStore.list_by_patient", patient_id=patient_id)
            raise

        execucoes = []
        for item in response.get('Items', []):
            execution = FlowExecution.model_validate(_loads(item['estado']))
            execution.version = int(item.get('version', 0))
            execucoes.append(execution)

        execucoes.sort(key=lambda e: e.created_at.isoformat() if e.created_at else "", reverse=True)
        return execucoes

    def verificar_tabela(self) -> bool:
        """Verifica se a tabela de execuções está acessível"""
        try:
            self.table.load()
            return True
        except ClientError as e:
            logger.error("Tabela de execuções inacessível", error=str(e))
            return False


class ProfileStore:
    """Store para perfis de pacientes (nome, telefone, clínica)"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_PROFILES)

    @retry_on_throttle
    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={'userId': user_id})
        except ClientError as e:
            handle_dynamo_error(e, "ProfileStore.get", user_id=user_id)
            raise

        item = response.get('Item')
        if not item:
            return None

        return {
            'user_id': item['userId'],
            'name': item.get('name', ''),
            'phone': item.get('phone'),
            'clinic_id': item.get('clinicId'),
        }

    @retry_on_throttle
    def put(self, user_id: str, name: str, phone: Optional[str], clinic_id: Optional[str]) -> None:
        item = {'userId': user_id, 'name': name}
        if phone:
            item['phone'] = phone
        if clinic_id:
            item['clinicId'] = clinic_id

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            handle_dynamo_error(e, "ProfileStore.put", user_id=user_id)
            raise


class WhatsAppSettingsStore:
    """Store para configuração de WhatsApp por clínica (provider meta|evolution)"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_WHATSAPP_SETTINGS)

    @retry_on_throttle
    def get_ativo(self, clinic_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={'clinicId': clinic_id})
        except ClientError as e:
            handle_dynamo_error(e, "WhatsAppSettingsStore.get_ativo", clinic_id=clinic_id)
            raise

        item = response.get('Item')
        if not item or not item.get('isActive', False):
            return None

        return {
            'clinic_id': item['clinicId'],
            'provider': item.get('provider'),
            'phone_number': item.get('phoneNumber'),
            'access_token': item.get('accessToken'),
            'base_url': item.get('baseUrl'),
            'session_name': item.get('sessionName'),
            'api_key': item.get('apiKey'),
            'is_active': True,
        }

    @retry_on_throttle
    def put(self, clinic_id: str, provider: str, is_active: bool = True, **campos: Optional[str]) -> None:
        nomes = {
            'phone_number': 'phoneNumber',
            'access_token': 'accessToken',
            'base_url': 'baseUrl',
            'session_name': 'sessionName',
            'api_key': 'apiKey',
        }
        item = {'clinicId': clinic_id, 'provider': provider, 'isActive': is_active}
        for chave, valor in campos.items():
            if valor is not None and chave in nomes:
                item[nomes[chave]] = valor

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            handle_dynamo_error(e, "WhatsAppSettingsStore.put", clinic_id=clinic_id)
            raise


class WhatsAppTemplateStore:
    """Store de templates de WhatsApp (consultado, nunca alterado pelo motor)"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_WHATSAPP_TEMPLATES)

    @retry_on_throttle
    def get_ativo(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={'name': name})
        except ClientError as e:
            handle_dynamo_error(e, "WhatsAppTemplateStore.get_ativo", template=name)
            raise

        item = response.get('Item')
        if not item or not item.get('isActive', False):
            return None

        return {
            'name': item['name'],
            'is_active': True,
            'is_official': bool(item.get('isOfficial', False)),
        }

    @retry_on_throttle
    def put(self, name: str, is_active: bool = True, is_official: bool = False) -> None:
        try:
            self.table.put_item(Item={'name': name, 'isActive': is_active, 'isOfficial': is_official})
        except ClientError as e:
            handle_dynamo_error(e, "WhatsAppTemplateStore.put", template=name)
            raise


class ContentAccessStore:
    """Store para tokens de acesso a conteúdo"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_CONTENT_ACCESS)

    @retry_on_throttle
    def create(self, record: ContentAccessRecord) -> ContentAccessRecord:
        record.created_at = record.created_at or get_current_timestamp()

        try:
            self.table.put_item(
                Item={
                    'accessToken': record.access_token,
                    'accessId': record.id,
                    'executionId': record.execution_id,
                    'patientId': record.patient_id,
                    'files': _dumps(record.files),
                    'expiresAt': record.expires_at.isoformat(),
                    'fileSetHash': record.file_set_hash,
                    'createdAt': record.created_at,
                },
                ConditionExpression=Attr('accessToken').not_exists()
            )
        except ClientError as e:
            handle_dynamo_error(e, "ContentAccessStore.create", execution_id=record.execution_id)
            raise

        logger.info("Acesso a conteúdo criado",
                    access_id=record.id,
                    execution_id=record.execution_id,
                    arquivos=len(record.files))
        return record

    @retry_on_throttle
    def get_by_token(self, access_token: str) -> Optional[ContentAccessRecord]:
        try:
            response = self.table.get_item(Key={'accessToken': access_token})
        except ClientError as e:
            handle_dynamo_error(e, "ContentAccessStore.get_by_token")
            raise

        item = response.get('Item')
        return self._item_to_record(item) if item else None

    @retry_on_throttle
    def list_by_execution(self, execution_id: str) -> List[ContentAccessRecord]:
        try:
            response = self.table.query(
                IndexName=INDEX_CONTENT_ACCESS_EXECUTION,
                KeyConditionExpression=Key('executionId').eq(execution_id)
            )
        except ClientError as e:
            handle_dynamo_error(e, "ContentAccessStore.list_by_execution", execution_id=execution_id)
            raise

        return [self._item_to_record(item) for item in response.get('Items', [])]

    def _item_to_record(self, item: Dict[str, Any]) -> ContentAccessRecord:
        return ContentAccessRecord(
            id=item['accessId'],
            access_token=item['accessToken'],
            execution_id=item['executionId'],
            patient_id=item['patientId'],
            files=_loads(item.get('files', '[]')),
            expires_at=parsear_iso(item['expiresAt']),
            file_set_hash=item.get('fileSetHash', ''),
            created_at=item.get('createdAt'),
        )


class OptInActivityStore:
    """Store para eventos de opt-in e envio de WhatsApp"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_OPT_IN_ACTIVITY)

    @retry_on_throttle
    def append(self, patient_id: str, phone: str, activity_type: str,
               meta: Optional[Dict[str, Any]] = None) -> OptInActivity:
        activity = OptInActivity(
            patient_id=patient_id,
            phone=phone,
            activity_type=activity_type,
            created_at_epoch=int(time.time() * 1000),
            meta=meta or {},
        )

        try:
            self.table.put_item(
                Item={
                    'patientId': patient_id,
                    'createdAtEpoch': activity.created_at_epoch,
                    'phone': phone,
                    'activityType': activity_type,
                    'meta': _dumps(activity.meta),
                }
            )
        except ClientError as e:
            handle_dynamo_error(e, "OptInActivityStore.append", patient_id=patient_id)
            raise

        logger.debug("Atividade de opt-in registrada", patient_id=patient_id, tipo=activity_type)
        return activity

    @retry_on_throttle
    def last(self, patient_id: str) -> Optional[OptInActivity]:
        """Atividade mais recente do paciente"""
        try:
            response = self.table.query(
                KeyConditionExpression=Key('patientId').eq(patient_id),
                ScanIndexForward=False,
                Limit=1
            )
        except ClientError as e:
            handle_dynamo_error(e, "OptInActivityStore.last", patient_id=patient_id)
            raise

        items = response.get('Items', [])
        if not items:
            return None

        item = items[0]
        return OptInActivity(
            patient_id=item['patientId'],
            phone=item.get('phone', ''),
            activity_type=item['activityType'],
            created_at_epoch=int(item['createdAtEpoch']),
            meta=_loads(item.get('meta', '{}')),
        )


class NotificationStore:
    """Store para notificações internas do operador da clínica"""

    def __init__(self, table=None):
        self.table = table if table is not None else get_table(TABLE_NOTIFICATIONS)

    @retry_on_throttle
    def create(self, tipo: str, categoria: str, titulo: str, mensagem: str,
               actionable: bool = False, execution_id: Optional[str] = None) -> str:
        notification_id = str(ulid.ULID())
        item = {
            'notificationId': notification_id,
            'type': tipo,
            'category': categoria,
            'title': titulo,
            'message': mensagem,
            'actionable': actionable,
            'read': False,
            'createdAt': get_current_timestamp(),
        }
        if execution_id:
            item['executionId'] = execution_id

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            handle_dynamo_error(e, "NotificationStore.create", titulo=titulo)
            raise

        logger.info("Notificação criada", notification_id=notification_id, tipo=tipo, titulo=titulo)
        return notification_id

    @retry_on_throttle
    def get(self, notification_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.table.get_item(Key={'notificationId': notification_id})
        except ClientError as e:
            handle_dynamo_error(e, "NotificationStore.get", notification_id=notification_id)
            raise
        return response.get('Item')
