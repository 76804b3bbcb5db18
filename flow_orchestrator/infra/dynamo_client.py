"""
Acesso ao DynamoDB: resource compartilhado, nomes de tabela e tratamento de erros
"""
import functools
import os
import time
from typing import Any, Dict

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.timeutils import agora_utc

logger = obter_logger(__name__)

TABLE_FLOWS = os.getenv('DDB_TABLE_FLOWS', 'Flows')
TABLE_EXECUTIONS = os.getenv('DDB_TABLE_EXECUTIONS', 'FlowExecutions')
TABLE_PROFILES = os.getenv('DDB_TABLE_PROFILES', 'Profiles')
TABLE_WHATSAPP_SETTINGS = os.getenv('DDB_TABLE_WHATSAPP_SETTINGS', 'WhatsAppSettings')
TABLE_WHATSAPP_TEMPLATES = os.getenv('DDB_TABLE_WHATSAPP_TEMPLATES', 'WhatsAppTemplates')
TABLE_CONTENT_ACCESS = os.getenv('DDB_TABLE_CONTENT_ACCESS', 'ContentAccess')
TABLE_OPT_IN_ACTIVITY = os.getenv('DDB_TABLE_OPT_IN_ACTIVITY', 'WhatsAppOptInActivity')
TABLE_NOTIFICATIONS = os.getenv('DDB_TABLE_NOTIFICATIONS', 'Notifications')

INDEX_CONTENT_ACCESS_EXECUTION = 'executionId-index'

ERROS_THROTTLING = frozenset({
    'ProvisionedThroughputExceededException',
    'RequestLimitExceeded',
    'ThrottlingException',
})
MAX_RETRIES_THROTTLING = 3
ESPERA_BASE_THROTTLING = 0.1

# Um resource por região; boto3 resources não são compartilhados entre regiões
_resources: Dict[str, Any] = {}


def _config(region: str) -> Config:
    return Config(
        region_name=region,
        retries={'max_attempts': 3, 'mode': 'adaptive'},
        read_timeout=10,
        connect_timeout=5,
        max_pool_connections=50,
    )


def get_dynamo_resource(region: str = None):
    region = region or os.getenv('AWS_REGION', 'sa-east-1')
    if region not in _resources:
        _resources[region] = boto3.resource('dynamodb', config=_config(region))
        logger.info("DynamoDB resource inicializado", region=region)
    return _resources[region]


def get_table(table_name: str, region: str = None):
    return get_dynamo_resource(region).Table(table_name)


def get_current_timestamp() -> str:
    """Timestamp ISO8601 UTC gravado em createdAt/updatedAt"""
    return agora_utc().isoformat()


def codigo_erro(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def is_conditional_check_failed(error: ClientError) -> bool:
    return codigo_erro(error) == 'ConditionalCheckFailedException'


def handle_dynamo_error(error: ClientError, operation: str, **context) -> None:
    """Registra o erro com contexto; quem chama decide se propaga"""
    logger.error(
        "Erro do DynamoDB",
        operation=operation,
        error_code=codigo_erro(error),
        error_message=error.response.get('Error', {}).get('Message'),
        **context
    )


def retry_on_throttle(func):
    """Repete a operação com backoff exponencial quando o DynamoDB limita a vazão"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        for tentativa in range(MAX_RETRIES_THROTTLING + 1):
            try:
                return func(*args, **kwargs)
            except ClientError as e:
                if codigo_erro(e) not in ERROS_THROTTLING or tentativa == MAX_RETRIES_THROTTLING:
                    raise
                espera = ESPERA_BASE_THROTTLING * (2 ** tentativa)
                logger.warning("DynamoDB com throttling, nova tentativa",
                               operacao=func.__name__,
                               espera=espera,
                               tentativa=tentativa + 1)
                time.sleep(espera)
    return wrapper


def table_specs() -> Dict[str, Dict[str, Any]]:
    """
    Definições (KeySchema/AttributeDefinitions/GSIs) de todas as tabelas

    Usado pelo script de criação e pelos testes.
    """
    def simples(chave: str) -> Dict[str, Any]:
        return {
            'KeySchema': [{'AttributeName': chave, 'KeyType': 'HASH'}],
            'AttributeDefinitions': [{'AttributeName': chave, 'AttributeType': 'S'}],
        }

    specs = {
        TABLE_FLOWS: simples('flowId'),
        TABLE_EXECUTIONS: simples('executionId'),
        TABLE_PROFILES: simples('userId'),
        TABLE_WHATSAPP_SETTINGS: simples('clinicId'),
        TABLE_WHATSAPP_TEMPLATES: simples('name'),
        TABLE_NOTIFICATIONS: simples('notificationId'),
        TABLE_CONTENT_ACCESS: {
            'KeySchema': [{'AttributeName': 'accessToken', 'KeyType': 'HASH'}],
            'AttributeDefinitions': [
                {'AttributeName': 'accessToken', 'AttributeType': 'S'},
                {'AttributeName': 'executionId', 'AttributeType': 'S'},
            ],
            'GlobalSecondaryIndexes': [{
                'IndexName': INDEX_CONTENT_ACCESS_EXECUTION,
                'KeySchema': [{'AttributeName': 'executionId', 'KeyType': 'HASH'}],
                'Projection': {'ProjectionType': 'ALL'},
            }],
        },
        TABLE_OPT_IN_ACTIVITY: {
            'KeySchema': [
                {'AttributeName': 'patientId', 'KeyType': 'HASH'},
                {'AttributeName': 'createdAtEpoch', 'KeyType': 'RANGE'},
            ],
            'AttributeDefinitions': [
                {'AttributeName': 'patientId', 'AttributeType': 'S'},
                {'AttributeName': 'createdAtEpoch', 'AttributeType': 'N'},
            ],
        },
    }
    return specs
