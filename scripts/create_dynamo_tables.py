#!/usr/bin/env python3
"""
Cria as tabelas DynamoDB do Flow Orchestrator a partir de table_specs()

Uso: python scripts/create_dynamo_tables.py [--region sa-east-1]
"""
import argparse
import os
import sys

import boto3
from botocore.exceptions import ClientError, WaiterError
from dotenv import load_dotenv

# Nomes das tabelas vêm do ambiente no import de dynamo_client
load_dotenv()

from flow_orchestrator.infra.dynamo_client import table_specs  # noqa: E402


def criar_tabela(client, nome: str, spec: dict) -> bool:
    try:
        client.create_table(
            TableName=nome,
            BillingMode='PAY_PER_REQUEST',
            Tags=[
                {'Key': 'Project', 'Value': 'FlowOrchestrator'},
                {'Key': 'Environment', 'Value': os.getenv('ENVIRONMENT', 'development')},
            ],
            **spec
        )
        print(f"🚀 Criando {nome}...")
    except ClientError as e:
        if e.response['Error']['Code'] != 'ResourceInUseException':
            print(f"❌ {nome}: {e.response['Error']['Message']}")
            return False
        print(f"⚠️  {nome} já existe")

    try:
        client.get_waiter('table_exists').wait(
            TableName=nome,
            WaiterConfig={'Delay': 2, 'MaxAttempts': 30}
        )
    except WaiterError as e:
        print(f"⏰ {nome} não ficou ativa: {e}")
        return False

    print(f"✅ {nome} ativa")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--region", default=os.getenv("AWS_REGION", "sa-east-1"))
    args = parser.parse_args(argv)

    client = boto3.client('dynamodb', region_name=args.region)
    print(f"🔗 DynamoDB em {args.region}")

    resultados = {nome: criar_tabela(client, nome, spec) for nome, spec in table_specs().items()}
    falhas = [nome for nome, ok in resultados.items() if not ok]

    if falhas:
        print(f"❌ Falha em: {', '.join(falhas)}")
        return 1

    print(f"🎉 {len(resultados)} tabelas prontas")
    print("💡 Configure APP_BASE_URL e CONTENT_BASE_URL e rode: "
          "uvicorn flow_orchestrator.api.main:app --reload")
    return 0


if __name__ == "__main__":
    sys.exit(main())
