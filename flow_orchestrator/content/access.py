"""
Emissão e resolução de tokens de acesso a conteúdo
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import ulid

from flow_orchestrator.content.files import hash_arquivos, normalizar_arquivos
from flow_orchestrator.infra.logging import obter_logger
from flow_orchestrator.infra.store import ContentAccessRecord, ContentAccessStore
from flow_orchestrator.infra.timeutils import agora_utc, garantir_utc

logger = obter_logger(__name__)

TTL_PADRAO_DIAS = 30


class ContentAccessError(Exception):
    status_code = 400


class ContentAccessNotFound(ContentAccessError):
    status_code = 404


class ContentAccessExpired(ContentAccessError):
    status_code = 410


class ContentAccessMismatch(ContentAccessError):
    status_code = 403


@dataclass
class AccessToken:
    access_id: str
    token: str
    url: str
    expires_at: datetime
    reused: bool = False


class ContentAccessIssuer:
    """Emite tokens de tempo limitado ligando arquivos a um par paciente/execução"""

    def __init__(self, store: ContentAccessStore, base_url: str,
                 ttl_dias: int = TTL_PADRAO_DIAS,
                 relogio: Callable[[], datetime] = agora_utc):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.ttl_dias = ttl_dias
        self._relogio = relogio

    def montar_url(self, token: str) -> str:
        return f"{self.base_url}/serve-content?token={token}"

    def issue(self, execution_id: str, patient_id: str, files: List[Dict[str, Any]],
              ttl_days: Optional[int] = None) -> AccessToken:
        """Sempre cria um token novo"""
        arquivos = normalizar_arquivos(files)
        expira_em = self._relogio() + timedelta(days=ttl_days if ttl_days is not None else self.ttl_dias)

        record = self.store.create(ContentAccessRecord(
            id=str(ulid.ULID()),
            access_token=secrets.token_urlsafe(32),
            execution_id=execution_id,
            patient_id=patient_id,
            files=arquivos,
            expires_at=expira_em,
            file_set_hash=hash_arquivos(arquivos),
        ))

        logger.info("Token de conteúdo emitido",
                    access_id=record.id,
                    execution_id=execution_id,
                    expires_at=expira_em.isoformat())
        return self._to_token(record)

    def issue_or_reuse(self, execution_id: str, patient_id: str, files: List[Dict[str, Any]],
                       ttl_days: Optional[int] = None) -> AccessToken:
        """Get-or-create por (execution_id, hash do conjunto de arquivos)"""
        arquivos = normalizar_arquivos(files)
        file_set_hash = hash_arquivos(arquivos)
        agora = self._relogio()

        for record in self.store.list_by_execution(execution_id):
            if (record.file_set_hash == file_set_hash
                    and record.patient_id == patient_id
                    and garantir_utc(record.expires_at) > agora):
                logger.info("Token de conteúdo reutilizado",
                            access_id=record.id,
                            execution_id=execution_id)
                token = self._to_token(record)
                token.reused = True
                return token

        return self.issue(execution_id, patient_id, arquivos, ttl_days=ttl_days)

    def resolve(self, token: str, execution_id: Optional[str] = None,
                patient_id: Optional[str] = None) -> ContentAccessRecord:
        """Resolve token validando expiração e, quando informado, o vínculo"""
        record = self.store.get_by_token(token) if token else None
        if record is None:
            raise ContentAccessNotFound("Token de acesso não encontrado")

        if self._relogio() >= garantir_utc(record.expires_at):
            logger.info("Token de conteúdo expirado", access_id=record.id)
            raise ContentAccessExpired("Token de acesso expirado")

        if execution_id is not None and execution_id != record.execution_id:
            raise ContentAccessMismatch("Token não pertence a esta execução")
        if patient_id is not None and patient_id != record.patient_id:
            raise ContentAccessMismatch("Token não pertence a este paciente")

        return record

    def _to_token(self, record: ContentAccessRecord) -> AccessToken:
        return AccessToken(
            access_id=record.id,
            token=record.access_token,
            url=self.montar_url(record.access_token),
            expires_at=record.expires_at,
        )
