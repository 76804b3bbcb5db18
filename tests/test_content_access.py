"""
Testes de emissão e resolução de tokens de acesso a conteúdo
"""
from datetime import timedelta

import pytest

from flow_orchestrator.content.access import (
    ContentAccessExpired,
    ContentAccessIssuer,
    ContentAccessMismatch,
    ContentAccessNotFound,
)
from flow_orchestrator.content.files import hash_arquivos, limpar_url, normalizar_arquivos

ARQUIVOS = [
    {"id": "doc-1", "file_url": "https://cdn.test/clinic-materials/orientacoes.pdf",
     "original_filename": "orientacoes.pdf", "file_type": "application/pdf", "file_size": 1024},
    {"id": "doc-2", "url": "https://cdn.test/clinic-materials/dieta.pdf", "nome": "Dieta"},
]


@pytest.fixture
def issuer(content_access_store, relogio):
    return ContentAccessIssuer(content_access_store, "https://conteudo.test/", relogio=relogio)


class TestArquivos:

    def test_prefixo_duplicado(self):
        assert limpar_url("https://https://cdn.test/a.pdf") == "https://cdn.test/a.pdf"

    def test_bucket_antigo(self):
        assert limpar_url("https://cdn.test/flow-documents/a.pdf") == "https://cdn.test/clinic-materials/a.pdf"

    def test_normalizacao_com_padroes(self):
        arquivo = normalizar_arquivos([{"publicUrl": "https://cdn.test/x"}, "lixo"])

        assert arquivo == [{
            "id": None,
            "nome": "Arquivo",
            "url": "https://cdn.test/x",
            "tipo": "application/octet-stream",
            "tamanho": 0,
        }]

    def test_hash_independe_da_ordem(self):
        arquivos = normalizar_arquivos(ARQUIVOS)

        assert hash_arquivos(arquivos) == hash_arquivos(list(reversed(arquivos)))
        assert hash_arquivos(arquivos) != hash_arquivos(arquivos[:1])


class TestIssue:

    def test_emite_token_com_url(self, issuer, relogio):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS)

        assert token.url == f"https://conteudo.test/serve-content?token={token.token}"
        assert token.expires_at == relogio() + timedelta(days=30)
        assert token.reused is False

    def test_ttl_customizado(self, issuer, relogio):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS, ttl_days=7)

        assert token.expires_at == relogio() + timedelta(days=7)

    def test_ttl_zero_expira_na_emissao(self, issuer, relogio):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS, ttl_days=0)

        assert token.expires_at == relogio()
        with pytest.raises(ContentAccessExpired):
            issuer.resolve(token.token)

    def test_emissoes_repetidas_geram_tokens_distintos(self, issuer):
        primeiro = issuer.issue("exec-1", "patient-1", ARQUIVOS)
        segundo = issuer.issue("exec-1", "patient-1", ARQUIVOS)

        assert primeiro.token != segundo.token
        assert primeiro.access_id != segundo.access_id
        assert issuer.resolve(primeiro.token).id == primeiro.access_id
        assert issuer.resolve(segundo.token).id == segundo.access_id

    def test_cada_token_expira_no_seu_prazo(self, issuer, relogio):
        curto = issuer.issue("exec-1", "patient-1", ARQUIVOS, ttl_days=1)
        longo = issuer.issue("exec-1", "patient-1", ARQUIVOS, ttl_days=10)

        relogio.avancar(days=2)

        with pytest.raises(ContentAccessExpired):
            issuer.resolve(curto.token)
        assert issuer.resolve(longo.token).id == longo.access_id


class TestIssueOrReuse:

    def test_reutiliza_mesmo_conjunto(self, issuer):
        primeiro = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS)
        segundo = issuer.issue_or_reuse("exec-1", "patient-1", list(reversed(ARQUIVOS)))

        assert segundo.reused is True
        assert segundo.token == primeiro.token

    def test_conjunto_diferente_emite_novo(self, issuer):
        primeiro = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS)
        segundo = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS[:1])

        assert segundo.reused is False
        assert segundo.token != primeiro.token

    def test_token_expirado_nao_e_reutilizado(self, issuer, relogio):
        primeiro = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS, ttl_days=1)
        relogio.avancar(days=1)

        segundo = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS)

        assert segundo.reused is False
        assert segundo.token != primeiro.token

    def test_outro_paciente_nao_reutiliza(self, issuer):
        primeiro = issuer.issue_or_reuse("exec-1", "patient-1", ARQUIVOS)
        segundo = issuer.issue_or_reuse("exec-1", "patient-2", ARQUIVOS)

        assert segundo.token != primeiro.token


class TestResolve:

    def test_retorna_arquivos_normalizados(self, issuer):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS)

        record = issuer.resolve(token.token, execution_id="exec-1", patient_id="patient-1")

        assert record.execution_id == "exec-1"
        assert [f["nome"] for f in record.files] == ["orientacoes.pdf", "Dieta"]

    def test_token_inexistente(self, issuer):
        with pytest.raises(ContentAccessNotFound):
            issuer.resolve("nao-existe")

    def test_token_vazio(self, issuer):
        with pytest.raises(ContentAccessNotFound):
            issuer.resolve("")

    def test_expira_no_instante_limite(self, issuer, relogio):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS, ttl_days=1)
        relogio.avancar(days=1)

        with pytest.raises(ContentAccessExpired) as exc_info:
            issuer.resolve(token.token)
        assert exc_info.value.status_code == 410

    def test_execucao_divergente(self, issuer):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS)

        with pytest.raises(ContentAccessMismatch) as exc_info:
            issuer.resolve(token.token, execution_id="exec-2")
        assert exc_info.value.status_code == 403

    def test_paciente_divergente(self, issuer):
        token = issuer.issue("exec-1", "patient-1", ARQUIVOS)

        with pytest.raises(ContentAccessMismatch):
            issuer.resolve(token.token, patient_id="patient-2")
