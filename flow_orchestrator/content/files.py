"""
Normalização dos arquivos anexados aos nós formEnd
"""
import hashlib
from typing import Any, Dict, List

import orjson

BUCKET_ANTIGO = "/flow-documents/"
BUCKET_ATUAL = "/clinic-materials/"


def limpar_url(url: str) -> str:
    """Remove prefixos https:// duplicados e força o bucket de materiais"""
    url = url or ""

    if url.count("https://") > 1:
        url = "https://" + url.split("https://")[-1]

    if BUCKET_ANTIGO in url:
        url = url.replace(BUCKET_ANTIGO, BUCKET_ATUAL)

    return url


def normalizar_arquivo(arquivo: Dict[str, Any]) -> Dict[str, Any]:
    url = limpar_url(arquivo.get("file_url") or arquivo.get("url") or arquivo.get("publicUrl") or "")
    nome = (arquivo.get("original_filename") or arquivo.get("filename")
            or arquivo.get("nome") or "Arquivo")
    tipo = arquivo.get("file_type") or arquivo.get("tipo") or "application/octet-stream"
    tamanho = arquivo.get("file_size") or arquivo.get("tamanho") or 0

    return {
        "id": arquivo.get("id") or arquivo.get("document_id"),
        "nome": nome,
        "url": url,
        "tipo": tipo,
        "tamanho": tamanho,
    }


def normalizar_arquivos(arquivos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [normalizar_arquivo(a) for a in (arquivos or []) if isinstance(a, dict)]


def hash_arquivos(arquivos: List[Dict[str, Any]]) -> str:
    """Hash estável do conjunto de arquivos (independe da ordem)"""
    chaves = sorted(f"{a.get('id') or ''}|{a.get('url') or ''}" for a in arquivos)
    return hashlib.sha256(orjson.dumps(chaves)).hexdigest()
