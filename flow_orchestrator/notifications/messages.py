"""
Textos das mensagens enviadas ao paciente
"""
from datetime import datetime
from typing import Optional

from flow_orchestrator.infra.timeutils import formatar_data_br

TEMPLATE_NOVO_FORMULARIO = "novo_formulario"
TEMPLATE_FORMULARIO_CONCLUIDO = "formulario_concluido"


def mensagem_novo_formulario(nome: str, titulo: Optional[str], link_painel: str) -> str:
    titulo = titulo or "Formulário"
    return (
        f"📋 *{titulo}*\n\n"
        f"Olá {nome}! Você tem um novo formulário para preencher.\n\n"
        f"🔗 Acesse aqui: {link_painel}\n\n"
        "_O formulário aparecerá automaticamente quando você abrir o link._"
    )


def mensagem_formulario_concluido(nome: str, link_conteudo: str) -> str:
    return (
        "🎉 *Formulário Concluído!*\n\n"
        f"Olá {nome}! Você concluiu o formulário com sucesso.\n\n"
        f"📁 Acesse seus documentos aqui: {link_conteudo}"
    )


def mensagem_materiais_prontos(nome: str, link_download: str, expira_em: datetime) -> str:
    return (
        "🎉 *Formulário Concluído!*\n\n"
        f"Olá {nome}! Seus materiais estão prontos para download.\n\n"
        f"📁 Acesse aqui: {link_download}\n\n"
        f"📅 Válido até: {formatar_data_br(expira_em)}\n\n"
        "Qualquer dúvida, entre em contato conosco! 😊"
    )
