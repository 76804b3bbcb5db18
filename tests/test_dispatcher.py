"""
Testes do NotificationDispatcher
"""
from unittest.mock import Mock

import pytest

from flow_orchestrator.infra.http import ProviderError, ProviderResponse
from flow_orchestrator.notifications.dispatcher import (
    MAX_TENTATIVAS,
    NotificationDispatcher,
    RetryPolicy,
)
from flow_orchestrator.notifications.providers import TemplateMessage

RECUSADA = ProviderResponse(500, {"error": "indisponível"})
ACEITA = ProviderResponse(200, {"messages": [{"id": "wamid.ok"}]})


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def dispatcher(sleep):
    return NotificationDispatcher(RetryPolicy(), sleep=sleep)


class TestRetryPolicy:

    def test_limite_maximo(self):
        assert RetryPolicy(max_tentativas=10).max_tentativas == MAX_TENTATIVAS

    def test_minimo_uma_tentativa(self):
        assert RetryPolicy(max_tentativas=0).max_tentativas == 1

    def test_backoff_linear(self):
        policy = RetryPolicy()
        assert [policy.espera(t) for t in (1, 2, 3)] == [1.0, 2.0, 3.0]
        assert [policy.espera(t, template=True) for t in (1, 2, 3)] == [3.0, 6.0, 9.0]


class TestSend:

    def test_sucesso_na_primeira_tentativa(self, dispatcher, mock_provider, sleep):
        receipt = dispatcher.send(mock_provider, "5511999999999", "Olá")

        assert receipt.success is True
        assert receipt.total_tentativas == 1
        assert receipt.provider_result == {"messages": [{"id": "wamid.1"}]}
        mock_provider.send_text.assert_called_once_with("5511999999999", "Olá")
        sleep.assert_not_called()

    def test_falha_esgota_tentativas_sem_levantar(self, dispatcher, mock_provider, sleep):
        mock_provider.send_text.return_value = RECUSADA

        receipt = dispatcher.send(mock_provider, "5511999999999", "Olá")

        assert receipt.success is False
        assert receipt.total_tentativas == MAX_TENTATIVAS
        assert mock_provider.send_text.call_count == MAX_TENTATIVAS
        assert receipt.error.startswith("HTTP 500")
        assert [a.attempt_number for a in receipt.attempts] == [1, 2, 3, 4, 5]

    def test_esperas_estritamente_crescentes(self, dispatcher, mock_provider, sleep):
        mock_provider.send_text.return_value = RECUSADA

        dispatcher.send(mock_provider, "5511999999999", "Olá")

        esperas = [c.args[0] for c in sleep.call_args_list]
        assert esperas == [1.0, 2.0, 3.0, 4.0]

    def test_esperas_de_template(self, dispatcher, mock_provider, sleep):
        mock_provider.send_template.return_value = RECUSADA

        dispatcher.send(mock_provider, "5511999999999", "Olá", template=TemplateMessage("novo_formulario"))

        esperas = [c.args[0] for c in sleep.call_args_list]
        assert esperas == [3.0, 6.0, 9.0, 12.0]

    def test_politica_menor_limita_tentativas(self, mock_provider, sleep):
        mock_provider.send_text.return_value = RECUSADA
        dispatcher = NotificationDispatcher(RetryPolicy(max_tentativas=2), sleep=sleep)

        receipt = dispatcher.send(mock_provider, "5511999999999", "Olá")

        assert receipt.total_tentativas == 2
        assert sleep.call_count == 1

    def test_sucesso_na_terceira_tentativa(self, dispatcher, mock_provider, sleep):
        mock_provider.send_text.side_effect = [RECUSADA, RECUSADA, ACEITA]

        receipt = dispatcher.send(mock_provider, "5511999999999", "Olá")

        assert receipt.success is True
        assert receipt.total_tentativas == 3
        assert [a.outcome for a in receipt.attempts] == ["rejected", "rejected", "accepted"]
        assert receipt.error is None

    def test_excecoes_do_provider_viram_tentativas(self, dispatcher, mock_provider):
        mock_provider.send_text.side_effect = [
            ProviderError("Timeout na chamada"),
            RuntimeError("inesperado"),
            ACEITA,
        ]

        receipt = dispatcher.send(mock_provider, "5511999999999", "Olá")

        assert receipt.success is True
        assert receipt.attempts[0].error == "Timeout na chamada"
        assert receipt.attempts[1].error == "inesperado"

    def test_template_ignorado_sem_suporte(self, dispatcher, mock_provider):
        mock_provider.suporta_template = False

        dispatcher.send(mock_provider, "5511999999999", "Olá", template=TemplateMessage("novo_formulario"))

        mock_provider.send_template.assert_not_called()
        mock_provider.send_text.assert_called_once()


class TestSendWithFallback:

    def test_template_aceito_nao_envia_texto(self, dispatcher, mock_provider):
        receipt = dispatcher.send_with_fallback(
            mock_provider, "5511999999999", "Olá", template=TemplateMessage("novo_formulario", ["Ana"])
        )

        assert receipt.success is True
        mock_provider.send_template.assert_called_once()
        mock_provider.send_text.assert_not_called()

    def test_template_falhou_envia_texto(self, dispatcher, mock_provider):
        mock_provider.send_template.return_value = RECUSADA

        receipt = dispatcher.send_with_fallback(
            mock_provider, "5511999999999", "Olá", template=TemplateMessage("novo_formulario")
        )

        assert receipt.success is True
        assert mock_provider.send_template.call_count == MAX_TENTATIVAS
        mock_provider.send_text.assert_called_once_with("5511999999999", "Olá")
        assert receipt.total_tentativas == MAX_TENTATIVAS + 1
        assert "template" in receipt.attempts[0].payload
        assert receipt.attempts[-1].payload == {"text": "Olá"}
