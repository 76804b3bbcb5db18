"""
Despacho de notificações com retry limitado

Falha de entrega é efeito colateral best-effort: o dispatcher nunca levanta
exceção, sempre devolve um DeliveryReceipt.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flow_orchestrator.infra.http import ProviderError
from flow_orchestrator.infra.logging import mascarar_telefone, obter_logger
from flow_orchestrator.notifications.providers import MessagingProvider, TemplateMessage

logger = obter_logger(__name__)

MAX_TENTATIVAS = 5


@dataclass
class RetryPolicy:
    """Política de retry com backoff linear (tentativa × base)"""
    max_tentativas: int = MAX_TENTATIVAS
    backoff_segundos: float = 1.0
    backoff_template_segundos: float = 3.0

    def __post_init__(self):
        self.max_tentativas = max(1, min(int(self.max_tentativas), MAX_TENTATIVAS))

    def espera(self, tentativa: int, template: bool = False) -> float:
        """Espera após a tentativa `tentativa` (1-based) antes da próxima"""
        base = self.backoff_template_segundos if template else self.backoff_segundos
        return tentativa * base


@dataclass
class NotificationAttempt:
    """Tentativa efêmera; existe só durante o despacho e nos logs"""
    provider: str
    recipient: str
    payload: Dict[str, Any]
    attempt_number: int
    outcome: str
    error: Optional[str] = None


@dataclass
class DeliveryReceipt:
    success: bool
    provider: str
    attempts: List[NotificationAttempt] = field(default_factory=list)
    provider_result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def total_tentativas(self) -> int:
        return len(self.attempts)


class NotificationDispatcher:
    """Envia mensagens por um provider com retry limitado"""

    def __init__(self, policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def send(self, provider: MessagingProvider, recipient: str, message: str,
             template: Optional[TemplateMessage] = None) -> DeliveryReceipt:
        """
        Envia template (se informado e suportado pelo provider) ou texto simples
        """
        usar_template = template is not None and provider.suporta_template
        if usar_template:
            payload = {"template": template.name, "parametros": list(template.parametros)}
        else:
            payload = {"text": message}

        receipt = DeliveryReceipt(success=False, provider=provider.nome)
        max_tentativas = self.policy.max_tentativas

        for tentativa in range(1, max_tentativas + 1):
            logger.info("Enviando mensagem WhatsApp",
                        provider=provider.nome,
                        recipient=mascarar_telefone(recipient),
                        template=template.name if usar_template else None,
                        tentativa=tentativa,
                        max_tentativas=max_tentativas)

            erro = None
            try:
                if usar_template:
                    response = provider.send_template(recipient, template)
                else:
                    response = provider.send_text(recipient, message)

                if provider.aceito(response):
                    receipt.attempts.append(NotificationAttempt(
                        provider=provider.nome, recipient=recipient, payload=payload,
                        attempt_number=tentativa, outcome="accepted"
                    ))
                    receipt.success = True
                    receipt.provider_result = response.body
                    receipt.error = None
                    logger.info("Mensagem WhatsApp aceita pelo provider",
                                provider=provider.nome,
                                tentativa=tentativa)
                    return receipt

                erro = f"HTTP {response.status_code}: {str(response.body)[:200]}"
                receipt.provider_result = response.body
            except ProviderError as e:
                erro = str(e)
            except Exception as e:
                logger.error("Erro inesperado no provider", provider=provider.nome, error=str(e))
                erro = str(e)

            receipt.attempts.append(NotificationAttempt(
                provider=provider.nome, recipient=recipient, payload=payload,
                attempt_number=tentativa, outcome="rejected", error=erro
            ))
            receipt.error = erro
            logger.warning("Falha no envio WhatsApp",
                           provider=provider.nome,
                           tentativa=tentativa,
                           error=erro)

            if tentativa < max_tentativas:
                self._sleep(self.policy.espera(tentativa, template=usar_template))

        logger.error("Falha após todas as tentativas de envio",
                     provider=provider.nome,
                     tentativas=receipt.total_tentativas,
                     error=receipt.error)
        return receipt

    def send_with_fallback(self, provider: MessagingProvider, recipient: str, message: str,
                           template: Optional[TemplateMessage] = None) -> DeliveryReceipt:
        """
        Tenta o template oficial e, se falhar, envia o texto simples

        As tentativas das duas fases ficam no mesmo recibo.
        """
        receipt = self.send(provider, recipient, message, template=template)
        if receipt.success or template is None or not provider.suporta_template:
            return receipt

        logger.warning("Template falhou, enviando texto simples",
                       provider=provider.nome,
                       template=template.name)
        fallback = self.send(provider, recipient, message)
        fallback.attempts = receipt.attempts + fallback.attempts
        return fallback
