"""
Adaptateur Stripe: centralise les appels PaymentIntent/Refund/Transfer/Webhook.
La clé API vient de PaymentSettings (passée à la construction), jamais de l'environnement.
Toute stripe.StripeError est convertie en ProcessorRejected.
"""
import logging
from typing import Any, Dict, Optional

import stripe

from ridepay.config import PaymentSettings
from .errors import ProcessorRejected

logger = logging.getLogger(__name__)


def _as_dict(obj: Any) -> Dict[str, Any]:
    # stripe retourne un StripeObject; on le traite comme dict-compatible
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


# module ridepay.payments.stripe_client
class StripeProcessor:
    def __init__(self, settings: PaymentSettings):
        self.settings = settings

    def _options(self, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        if not self.settings.stripe_secret_key:
            raise ProcessorRejected("STRIPE_SECRET_KEY non configuré")
        opts: Dict[str, Any] = {"api_key": self.settings.stripe_secret_key}
        if idempotency_key:
            opts["idempotency_key"] = idempotency_key
        return opts

    def _call(self, action: str, fn, *args, **kwargs) -> Dict[str, Any]:
        try:
            return _as_dict(fn(*args, **kwargs))
        except stripe.StripeError as e:
            msg = getattr(e, "user_message", None) or str(e)
            logger.warning("payments.stripe.%s rejected: %s", action, msg)
            raise ProcessorRejected(f"Stripe a refusé {action}: {msg}", code=getattr(e, "code", None)) from e

    def create_intent(
        self,
        *,
        amount: int,
        metadata: Dict[str, str],
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Crée un PaymentIntent en capture manuelle (autorisation seule).
        Retour: dict incluant "id", "status", "client_secret".
        """
        return self._call(
            "create",
            stripe.PaymentIntent.create,
            amount=amount,
            currency=self.settings.currency,
            capture_method="manual",
            metadata=metadata,
            description=description,
            **self._options(idempotency_key),
        )

    def retrieve_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._call("retrieve", stripe.PaymentIntent.retrieve, intent_id, **self._options())

    def capture_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._call(
            "capture",
            stripe.PaymentIntent.capture,
            intent_id,
            **self._options(f"capture-{intent_id}"),
        )

    def cancel_intent(self, intent_id: str) -> Dict[str, Any]:
        return self._call("cancel", stripe.PaymentIntent.cancel, intent_id, **self._options())

    def create_refund(self, intent_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"payment_intent": intent_id}
        if reason:
            params["reason"] = reason
        return self._call("refund", stripe.Refund.create, **params, **self._options(f"refund-{intent_id}"))

    def create_transfer(self, *, amount: int, destination: str, description: str) -> Dict[str, Any]:
        """Virement vers le compte Stripe Connect du conducteur."""
        return self._call(
            "transfer",
            stripe.Transfer.create,
            amount=amount,
            currency=self.settings.currency,
            destination=destination,
            description=description,
            **self._options(),
        )

    def construct_event(self, payload: bytes | str, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Valide la signature Stripe-Signature et retourne l'événement.
        Lève ValueError / stripe.SignatureVerificationError si invalide.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("STRIPE_WEBHOOK_SECRET non configuré")
        event = stripe.Webhook.construct_event(payload, sig_header or "", self.settings.stripe_webhook_secret)
        return _as_dict(event)
