# module ridepay.payments.views

"""Endpoints du cycle de paiement d'un trajet.
- /create: autorise le montant (capture manuelle) pour le passager authentifié (rate-limité).
- /capture, /cancel, /refund: confiance service, identifiés par paymentIntentId (pi_...).
- /payout: virement vers le compte Stripe Connect d'un conducteur.
- /webhook: événements Stripe signés, synchronisent le statut local.
Réponses: enveloppe uniforme {"success": bool, "data"?: ..., "error"?: str}.
"""
import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request

from ridepay.utils.rate_limit import optional_rate_limit
from ridepay.utils.security import require_user
from .dependencies import get_service_orchestrator, get_user_orchestrator
from .errors import ValidationError
from .models import CreatePaymentRequest, PaymentIntentRequest, PayoutRequest, RefundRequest
from .service import PaymentOrchestrator
from .webhooks import handle_event

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payment", tags=["Payment API"])


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


@router.post("/create", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment(
    body: CreatePaymentRequest,
    user: Dict[str, Any] = Depends(require_user),
    orchestrator: PaymentOrchestrator = Depends(get_user_orchestrator),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
):
    """Crée l'intention de paiement du passager courant.
    - Entrée JSON: {rideId, bookingId?, driverId, amountSubtotal, referralCode?}
    - Retour: l'enregistrement (clientSecret inclus) pour confirmation côté client
    """
    record = orchestrator.create(
        rider_id=user.get("id"),
        ride_id=body.ride_id,
        driver_id=body.driver_id,
        amount_subtotal=body.amount_subtotal,
        booking_id=body.booking_id,
        referral_code=body.referral_code,
        idempotency_key=idempotency_key,
    )
    return ok(record.public())


@router.post("/capture")
def capture_payment(body: PaymentIntentRequest, orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator)):
    return ok(orchestrator.capture(body.payment_intent_id).public())


@router.post("/cancel")
def cancel_payment(body: PaymentIntentRequest, orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator)):
    return ok(orchestrator.cancel(body.payment_intent_id).public())


@router.post("/refund")
def refund_payment(body: RefundRequest, orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator)):
    return ok(orchestrator.refund(body.payment_intent_id, body.reason).public())


@router.post("/payout")
def create_payout(body: PayoutRequest, orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator)):
    return ok(orchestrator.payout(body.driver_id, body.amount))


@router.post("/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator)):
    """Webhook Stripe: valide Stripe-Signature puis synchronise le statut local.
    - Erreurs: 400 si signature/payload invalide
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = orchestrator.processor.construct_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("payments.webhook signature rejected: %s", e)
        raise ValidationError("Signature webhook invalide")
    return ok(handle_event(orchestrator, event))
