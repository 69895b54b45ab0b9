"""
Point d'entrée « serverless » (style Edge Function): un corps {action, ...} dispatché
vers le même orchestrateur que l'API HTTP.
- create: exige le jeton Bearer du passager (client Supabase utilisateur, RLS);
  clé d'idempotence Stripe via l'en-tête Idempotency-Key ou le champ idempotencyKey
- capture, cancel, refund, create_payout, verify_webhook: confiance service
Retour: (code HTTP, enveloppe uniforme).
"""
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import stripe
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ridepay.config import PaymentSettings, load_settings
import ridepay.infra.supabase_client as supabase_client
from ridepay.payments.dependencies import _service_client_or_none, build_orchestrator
from ridepay.payments.errors import PaymentError, ValidationError
from ridepay.payments.models import CreatePaymentRequest, PaymentIntentRequest, RefundRequest
from ridepay.payments.webhooks import handle_event
from ridepay.utils.security import resolve_user

logger = logging.getLogger(__name__)

ACTIONS = ("create", "capture", "cancel", "refund", "create_payout", "verify_webhook")

OrchestratorFactory = Callable[[Optional[str]], Any]


def default_factory(settings: PaymentSettings) -> OrchestratorFactory:
    """token fourni -> client utilisateur (RLS); None -> client service-role."""
    def _factory(user_token: Optional[str]):
        if user_token:
            return build_orchestrator(
                settings,
                supabase_client.get_user_supabase(user_token),
                audit_client=_service_client_or_none(),
            )
        return build_orchestrator(settings, supabase_client.get_service_supabase())
    return _factory


def _parse(model, body: Dict[str, Any]):
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        first = (e.errors() or [{}])[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Champ invalide {field}: {first.get('msg', 'valeur invalide')}")


def _token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


# module ridepay.functions.stripe_payment
def handle(
    body: Dict[str, Any],
    authorization: Optional[str] = None,
    orchestrator_factory: Optional[OrchestratorFactory] = None,
    idempotency_key: Optional[str] = None,
) -> Tuple[int, Dict[str, Any]]:
    factory = orchestrator_factory or default_factory(load_settings())
    action = (body or {}).get("action")
    if action not in ACTIONS:
        return 400, {"success": False, "error": "Action invalide"}

    try:
        if action == "create":
            token = _token(authorization)
            user = resolve_user(token)
            req = _parse(CreatePaymentRequest, body)
            record = factory(token).create(
                rider_id=user.get("id"),
                ride_id=req.ride_id,
                driver_id=req.driver_id,
                amount_subtotal=req.amount_subtotal,
                booking_id=req.booking_id,
                referral_code=req.referral_code,
                idempotency_key=idempotency_key or body.get("idempotencyKey"),
            )
            return 200, {"success": True, "data": record.public()}

        orchestrator = factory(None)
        if action == "capture":
            req = _parse(PaymentIntentRequest, body)
            return 200, {"success": True, "data": orchestrator.capture(req.payment_intent_id).public()}
        if action == "cancel":
            req = _parse(PaymentIntentRequest, body)
            return 200, {"success": True, "data": orchestrator.cancel(req.payment_intent_id).public()}
        if action == "refund":
            req = _parse(RefundRequest, body)
            return 200, {"success": True, "data": orchestrator.refund(req.payment_intent_id, req.reason).public()}
        if action == "create_payout":
            driver_id = body.get("driverId_payout") or body.get("driverId")
            return 200, {"success": True, "data": orchestrator.payout(driver_id, body.get("amount"))}

        # verify_webhook
        payload, signature = body.get("payload"), body.get("signature")
        if not payload or not signature:
            raise ValidationError("payload et signature requis")
        try:
            event = orchestrator.processor.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError):
            raise ValidationError("Vérification du webhook échouée")
        return 200, {"success": True, "data": handle_event(orchestrator, event)}
    except PaymentError as e:
        if e.status_code >= 500:
            logger.error("functions.stripe_payment action=%s -> %s: %s", action, e.status_code, e.message)
        return e.status_code, {"success": False, "error": e.message}
    except Exception as e:
        logger.exception("functions.stripe_payment action=%s failed", action)
        return 500, {"success": False, "error": str(e) or "Erreur interne"}


router = APIRouter(prefix="/functions/v1", tags=["Functions"])


@router.post("/stripe-payment")
async def stripe_payment_function(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"success": False, "error": "Corps JSON invalide"})
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"success": False, "error": "Corps JSON invalide"})
    status, envelope = handle(
        body,
        request.headers.get("Authorization"),
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return JSONResponse(status_code=status, content=envelope)
