"""
Événements Stripe (webhook): synchronise l'enregistrement local via l'orchestrateur.
- payment_intent.succeeded / payment_intent.canceled -> transition confirmée
- charge.refunded (remboursement total) -> refunded
Les autres types sont acquittés sans action.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from .models import CANCELED, REFUNDED, SUCCEEDED

logger = logging.getLogger(__name__)

_INTENT_EVENTS = {
    "payment_intent.succeeded": SUCCEEDED,
    "payment_intent.canceled": CANCELED,
}


def _target(event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    event_type = event.get("type") or ""
    obj = ((event.get("data") or {}).get("object")) or {}
    if event_type in _INTENT_EVENTS:
        return obj.get("id"), _INTENT_EVENTS[event_type]
    if event_type == "charge.refunded" and obj.get("refunded"):
        return obj.get("payment_intent"), REFUNDED
    return None, None


# module ridepay.payments.webhooks
def handle_event(orchestrator, event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = event.get("type") or ""
    pid, status = _target(event)
    if not pid or not status:
        return {"event": event_type, "handled": False}
    record = orchestrator.sync_from_processor(pid, status)
    logger.info("payments.webhook event=%s pi=%s status=%s", event_type, pid, record.status if record else None)
    return {
        "event": event_type,
        "handled": record is not None,
        "status": record.status if record else None,
    }
