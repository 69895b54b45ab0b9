"""
Accès à la file payment_capture_queue (alimentée par le trigger de fin de trajet).
"""
from typing import Any, Dict, List, Optional
import logging

from ridepay.payments.errors import PersistenceFailure
from ridepay.payments.models import INTENTS_TABLE, utc_now_iso

logger = logging.getLogger(__name__)

QUEUE_TABLE = "payment_capture_queue"

# module ridepay.worker.repository
def fetch_pending(client, batch_size: int, max_attempts: int) -> List[Dict[str, Any]]:
    """Lignes 'pending' sous le plafond de tentatives, plus anciennes d'abord."""
    try:
        res = (
            client.table(QUEUE_TABLE)
            .select("*")
            .eq("status", "pending")
            .lt("attempts", max_attempts)
            .order("created_at", desc=False)
            .limit(batch_size)
            .execute()
        )
    except Exception as e:
        logger.exception("worker.repository.fetch_pending failed")
        raise PersistenceFailure(f"Lecture de la file de capture impossible: {e}") from e
    return res.data or []

def get_intent_status(client, payment_intent_row_id: str) -> Optional[str]:
    res = (
        client.table(INTENTS_TABLE)
        .select("status")
        .eq("id", payment_intent_row_id)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0].get("status") if rows else None

def update_queue_row(client, row_id: str, values: Dict[str, Any]) -> bool:
    try:
        payload = dict(values)
        payload["updated_at"] = utc_now_iso()
        client.table(QUEUE_TABLE).update(payload).eq("id", row_id).execute()
        return True
    except Exception:
        logger.exception("worker.repository.update_queue_row failed id=%s", row_id)
        return False
