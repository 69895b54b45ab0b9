"""
Worker de capture: vide la file payment_capture_queue via l'orchestrateur.
- Statut local non capturable -> ligne 'failed' définitivement
- Déjà capturé -> ligne 'completed' (capture idempotente)
- Erreur -> 'pending' tant que attempts < max_attempts, sinon 'failed'
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ridepay.config import PaymentSettings
from ridepay.payments.models import REQUIRES_CAPTURE, SUCCEEDED, utc_now_iso
from . import repository as queue_repo

logger = logging.getLogger(__name__)

# 'authorized': statut historique des lignes créées avant le renommage en requires_capture
CAPTURABLE_STATUSES = {REQUIRES_CAPTURE, "authorized"}


# module ridepay.worker.service
class CaptureWorker:
    def __init__(self, settings: PaymentSettings, orchestrator, client, sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.orchestrator = orchestrator
        self.client = client
        self.sleep = sleep

    def run(self, batch_size: Optional[int] = None, max_attempts: Optional[int] = None) -> Dict[str, Any]:
        batch_size = batch_size or self.settings.capture_batch_size
        max_attempts = max_attempts or self.settings.capture_max_attempts
        logger.info("worker.capture start batch_size=%s max_attempts=%s", batch_size, max_attempts)

        rows = queue_repo.fetch_pending(self.client, batch_size, max_attempts)
        results: List[Dict[str, Any]] = []
        for index, row in enumerate(rows):
            if index and self.settings.capture_delay_seconds > 0:
                # Espace les appels Stripe (rate limiting)
                self.sleep(self.settings.capture_delay_seconds)
            results.append(self._process(row, max_attempts))

        succeeded = sum(1 for r in results if r["success"])
        logger.info("worker.capture done processed=%s succeeded=%s failed=%s", len(results), succeeded, len(results) - succeeded)
        return {
            "processed": len(results),
            "succeeded": succeeded,
            "failed": len(results) - succeeded,
            "results": results,
        }

    def _process(self, row: Dict[str, Any], max_attempts: int) -> Dict[str, Any]:
        row_id = row.get("id")
        attempts = int(row.get("attempts") or 0) + 1
        try:
            status = queue_repo.get_intent_status(self.client, row.get("payment_intent_id"))
            if status == SUCCEEDED:
                queue_repo.update_queue_row(self.client, row_id, {"status": "completed"})
                return {"success": True, "paymentId": row_id}
            if status not in CAPTURABLE_STATUSES:
                error = f"Statut de paiement invalide: {status}"
                logger.warning("worker.capture row=%s %s", row_id, error)
                queue_repo.update_queue_row(self.client, row_id, {"status": "failed", "error_message": error})
                return {"success": False, "paymentId": row_id, "error": error}

            queue_repo.update_queue_row(self.client, row_id, {
                "status": "processing",
                "attempts": attempts,
                "last_attempt_at": utc_now_iso(),
            })
            self.orchestrator.capture(row.get("stripe_payment_intent_id"))
            queue_repo.update_queue_row(self.client, row_id, {"status": "completed"})
            logger.info("worker.capture row=%s captured", row_id)
            return {"success": True, "paymentId": row_id}
        except Exception as e:
            logger.exception("worker.capture row=%s failed attempt=%s/%s", row_id, attempts, max_attempts)
            final_status = "pending" if attempts < max_attempts else "failed"
            queue_repo.update_queue_row(self.client, row_id, {
                "status": final_status,
                "attempts": attempts,
                "error_message": str(e),
            })
            return {"success": False, "paymentId": row_id, "error": str(e)}
