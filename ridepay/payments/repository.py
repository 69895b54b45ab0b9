"""
Accès aux données pour la feature 'payments' (Supabase/PostgREST).
- Table principale stripe_payment_intents: erreurs converties en PersistenceFailure.
- Tables d'audit (payment_history, payment_capture_log, driver_earnings,
  payment_reconciliation): best-effort, les erreurs sont journalisées puis ignorées.
"""
from typing import Any, Dict, List, Optional, Tuple
import logging

from postgrest.exceptions import APIError
from pydantic import ValidationError as PydanticValidationError

from .errors import PersistenceFailure
from .models import INTENTS_TABLE, PaymentIntentRecord, stored_statuses, utc_now_iso

logger = logging.getLogger(__name__)

HISTORY_TABLE = "payment_history"
CAPTURE_LOG_TABLE = "payment_capture_log"
EARNINGS_TABLE = "driver_earnings"
RECONCILIATION_TABLE = "payment_reconciliation"
PROFILES_TABLE = "profiles"


def _first(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


def _error_code(e: Exception) -> Optional[str]:
    code = getattr(e, "code", None)
    if code:
        return code
    if e.args and isinstance(e.args[0], dict):
        return e.args[0].get("code")
    return None



def _to_record(row: Dict[str, Any]) -> PaymentIntentRecord:
    # Ligne incohérente en base (montant nul, colonne manquante...)
    try:
        return PaymentIntentRecord.from_row(row)
    except (KeyError, TypeError, ValueError, PydanticValidationError) as e:
        pid = row.get("stripe_payment_intent_id")
        logger.error("payments.repository invalid row pi=%s: %s", pid, e)
        raise PersistenceFailure(f"Enregistrement de paiement illisible (intent {pid})", processor_intent_id=pid) from e

# module ridepay.payments.repository
class PaymentRepository:
    def __init__(self, client, audit_client=None):
        """
        client: client Supabase utilisé pour stripe_payment_intents
                (utilisateur/RLS sur la création, service-role ailleurs).
        audit_client: client pour les écritures de réconciliation (service-role), défaut = client.
        """
        self.client = client
        self.audit_client = audit_client or client

    # --- stripe_payment_intents ---

    def insert_intent(self, record: PaymentIntentRecord) -> Tuple[PaymentIntentRecord, bool]:
        """Retour: (enregistrement, créé). créé vaut False si la ligne existait déjà (rejeu)."""
        try:
            res = self.client.table(INTENTS_TABLE).insert(record.to_row()).execute()
        except APIError as e:
            if _error_code(e) == "23505":
                # Déjà enregistré (processor_intent_id unique): on relit la ligne existante
                existing = self.get_by_processor_id(record.processor_intent_id)
                if existing:
                    return existing, False
            raise PersistenceFailure(
                f"Enregistrement du paiement impossible: {e}",
                processor_intent_id=record.processor_intent_id,
            ) from e
        except Exception as e:
            raise PersistenceFailure(
                f"Enregistrement du paiement impossible: {e}",
                processor_intent_id=record.processor_intent_id,
            ) from e
        row = _first(res.data)
        if not row:
            raise PersistenceFailure(
                "Enregistrement du paiement impossible: aucune ligne retournée",
                processor_intent_id=record.processor_intent_id,
            )
        return _to_record(row), True

    def get_by_processor_id(self, processor_intent_id: str) -> Optional[PaymentIntentRecord]:
        try:
            res = (
                self.client.table(INTENTS_TABLE)
                .select("*")
                .eq("stripe_payment_intent_id", processor_intent_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("payments.repository.get_by_processor_id failed pi=%s", processor_intent_id)
            raise PersistenceFailure(f"Lecture du paiement impossible: {e}") from e
        row = _first(res.data)
        return _to_record(row) if row else None

    def transition(
        self,
        processor_intent_id: str,
        expected_status: str,
        new_status: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentIntentRecord]:
        """
        Mise à jour conditionnelle (verrou optimiste): ne modifie la ligne que si
        son statut vaut encore expected_status. Retourne None si aucune ligne ne correspond.
        """
        values: Dict[str, Any] = {"status": new_status, "updated_at": utc_now_iso()}
        values.update(extra or {})
        try:
            res = (
                self.client.table(INTENTS_TABLE)
                .update(values)
                .eq("stripe_payment_intent_id", processor_intent_id)
                .in_("status", stored_statuses(expected_status))
                .execute()
            )
        except Exception as e:
            logger.exception(
                "payments.repository.transition failed pi=%s %s->%s",
                processor_intent_id, expected_status, new_status,
            )
            raise PersistenceFailure(f"Mise à jour du paiement impossible: {e}") from e
        row = _first(res.data)
        return _to_record(row) if row else None

    # --- Réconciliation (intentions Stripe orphelines) ---

    def record_orphan(self, processor_intent_id: str, details: Dict[str, Any]) -> bool:
        try:
            (
                self.audit_client.table(RECONCILIATION_TABLE)
                .insert({
                    "stripe_payment_intent_id": processor_intent_id,
                    "details": details,
                    "status": "open",
                    "created_at": utc_now_iso(),
                })
                .execute()
            )
            return True
        except Exception:
            logger.exception("payments.repository.record_orphan failed pi=%s", processor_intent_id)
            return False

    # --- Historique et journaux (best-effort) ---

    def insert_history(self, payload: Dict[str, Any]) -> bool:
        try:
            self.client.table(HISTORY_TABLE).insert(payload).execute()
            return True
        except Exception:
            logger.exception("payments.repository.insert_history failed pi=%s", payload.get("stripe_payment_intent_id"))
            return False

    def update_history_status(self, processor_intent_id: str, status: str) -> bool:
        try:
            (
                self.client.table(HISTORY_TABLE)
                .update({"status": status, "updated_at": utc_now_iso()})
                .eq("stripe_payment_intent_id", processor_intent_id)
                .execute()
            )
            return True
        except Exception:
            logger.exception("payments.repository.update_history_status failed pi=%s", processor_intent_id)
            return False

    def insert_capture_log(self, payload: Dict[str, Any]) -> bool:
        try:
            self.client.table(CAPTURE_LOG_TABLE).insert(payload).execute()
            return True
        except Exception:
            logger.exception("payments.repository.insert_capture_log failed pi=%s", payload.get("stripe_payment_intent_id"))
            return False

    def insert_driver_earnings(self, payload: Dict[str, Any]) -> bool:
        try:
            self.client.table(EARNINGS_TABLE).insert(payload).execute()
            return True
        except Exception:
            logger.exception("payments.repository.insert_driver_earnings failed driver=%s", payload.get("driver_id"))
            return False

    def update_driver_earnings_status(self, payment_intent_row_id: Optional[str], status: str) -> bool:
        if not payment_intent_row_id:
            return False
        try:
            (
                self.client.table(EARNINGS_TABLE)
                .update({"status": status, "updated_at": utc_now_iso()})
                .eq("payment_intent_id", payment_intent_row_id)
                .execute()
            )
            return True
        except Exception:
            logger.exception("payments.repository.update_driver_earnings_status failed id=%s", payment_intent_row_id)
            return False

    # --- Profils conducteurs ---

    def get_driver_connect_account(self, driver_id: str) -> Optional[str]:
        try:
            res = (
                self.client.table(PROFILES_TABLE)
                .select("stripe_connect_account_id")
                .eq("id", driver_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("payments.repository.get_driver_connect_account failed driver=%s", driver_id)
            raise PersistenceFailure(f"Lecture du profil conducteur impossible: {e}") from e
        row = _first(res.data) or {}
        return row.get("stripe_connect_account_id") or None


class ReferralRepository:
    """Résolution des codes de parrainage (table referral_rewards)."""

    TABLE = "referral_rewards"

    def __init__(self, client):
        self.client = client

    def resolve_discount(self, code: Optional[str], user_id: str) -> int:
        """
        Retourne le montant de remise (centimes) d'un code valide et non utilisé, sinon 0.
        """
        if not code:
            return 0
        try:
            res = (
                self.client.table(self.TABLE)
                .select("discount_amount, is_used")
                .eq("code", code)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception:
            logger.exception("payments.referrals.resolve_discount failed code=%s", code)
            return 0
        row = _first(res.data)
        if not row or row.get("is_used"):
            logger.info("payments.referrals code=%s invalide ou déjà utilisé", code)
            return 0
        try:
            return max(int(row.get("discount_amount") or 0), 0)
        except (TypeError, ValueError):
            return 0

    def mark_used(self, code: str, user_id: str) -> bool:
        try:
            (
                self.client.table(self.TABLE)
                .update({"is_used": True, "used_at": utc_now_iso()})
                .eq("code", code)
                .eq("user_id", user_id)
                .execute()
            )
            return True
        except Exception:
            logger.exception("payments.referrals.mark_used failed code=%s", code)
            return False
