"""
Cas d'usage 'payments': orchestre le cycle de vie d'une intention de paiement.

    requires_capture --capture--> succeeded --refund--> refunded
    requires_capture --cancel---> canceled

- Seule autorité sur les transitions: chaque transition locale est une mise à jour
  conditionnelle (statut attendu) précédée d'une relecture du statut Stripe.
- Capture et annulation sont idempotentes; un remboursement exige un paiement capturé.
- Création: si l'enregistrement échoue après l'appel Stripe, l'intention orpheline est
  annulée (best-effort), tracée en réconciliation et journalisée avec son identifiant.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from ridepay.config import PaymentSettings
from .errors import (
    InvalidState,
    NotFound,
    PersistenceFailure,
    ProcessorRejected,
    Unauthorized,
    ValidationError,
)
from .models import (
    CANCELED,
    REFUNDED,
    REQUIRES_CAPTURE,
    SUCCEEDED,
    TIMESTAMP_COLUMNS,
    PaymentIntentRecord,
    next_status,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# Statut Stripe -> opération locale qui y mène depuis requires_capture
_SYNC_OPERATIONS = {SUCCEEDED: "capture", CANCELED: "cancel"}


# module ridepay.payments.service
class PaymentOrchestrator:
    def __init__(self, settings: PaymentSettings, processor, repository, referrals=None):
        self.settings = settings
        self.processor = processor
        self.repository = repository
        self.referrals = referrals

    # --- create ---

    def create(
        self,
        *,
        rider_id: Optional[str],
        ride_id: Optional[str],
        driver_id: Optional[str],
        amount_subtotal: Any,
        booking_id: Optional[str] = None,
        referral_code: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntentRecord:
        """
        Autorise le montant chez Stripe (capture manuelle) puis enregistre l'intention.
        - Valide les entrées avant tout appel Stripe
        - Applique la remise de parrainage si le code est valide
        - Retourne l'enregistrement (client_secret inclus) au statut requires_capture
        """
        if not rider_id:
            raise Unauthorized("Identité du passager requise")
        if not ride_id or not driver_id or amount_subtotal is None:
            raise ValidationError("Champs requis manquants: rideId, driverId, amountSubtotal")
        if isinstance(amount_subtotal, bool) or not isinstance(amount_subtotal, int) or amount_subtotal <= 0:
            raise ValidationError("amountSubtotal doit être un entier strictement positif (centimes)")

        discount = 0
        if referral_code and self.referrals is not None:
            discount = self.referrals.resolve_discount(referral_code, rider_id)
        applied_code = referral_code if discount > 0 else None
        if discount > amount_subtotal:
            raise ValidationError("La remise dépasse le sous-total")
        amount_total = amount_subtotal - discount

        intent = self.processor.create_intent(
            amount=amount_total,
            metadata={
                "ride_id": ride_id,
                "booking_id": booking_id or "pending",
                "rider_id": rider_id,
                "driver_id": driver_id,
                "referral_code": applied_code or "",
            },
            description=f"Ride booking {booking_id or 'pending'}",
            idempotency_key=idempotency_key,
        )

        record = PaymentIntentRecord(
            processor_intent_id=intent["id"],
            ride_id=ride_id,
            booking_id=booking_id,
            rider_id=rider_id,
            driver_id=driver_id,
            amount_subtotal=amount_subtotal,
            discount_amount=discount,
            amount_total=amount_total,
            currency=self.settings.currency,
            status=REQUIRES_CAPTURE,
            client_secret=intent.get("client_secret"),
            referral_code=applied_code,
            created_at=utc_now_iso(),
        )
        saved, created = self._persist_new(record)
        if not created:
            # Rejeu (même Idempotency-Key): Stripe a renvoyé l'intention déjà enregistrée
            logger.info("payments.service.create replay pi=%s ride=%s", saved.processor_intent_id, ride_id)
            return saved

        if applied_code:
            self.referrals.mark_used(applied_code, rider_id)
        self.repository.insert_history({
            "user_id": rider_id,
            "ride_id": ride_id,
            "booking_id": booking_id,
            "stripe_payment_intent_id": saved.processor_intent_id,
            "amount": amount_total,
            "status": "authorized",
            "transaction_type": "ride_payment",
            "description": f"Payment authorized for ride {ride_id}",
            "date": utc_now_iso(),
            "created_at": utc_now_iso(),
        })
        logger.info(
            "payments.service.create pi=%s ride=%s total=%s discount=%s",
            saved.processor_intent_id, ride_id, amount_total, discount,
        )
        return saved

    def _persist_new(self, record: PaymentIntentRecord) -> Tuple[PaymentIntentRecord, bool]:
        attempts = 1 + max(self.settings.persist_retries, 0)
        last_error: Optional[PersistenceFailure] = None
        for attempt in range(1, attempts + 1):
            try:
                return self.repository.insert_intent(record)
            except PersistenceFailure as e:
                last_error = e
                logger.warning(
                    "payments.service.create insert failed pi=%s attempt=%s/%s: %s",
                    record.processor_intent_id, attempt, attempts, e,
                )

        pid = record.processor_intent_id
        released = False
        try:
            self.processor.cancel_intent(pid)
            released = True
        except ProcessorRejected:
            logger.exception("payments.service.create orphan cancel failed pi=%s", pid)

        details = {k: v for k, v in record.to_row().items() if k != "stripe_client_secret"}
        details["error"] = str(last_error)
        details["hold_released"] = released
        self.repository.record_orphan(pid, details)
        logger.error(
            "payments.service.create orphaned processor intent pi=%s ride=%s amount=%s released=%s",
            pid, record.ride_id, record.amount_total, released,
        )
        raise PersistenceFailure(
            f"Paiement autorisé chez Stripe mais non enregistré (intent {pid}): {last_error}",
            processor_intent_id=pid,
        )

    # --- capture / cancel / refund ---

    def capture(self, processor_intent_id: str) -> PaymentIntentRecord:
        record = self._load(processor_intent_id)
        if record.status in (SUCCEEDED, CANCELED):
            return record
        self._require(record, "capture")

        remote = self.processor.retrieve_intent(processor_intent_id)
        remote_status = remote.get("status")
        synced = self._sync(record, remote_status, remote)
        if synced is not None:
            return synced
        if remote_status != REQUIRES_CAPTURE:
            raise InvalidState(f"Capture impossible: statut Stripe {remote_status}")

        captured = self.processor.capture_intent(processor_intent_id)
        updated, won = self._commit(record, "capture")
        if won:
            self._after_transition(updated, "capture", captured)
        return updated

    def cancel(self, processor_intent_id: str) -> PaymentIntentRecord:
        record = self._load(processor_intent_id)
        if record.status == CANCELED:
            return record
        self._require(record, "cancel")

        remote = self.processor.retrieve_intent(processor_intent_id)
        synced = self._sync(record, remote.get("status"), remote)
        if synced is not None:
            if synced.status == CANCELED:
                return synced
            raise InvalidState("Annulation impossible: paiement déjà capturé chez Stripe")

        canceled = self.processor.cancel_intent(processor_intent_id)
        updated, won = self._commit(record, "cancel")
        if won:
            self._after_transition(updated, "cancel", canceled)
        return updated

    def refund(self, processor_intent_id: str, reason: Optional[str] = None) -> PaymentIntentRecord:
        """
        Rembourse un paiement capturé. reason est transmis tel quel à Stripe (audit).
        """
        record = self._load(processor_intent_id)
        self._require(record, "refund")

        remote = self.processor.retrieve_intent(processor_intent_id)
        remote_status = remote.get("status")
        if remote_status != SUCCEEDED:
            raise InvalidState(f"Remboursement impossible: statut Stripe {remote_status}")

        refund = self.processor.create_refund(processor_intent_id, reason)
        updated, won = self._commit(record, "refund", {"stripe_refund_id": refund.get("id")})
        if won:
            self._after_transition(updated, "refund", refund)
        return updated

    def sync_from_processor(self, processor_intent_id: str, processor_status: str) -> Optional[PaymentIntentRecord]:
        """
        Applique un statut confirmé par Stripe (webhook) via les mêmes transitions gardées.
        Retourne None si aucune intention locale ne correspond.
        """
        record = self.repository.get_by_processor_id(processor_intent_id)
        if record is None:
            logger.info("payments.service.sync unknown pi=%s status=%s", processor_intent_id, processor_status)
            return None
        if processor_status == REFUNDED and record.status == SUCCEEDED:
            updated, won = self._commit(record, "refund")
            if won:
                self._after_transition(updated, "refund", {})
            return updated
        synced = self._sync(record, processor_status, {})
        return synced if synced is not None else record

    # --- payout ---

    def payout(self, driver_id: str, amount: Any) -> Dict[str, Any]:
        """Virement hebdomadaire vers le compte Stripe Connect du conducteur."""
        if not driver_id:
            raise ValidationError("driverId requis")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount doit être un entier strictement positif (centimes)")
        account = self.repository.get_driver_connect_account(driver_id)
        if not account:
            raise ValidationError("Compte Stripe du conducteur non configuré")
        transfer = self.processor.create_transfer(
            amount=amount,
            destination=account,
            description=f"Weekly payout to driver {driver_id}",
        )
        logger.info("payments.service.payout driver=%s amount=%s transfer=%s", driver_id, amount, transfer.get("id"))
        return {"payoutId": transfer.get("id"), "amount": amount}

    # --- helpers ---

    def _load(self, processor_intent_id: str) -> PaymentIntentRecord:
        if not processor_intent_id:
            raise ValidationError("Payment intent ID requis")
        record = self.repository.get_by_processor_id(processor_intent_id)
        if record is None:
            raise NotFound(f"Paiement introuvable: {processor_intent_id}")
        return record

    @staticmethod
    def _require(record: PaymentIntentRecord, operation: str) -> str:
        target = next_status(record.status, operation)
        if target is None:
            raise InvalidState(f"Opération {operation} impossible depuis le statut {record.status}")
        return target

    def _sync(self, record: PaymentIntentRecord, remote_status: Optional[str], remote: Dict[str, Any]) -> Optional[PaymentIntentRecord]:
        # Stripe a déjà confirmé une issue que l'enregistrement local ignore encore
        operation = _SYNC_OPERATIONS.get(remote_status or "")
        if record.status != REQUIRES_CAPTURE or operation is None:
            return None
        logger.info("payments.service.sync pi=%s %s->%s", record.processor_intent_id, record.status, remote_status)
        updated, won = self._commit(record, operation)
        if won:
            self._after_transition(updated, operation, remote)
        return updated

    def _commit(
        self,
        record: PaymentIntentRecord,
        operation: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Tuple[PaymentIntentRecord, bool]:
        target = self._require(record, operation)
        values: Dict[str, Any] = {TIMESTAMP_COLUMNS[target]: utc_now_iso()}
        values.update(extra or {})
        updated = self.repository.transition(record.processor_intent_id, record.status, target, values)
        if updated is not None:
            logger.info("payments.service.%s pi=%s %s->%s", operation, record.processor_intent_id, record.status, target)
            return updated, True

        # Une requête concurrente a modifié la ligne entre la lecture et l'écriture
        current = self._load(record.processor_intent_id)
        if current.status == target:
            return current, False
        raise InvalidState(f"Opération {operation} impossible: statut courant {current.status}")

    def _after_transition(self, record: PaymentIntentRecord, operation: str, processor_obj: Dict[str, Any]) -> None:
        pid = record.processor_intent_id
        if operation == "capture":
            self.repository.update_history_status(pid, SUCCEEDED)
            self.repository.insert_capture_log({
                "payment_intent_id": record.id,
                "stripe_payment_intent_id": pid,
                "amount_captured": record.amount_total,
                "stripe_charge_id": processor_obj.get("latest_charge"),
                "captured_at": utc_now_iso(),
                "status": "success",
            })
            platform_fee = record.amount_total * self.settings.platform_fee_percent // 100
            self.repository.insert_driver_earnings({
                "driver_id": record.driver_id,
                "ride_id": record.ride_id,
                "booking_id": record.booking_id,
                "payment_intent_id": record.id,
                "gross_amount": record.amount_total,
                "platform_fee": platform_fee,
                "net_amount": record.amount_total - platform_fee,
                "status": "pending",
                "created_at": utc_now_iso(),
            })
        elif operation == "cancel":
            self.repository.update_history_status(pid, CANCELED)
        elif operation == "refund":
            self.repository.update_history_status(pid, REFUNDED)
            self.repository.update_driver_earnings_status(record.id, REFUNDED)
