"""
Modèles du cycle de paiement: enregistrement d'intention (table stripe_payment_intents),
machine à états et corps de requêtes API.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# module ridepay.payments.models
INTENTS_TABLE = "stripe_payment_intents"

REQUIRES_CAPTURE = "requires_capture"
SUCCEEDED = "succeeded"
CANCELED = "canceled"
REFUNDED = "refunded"

CAPTURE_METHOD = "manual"

# Transitions autorisées: (état courant, opération) -> état cible
TRANSITIONS: Dict[tuple, str] = {
    (REQUIRES_CAPTURE, "capture"): SUCCEEDED,
    (REQUIRES_CAPTURE, "cancel"): CANCELED,
    (SUCCEEDED, "refund"): REFUNDED,
}

# Anciennes valeurs stockées -> statut courant (lignes créées avant le renommage)
LEGACY_STATUSES = {"authorized": REQUIRES_CAPTURE}

# Statuts Stripe pour lesquels l'autorisation n'est pas encore complète côté client
PENDING_PROCESSOR_STATUSES = {
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
}

# Colonne horodatée renseignée à l'arrivée dans chaque état
TIMESTAMP_COLUMNS = {
    SUCCEEDED: "captured_at",
    CANCELED: "canceled_at",
    REFUNDED: "refunded_at",
}


def next_status(current: str, operation: str) -> Optional[str]:
    """Retourne l'état cible ou None si l'opération est interdite depuis `current`."""
    return TRANSITIONS.get((current, operation))


def normalize_status(status: Optional[str]) -> str:
    if not status:
        return REQUIRES_CAPTURE
    return LEGACY_STATUSES.get(status, status)


def stored_statuses(status: str) -> List[str]:
    """Valeurs de la colonne status correspondant à `status` (anciennes valeurs incluses)."""
    return [status] + sorted(k for k, v in LEGACY_STATUSES.items() if v == status)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentIntentRecord(CamelModel):
    """
    Ligne de stripe_payment_intents.
    - processor_intent_id: identifiant Stripe (pi_...), unique et immuable
    - montants en centimes: amount_total = amount_subtotal - discount_amount
    - client_secret: écrit une seule fois à la création
    """
    id: Optional[str] = None
    processor_intent_id: str
    ride_id: str
    booking_id: Optional[str] = None
    rider_id: str
    driver_id: str
    amount_subtotal: int = Field(gt=0)
    discount_amount: int = Field(default=0, ge=0)
    amount_total: int = Field(ge=0)
    currency: str = "cad"
    capture_method: str = CAPTURE_METHOD
    status: str = REQUIRES_CAPTURE
    client_secret: Optional[str] = None
    referral_code: Optional[str] = None
    refund_id: Optional[str] = None
    created_at: Optional[str] = None
    captured_at: Optional[str] = None
    canceled_at: Optional[str] = None
    refunded_at: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _current_status(cls, value):
        return normalize_status(value)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PaymentIntentRecord":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            processor_intent_id=row["stripe_payment_intent_id"],
            ride_id=str(row.get("ride_id") or ""),
            booking_id=row.get("booking_id"),
            rider_id=str(row.get("rider_id") or ""),
            driver_id=str(row.get("driver_id") or ""),
            amount_subtotal=int(row.get("amount_subtotal") or 0),
            discount_amount=int(row.get("discount_amount") or 0),
            amount_total=int(row.get("amount_total") or 0),
            currency=row.get("currency") or "cad",
            capture_method=row.get("capture_method") or CAPTURE_METHOD,
            status=normalize_status(row.get("status")),
            client_secret=row.get("stripe_client_secret"),
            referral_code=row.get("referral_code"),
            refund_id=row.get("stripe_refund_id"),
            created_at=row.get("created_at"),
            captured_at=row.get("captured_at"),
            canceled_at=row.get("canceled_at"),
            refunded_at=row.get("refunded_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        """Colonnes à insérer (sans id, généré par Postgres)."""
        return {
            "stripe_payment_intent_id": self.processor_intent_id,
            "ride_id": self.ride_id,
            "booking_id": self.booking_id,
            "rider_id": self.rider_id,
            "driver_id": self.driver_id,
            "amount_subtotal": self.amount_subtotal,
            "discount_amount": self.discount_amount,
            "amount_total": self.amount_total,
            "currency": self.currency,
            "capture_method": self.capture_method,
            "status": self.status,
            "stripe_client_secret": self.client_secret,
            "referral_code": self.referral_code,
            "created_at": self.created_at,
        }

    def public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# --- Corps de requêtes API ---

class CreatePaymentRequest(CamelModel):
    ride_id: str = Field(min_length=1)
    booking_id: Optional[str] = None
    driver_id: str = Field(min_length=1)
    amount_subtotal: int
    referral_code: Optional[str] = None


class PaymentIntentRequest(CamelModel):
    payment_intent_id: str = Field(min_length=1)


class RefundRequest(PaymentIntentRequest):
    reason: Optional[str] = None


class PayoutRequest(CamelModel):
    driver_id: str = Field(min_length=1)
    amount: int
