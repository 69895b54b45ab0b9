"""
Module 'payments' (feature-first): point d'entrée public.
Réunit modèles, erreurs, adaptateur Stripe, repository Supabase et orchestrateur.
"""

from .errors import (
    PaymentError,
    ValidationError,
    Unauthorized,
    NotFound,
    InvalidState,
    ProcessorRejected,
    PersistenceFailure,
)
from .models import (
    PaymentIntentRecord,
    REQUIRES_CAPTURE,
    SUCCEEDED,
    CANCELED,
    REFUNDED,
    next_status,
)
from .stripe_client import StripeProcessor
from .repository import PaymentRepository, ReferralRepository
from .service import PaymentOrchestrator
from .webhooks import handle_event

__all__ = [
    # errors
    "PaymentError",
    "ValidationError",
    "Unauthorized",
    "NotFound",
    "InvalidState",
    "ProcessorRejected",
    "PersistenceFailure",
    # models
    "PaymentIntentRecord",
    "REQUIRES_CAPTURE",
    "SUCCEEDED",
    "CANCELED",
    "REFUNDED",
    "next_status",
    # stripe
    "StripeProcessor",
    # repository
    "PaymentRepository",
    "ReferralRepository",
    # services
    "PaymentOrchestrator",
    "handle_event",
]
