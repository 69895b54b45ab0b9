"""
Construction des collaborateurs par requête (FastAPI Depends).
- Création: client Supabase utilisateur (RLS) + client service pour la réconciliation
- Capture/annulation/remboursement/payout/webhook: client service-role
Les tests remplacent get_user_orchestrator / get_service_orchestrator via dependency_overrides.
"""
import logging
from typing import Any, Dict

from fastapi import Depends

from ridepay.config import PaymentSettings, load_settings
import ridepay.infra.supabase_client as supabase_client
from ridepay.utils.security import require_user
from .repository import PaymentRepository, ReferralRepository
from .service import PaymentOrchestrator
from .stripe_client import StripeProcessor

logger = logging.getLogger(__name__)


def get_settings() -> PaymentSettings:
    return load_settings()


def _service_client_or_none():
    try:
        return supabase_client.get_service_supabase()
    except RuntimeError:
        logger.warning("payments.dependencies service client indisponible, réconciliation via client utilisateur")
        return None


def build_orchestrator(settings: PaymentSettings, client, audit_client=None) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        settings=settings,
        processor=StripeProcessor(settings),
        repository=PaymentRepository(client, audit_client=audit_client),
        referrals=ReferralRepository(client),
    )


def get_user_orchestrator(
    user: Dict[str, Any] = Depends(require_user),
    settings: PaymentSettings = Depends(get_settings),
) -> PaymentOrchestrator:
    client = supabase_client.get_user_supabase(user["token"])
    return build_orchestrator(settings, client, audit_client=_service_client_or_none())


def get_service_orchestrator(settings: PaymentSettings = Depends(get_settings)) -> PaymentOrchestrator:
    return build_orchestrator(settings, supabase_client.get_service_supabase())
