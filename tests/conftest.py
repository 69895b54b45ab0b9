import json
import os

# Pas de Redis pendant les tests: le lifespan désactive le rate limiting
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient

from ridepay.config import PaymentSettings
from ridepay.payments.errors import PersistenceFailure, ProcessorRejected
from ridepay.payments.models import PaymentIntentRecord
from ridepay.payments.service import PaymentOrchestrator

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)


class FakeProcessor:
    """Stripe en mémoire: mêmes méthodes que StripeProcessor, retours en dict."""

    def __init__(self):
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.reject: set = set()
        self.by_key: Dict[str, str] = {}
        self._seq = 0

    def _check(self, op: str):
        if op in self.reject:
            raise ProcessorRejected(f"Stripe a refusé {op}: carte refusée", code="card_declined")

    def create_intent(self, *, amount, metadata, description, idempotency_key=None):
        self.calls.append(("create", amount, idempotency_key))
        self._check("create")
        if idempotency_key in self.by_key:
            # Stripe rejoue la réponse d'origine pour une clé déjà vue
            return dict(self.intents[self.by_key[idempotency_key]])
        self._seq += 1
        pid = f"pi_test_{self._seq}"
        if idempotency_key:
            self.by_key[idempotency_key] = pid
        self.intents[pid] = {
            "id": pid,
            "amount": amount,
            "status": "requires_capture",
            "client_secret": f"{pid}_secret_abc",
            "metadata": metadata,
        }
        return dict(self.intents[pid])

    def retrieve_intent(self, intent_id):
        self.calls.append(("retrieve", intent_id))
        self._check("retrieve")
        if intent_id not in self.intents:
            raise ProcessorRejected(f"No such payment_intent: {intent_id}")
        return dict(self.intents[intent_id])

    def capture_intent(self, intent_id):
        self.calls.append(("capture", intent_id))
        self._check("capture")
        self.intents[intent_id]["status"] = "succeeded"
        self.intents[intent_id]["latest_charge"] = f"ch_{intent_id}"
        return dict(self.intents[intent_id])

    def cancel_intent(self, intent_id):
        self.calls.append(("cancel", intent_id))
        self._check("cancel")
        if intent_id in self.intents:
            self.intents[intent_id]["status"] = "canceled"
        return dict(self.intents.get(intent_id, {"id": intent_id, "status": "canceled"}))

    def create_refund(self, intent_id, reason=None):
        self.calls.append(("refund", intent_id, reason))
        self._check("refund")
        return {"id": f"re_{intent_id}", "status": "succeeded", "payment_intent": intent_id}

    def create_transfer(self, *, amount, destination, description):
        self.calls.append(("transfer", amount, destination))
        self._check("transfer")
        return {"id": "tr_test_1", "amount": amount, "destination": destination}

    def construct_event(self, payload, sig_header):
        if sig_header != "valid-signature":
            raise ValueError("Invalid signature")
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)

    def ops(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeRepository:
    """stripe_payment_intents + tables d'audit en mémoire (mise à jour conditionnelle incluse)."""

    def __init__(self):
        self.rows: Dict[str, PaymentIntentRecord] = {}
        self.insert_failures = 0
        self.orphans: List[tuple] = []
        self.history: List[Dict[str, Any]] = []
        self.history_updates: List[tuple] = []
        self.capture_logs: List[Dict[str, Any]] = []
        self.earnings: List[Dict[str, Any]] = []
        self.earnings_updates: List[tuple] = []
        self.connect_accounts: Dict[str, str] = {}
        # Appelé juste avant la mise à jour conditionnelle (simule un écrivain concurrent)
        self.interleave = None
        self._seq = 0

    def add(self, **fields) -> PaymentIntentRecord:
        self._seq += 1
        base = {
            "id": f"row-{self._seq}",
            "processor_intent_id": f"pi_seed_{self._seq}",
            "ride_id": "ride-1",
            "rider_id": "rider-1",
            "driver_id": "driver-1",
            "amount_subtotal": 2500,
            "discount_amount": 0,
            "amount_total": 2500,
        }
        base.update(fields)
        record = PaymentIntentRecord(**base)
        self.rows[record.processor_intent_id] = record
        return record

    def insert_intent(self, record):
        if self.insert_failures > 0:
            self.insert_failures -= 1
            raise PersistenceFailure("connexion refusée", processor_intent_id=record.processor_intent_id)
        if record.processor_intent_id in self.rows:
            return self.rows[record.processor_intent_id], False
        self._seq += 1
        saved = record.model_copy(update={"id": f"row-{self._seq}"})
        self.rows[saved.processor_intent_id] = saved
        return saved, True

    def get_by_processor_id(self, processor_intent_id):
        return self.rows.get(processor_intent_id)

    def transition(self, processor_intent_id, expected_status, new_status, extra=None):
        if self.interleave is not None:
            hook, self.interleave = self.interleave, None
            hook(self, processor_intent_id)
        current = self.rows.get(processor_intent_id)
        if current is None or current.status != expected_status:
            return None
        update: Dict[str, Any] = {"status": new_status}
        for key, value in (extra or {}).items():
            field = "refund_id" if key == "stripe_refund_id" else key
            if field in PaymentIntentRecord.model_fields:
                update[field] = value
        self.rows[processor_intent_id] = current.model_copy(update=update)
        return self.rows[processor_intent_id]

    def force_status(self, processor_intent_id, status):
        self.rows[processor_intent_id] = self.rows[processor_intent_id].model_copy(update={"status": status})

    def record_orphan(self, processor_intent_id, details):
        self.orphans.append((processor_intent_id, details))
        return True

    def insert_history(self, payload):
        self.history.append(payload)
        return True

    def update_history_status(self, processor_intent_id, status):
        self.history_updates.append((processor_intent_id, status))
        return True

    def insert_capture_log(self, payload):
        self.capture_logs.append(payload)
        return True

    def insert_driver_earnings(self, payload):
        self.earnings.append(payload)
        return True

    def update_driver_earnings_status(self, payment_intent_row_id, status):
        self.earnings_updates.append((payment_intent_row_id, status))
        return True

    def get_driver_connect_account(self, driver_id):
        return self.connect_accounts.get(driver_id)


class FakeReferrals:
    def __init__(self, codes: Optional[Dict[str, int]] = None):
        self.codes = dict(codes or {})
        self.used: List[tuple] = []

    def resolve_discount(self, code, user_id):
        if not code or any(c == code for c, _ in self.used):
            return 0
        return self.codes.get(code, 0)

    def mark_used(self, code, user_id):
        self.used.append((code, user_id))
        return True


@pytest.fixture
def settings() -> PaymentSettings:
    return PaymentSettings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        currency="cad",
        platform_fee_percent=15,
        persist_retries=1,
        capture_delay_seconds=0,
    )

@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()

@pytest.fixture
def repo() -> FakeRepository:
    return FakeRepository()

@pytest.fixture
def referrals() -> FakeReferrals:
    return FakeReferrals({"WELCOME5": 500, "BIG": 10_000})

@pytest.fixture
def orchestrator(settings, processor, repo, referrals) -> PaymentOrchestrator:
    return PaymentOrchestrator(settings, processor, repo, referrals)

@pytest.fixture
def authorized(orchestrator):
    """Fabrique une intention au statut requires_capture via create()."""
    def _make(amount=2500, **kwargs):
        params = {"rider_id": "rider-1", "ride_id": "ride-1", "driver_id": "driver-1", "amount_subtotal": amount}
        params.update(kwargs)
        return orchestrator.create(**params)
    return _make


@pytest.fixture(scope="session")
def app():
    from ridepay.app import app as fastapi_app
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture
def api(app, client, orchestrator):
    """Client HTTP dont les orchestrateurs (utilisateur/service) sont remplacés par les fakes."""
    from ridepay.payments.dependencies import get_service_orchestrator, get_user_orchestrator

    app.dependency_overrides[get_user_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_service_orchestrator] = lambda: orchestrator
    try:
        yield client
    finally:
        app.dependency_overrides.clear()

@pytest.fixture
def fake_user(app):
    """Simule un passager authentifié sur les endpoints protégés."""
    from ridepay.utils.security import require_user

    user: Dict[str, Any] = {
        "id": "rider-1",
        "email": "rider@example.com",
        "metadata": {"full_name": "Test Rider"},
        "token": "fake-token",
    }
    app.dependency_overrides[require_user] = lambda: user
    try:
        yield user
    finally:
        app.dependency_overrides.pop(require_user, None)
