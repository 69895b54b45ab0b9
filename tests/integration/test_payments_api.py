import json

def _create(api, **overrides):
    body = {"rideId": "ride-1", "bookingId": "booking-1", "driverId": "driver-1", "amountSubtotal": 2500}
    body.update(overrides)
    return api.post("/api/payment/create", json=body, headers={"Idempotency-Key": "idem-42"})

def test_create_requires_authentication(api, processor):
    r = _create(api)
    assert r.status_code == 401
    assert r.json()["success"] is False
    assert "error" in r.json()
    assert processor.calls == []

def test_create_returns_client_secret(api, fake_user, processor):
    r = _create(api, referralCode="WELCOME5")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "requires_capture"
    assert data["riderId"] == "rider-1"
    assert data["amountSubtotal"] == 2500
    assert data["discountAmount"] == 500
    assert data["amountTotal"] == 2000
    assert data["clientSecret"].startswith(data["processorIntentId"])
    assert processor.ops("create") == [("create", 2000, "idem-42")]

def test_create_rejects_non_positive_amount(api, fake_user, processor):
    r = _create(api, amountSubtotal=0)
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "amountSubtotal doit être un entier strictement positif (centimes)"}
    assert processor.calls == []

def test_create_rejects_missing_fields(api, fake_user, processor):
    r = api.post("/api/payment/create", json={"driverId": "driver-1", "amountSubtotal": 2500})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert "rideId" in r.json()["error"]
    assert processor.calls == []

def test_capture_cancel_refund_flow(api, fake_user):
    pid = _create(api).json()["data"]["processorIntentId"]

    r = api.post("/api/payment/capture", json={"paymentIntentId": pid})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "succeeded"

    # Capture répétée: même résultat
    r = api.post("/api/payment/capture", json={"paymentIntentId": pid})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "succeeded"

    r = api.post("/api/payment/cancel", json={"paymentIntentId": pid})
    assert r.status_code == 409
    assert r.json()["success"] is False

    r = api.post("/api/payment/refund", json={"paymentIntentId": pid, "reason": "requested_by_customer"})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "refunded"
    assert r.json()["data"]["refundId"] == f"re_{pid}"

def test_cancel_then_refund_is_conflict(api, fake_user):
    pid = _create(api).json()["data"]["processorIntentId"]
    assert api.post("/api/payment/cancel", json={"paymentIntentId": pid}).json()["data"]["status"] == "canceled"
    r = api.post("/api/payment/refund", json={"paymentIntentId": pid})
    assert r.status_code == 409

def test_unknown_intent_is_not_found(api):
    r = api.post("/api/payment/capture", json={"paymentIntentId": "pi_missing"})
    assert r.status_code == 404
    assert r.json()["success"] is False

def test_processor_rejection_is_bad_gateway(api, fake_user, processor):
    pid = _create(api).json()["data"]["processorIntentId"]
    processor.reject.add("capture")
    r = api.post("/api/payment/capture", json={"paymentIntentId": pid})
    assert r.status_code == 502
    assert "refusé" in r.json()["error"]

def test_payout(api, repo):
    repo.connect_accounts["driver-1"] = "acct_1"
    r = api.post("/api/payment/payout", json={"driverId": "driver-1", "amount": 5000})
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"payoutId": "tr_test_1", "amount": 5000}}

def test_webhook_signature_and_sync(api, fake_user, repo):
    pid = _create(api).json()["data"]["processorIntentId"]
    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": pid}}})

    r = api.post("/api/payment/webhook", content=payload, headers={"stripe-signature": "forged"})
    assert r.status_code == 400
    assert repo.rows[pid].status == "requires_capture"

    r = api.post("/api/payment/webhook", content=payload, headers={"stripe-signature": "valid-signature"})
    assert r.status_code == 200
    assert r.json()["data"] == {"event": "payment_intent.succeeded", "handled": True, "status": "succeeded"}

def test_unknown_endpoint_uses_envelope(client):
    r = client.get("/api/payment/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Endpoint introuvable"}

def test_create_replay_returns_same_intent(api, fake_user, repo):
    first = _create(api).json()["data"]
    second = _create(api).json()["data"]
    assert second["processorIntentId"] == first["processorIntentId"]
    assert len(repo.history) == 1
