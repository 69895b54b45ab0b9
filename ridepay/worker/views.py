"""
Endpoints du worker de capture, appelés par le planificateur (cron) avec la confiance service.
- POST /api/worker/payment-capture: traite un lot de la file payment_capture_queue
- GET /api/worker/health: sonde de vivacité
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ridepay.config import PaymentSettings
import ridepay.infra.supabase_client as supabase_client
from ridepay.payments.dependencies import get_service_orchestrator, get_settings
from ridepay.payments.service import PaymentOrchestrator
from .service import CaptureWorker

router = APIRouter(prefix="/api/worker", tags=["Worker"])


class CaptureBatchRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    batch_size: Optional[int] = Field(default=None, gt=0)
    max_attempts: Optional[int] = Field(default=None, gt=0)


def get_capture_worker(
    settings: PaymentSettings = Depends(get_settings),
    orchestrator: PaymentOrchestrator = Depends(get_service_orchestrator),
) -> CaptureWorker:
    return CaptureWorker(settings, orchestrator, supabase_client.get_service_supabase())


@router.post("/payment-capture")
def process_payment_captures(body: Optional[CaptureBatchRequest] = None, worker: CaptureWorker = Depends(get_capture_worker)):
    body = body or CaptureBatchRequest()
    return {"success": True, "data": worker.run(batch_size=body.batch_size, max_attempts=body.max_attempts)}


@router.get("/health")
def worker_health():
    return {"success": True, "data": {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}}
