from fastapi import APIRouter, Request
from ridepay.health import service as health_service
from ridepay.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"success": True, "data": health_service.liveness_info()}

@router.get("/supabase")
def health_supabase():
    return {"success": True, "data": health_service.health_supabase_info()}

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return {"success": True, "data": rate_limit_health_info(request)}
