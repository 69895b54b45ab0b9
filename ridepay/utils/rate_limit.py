from typing import Any, Dict
from fastapi import Request, Response, HTTPException
import os
import time
import hashlib
import logging

logger = logging.getLogger(__name__)

def _user_key_from_request(req: Request) -> str:
    # Priorité: jeton Bearer (hashé) puis IP
    auth_header = req.headers.get("Authorization", "")
    path = req.url.path
    if auth_header.startswith("Bearer "):
        h = hashlib.sha256(auth_header[7:].encode("utf-8")).hexdigest()[:16]
        return f"user:{h}:{path}"
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{path}"

def optional_rate_limit(times: int, seconds: int):
    async def _dep(request: Request, response: Response):
        # Fallback mémoire (dev/tests) si demandé
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = _user_key_from_request(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Trop de requêtes")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        # Respecter le flag global posé par le lifespan
        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return

        from fastapi_limiter.depends import RateLimiter

        async def _identifier(req: Request) -> str:
            return _user_key_from_request(req)
        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception as e:
            # Redis indisponible en cours de route: pas de 429 en prod
            logger.warning("rate_limit backend error: %s", e)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    return {
        "enabled": (bool(enabled) if enabled is not None else None),
        "fallback": os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1",
    }
