from typing import Any, Dict, Optional
import logging
from fastapi import Depends, Request
from ridepay.payments.errors import Unauthorized

logger = logging.getLogger(__name__)

def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None

def resolve_user(token: Optional[str]) -> Dict[str, Any]:
    """
    Vérifie le jeton auprès de Supabase Auth et retourne l'utilisateur normalisé.
    Lève Unauthorized si le jeton est absent, invalide ou expiré.
    """
    if not token:
        raise Unauthorized("En-tête Authorization manquant ou invalide")
    try:
        # Délégué au service Auth
        from ridepay.auth.service import get_user_from_token as _svc_get_user_from_token
        user = _svc_get_user_from_token(token)
    except Exception:
        logger.info("auth.resolve_user token rejected")
        raise Unauthorized("Jeton d'authentification invalide ou expiré")
    if not user.get("id"):
        raise Unauthorized("Jeton d'authentification invalide ou expiré")
    return user

def get_current_user(request: Request) -> Dict[str, Any]:
    return resolve_user(bearer_token(request))

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user
