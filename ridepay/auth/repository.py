from typing import Any, Dict
from ridepay.infra.supabase_client import get_supabase

# module ridepay.auth.repository
def fetch_auth_user(access_token: str) -> Dict[str, Any]:
    """
    Interroge Supabase Auth (GoTrue) pour le jeton Bearer du passager.
    Retour: {"id", "email", "user_metadata"} ou {} si la réponse ne porte pas d'utilisateur.
    """
    res = get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) if res is not None else None
    if not user:
        return {}
    if isinstance(user, dict):
        return {k: user.get(k) for k in ("id", "email", "user_metadata")}
    return {
        "id": getattr(user, "id", None),
        "email": getattr(user, "email", None),
        "user_metadata": getattr(user, "user_metadata", None),
    }
