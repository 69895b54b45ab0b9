from typing import Any, Dict
from .repository import fetch_auth_user

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Identité du passager pour la porte d'authentification:
    - Retourne {id, email, metadata, token}; le jeton est conservé pour le client Supabase utilisateur
    - id vide si le jeton n'est pas reconnu
    """
    raw = fetch_auth_user(access_token)
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "metadata": raw.get("user_metadata") or {},
        "token": access_token,
    }
