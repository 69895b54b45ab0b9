"""
Clients Supabase du service de paiement.
- anon: vérification des jetons (supabase.auth.get_user)
- service-role: capture, annulation, remboursement, payout, webhook, worker, réconciliation
- utilisateur: client anon authentifié par le jeton du passager (RLS actif), chemin de création
Les clients anon et service-role sont mis en cache au niveau du module.
"""
from typing import Dict, Optional
from supabase import create_client, Client
from ridepay.config import SUPABASE_URL, SUPABASE_ANON_KEY, SUPABASE_SERVICE_KEY

_clients: Dict[str, Client] = {}

def _connect(role: str, key: str) -> Client:
    if not SUPABASE_URL or not key:
        raise RuntimeError(f"Configuration Supabase incomplète pour le client {role} (SUPABASE_URL / clé)")
    return create_client(SUPABASE_URL, key)

def get_supabase() -> Client:
    if "anon" not in _clients:
        _clients["anon"] = _connect("anon", SUPABASE_ANON_KEY)
    return _clients["anon"]

def get_service_supabase() -> Client:
    if "service" not in _clients:
        _clients["service"] = _connect("service", SUPABASE_SERVICE_KEY)
    return _clients["service"]

def get_user_supabase(user_token: Optional[str]) -> Client:
    """Nouveau client par requête: le jeton du passager ne doit jamais fuiter vers le cache."""
    if not user_token:
        raise ValueError("user_token is required")
    client = _connect("utilisateur", SUPABASE_ANON_KEY)
    client.postgrest.auth(user_token)
    return client

def reset_clients() -> None:
    _clients.clear()
