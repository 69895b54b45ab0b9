# ridepay.config
from pathlib import Path
import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de paiement.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), CORS, port, environnement
- Regroupe les réglages de paiement dans PaymentSettings, passé explicitement
  à l'orchestrateur, à l'adaptateur Stripe et au worker de capture
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name)) or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON_KEY = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe: clé secrète et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# CORS
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

# Service
PORT = _int_env("PORT", 3000)
APP_ENV = _clean_env(os.getenv("APP_ENV") or os.getenv("NODE_ENV") or "development")

# Paiements
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "cad").lower()
PLATFORM_FEE_PERCENT = _int_env("PLATFORM_FEE_PERCENT", 15)
PERSIST_RETRIES = _int_env("PERSIST_RETRIES", 1)

# Worker de capture (file payment_capture_queue)
CAPTURE_BATCH_SIZE = _int_env("CAPTURE_BATCH_SIZE", 10)
CAPTURE_MAX_ATTEMPTS = _int_env("CAPTURE_MAX_ATTEMPTS", 5)
CAPTURE_DELAY_SECONDS = _float_env("CAPTURE_DELAY_SECONDS", 0.5)


class PaymentSettings(BaseModel):
    """Réglages injectés à la construction (orchestrateur, Stripe, worker)."""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "cad"
    platform_fee_percent: int = 15
    persist_retries: int = 1
    capture_batch_size: int = 10
    capture_max_attempts: int = 5
    capture_delay_seconds: float = 0.5
    environment: str = "development"


def load_settings() -> PaymentSettings:
    return PaymentSettings(
        stripe_secret_key=STRIPE_SECRET_KEY,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        currency=PAYMENT_CURRENCY,
        platform_fee_percent=PLATFORM_FEE_PERCENT,
        persist_retries=PERSIST_RETRIES,
        capture_batch_size=CAPTURE_BATCH_SIZE,
        capture_max_attempts=CAPTURE_MAX_ATTEMPTS,
        capture_delay_seconds=CAPTURE_DELAY_SECONDS,
        environment=APP_ENV,
    )
