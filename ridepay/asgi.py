"""
ASGI entrypoint: expose `app` pour les process managers / déploiements
(ex: `uvicorn ridepay.asgi:app`). Toute la configuration est centralisée dans ridepay.app.
"""

from ridepay.app import app
