"""
Point d'entrée principal du service.

Usage:
    python -m ridepay

Lance uvicorn directement et lit quelques variables d'environnement:
- PORT: port d'écoute (par défaut 3000)
- UVICORN_RELOAD: active le reload auto en dev ("1"/"true"/"yes")
- LOG_LEVEL: niveau de logs uvicorn (ex: "info", "debug")
"""
import os
import uvicorn
from ridepay.config import PORT

if __name__ == "__main__":
    reload_flag = os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes")
    log_level = os.environ.get("LOG_LEVEL", "info")
    uvicorn.run(
        "ridepay.asgi:app",
        host="0.0.0.0",
        port=PORT,
        reload=reload_flag,
        log_level=log_level
    )
