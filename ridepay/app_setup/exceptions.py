"""
Gestionnaires d’exceptions: toute erreur devient l’enveloppe uniforme
{"success": false, "error": "<message>"}.
- PaymentError: code HTTP porté par l’erreur (400/401/404/409/500/502)
- HTTPException (404 de routage, 429 du rate limit...): code conservé
- RequestValidationError: 400 avec le premier champ en défaut
- Exception inattendue: 500, journalisée
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ridepay.payments.errors import PaymentError

logger = logging.getLogger(__name__)

def error_envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})

def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors() or []
    if not errors:
        return "Requête invalide"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p != "body"]
    field = ".".join(loc)
    msg = first.get("msg") or "valeur invalide"
    return f"Champ invalide {field}: {msg}" if field else f"Requête invalide: {msg}"

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return error_envelope(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        if exc.status_code == 404 and detail == "Not Found":
            detail = "Endpoint introuvable"
        return error_envelope(exc.status_code, detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_envelope(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Erreur serveur %s %s", request.method, request.url.path)
        return error_envelope(500, str(exc) or "Erreur interne du serveur")
