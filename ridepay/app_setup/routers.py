"""
Registre central des routers.
- API: paiements (/api/payment), worker de capture (/api/worker), trajets (/api/route)
- Fonctions: /functions/v1/stripe-payment (corps {action, ...})
- Health: /health
"""
from fastapi import FastAPI
from ridepay.payments import views as payments_views
from ridepay.worker import views as worker_views
from ridepay.routing import views as routing_views
from ridepay.functions.stripe_payment import router as functions_router
from ridepay.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API
    app.include_router(payments_views.router)
    app.include_router(worker_views.router)
    app.include_router(routing_views.router)
    # Fonctions serverless
    app.include_router(functions_router)
    # Health & monitoring
    app.include_router(health_router)
