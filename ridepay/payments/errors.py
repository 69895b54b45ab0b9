"""
Taxonomie d'erreurs du cycle de paiement.
Chaque erreur porte le code HTTP renvoyé par la frontière API (enveloppe uniforme).
"""


class PaymentError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    """Champ manquant ou invalide dans la requête."""
    status_code = 400


class Unauthorized(PaymentError):
    status_code = 401


class NotFound(PaymentError):
    status_code = 404


class InvalidState(PaymentError):
    """Opération non permise depuis l'état courant du paiement."""
    status_code = 409


class ProcessorRejected(PaymentError):
    """Stripe a refusé l'opération (montant, devise, carte, statut...)."""
    status_code = 502

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class PersistenceFailure(PaymentError):
    """Écriture/lecture Supabase impossible."""
    status_code = 500

    def __init__(self, message: str, processor_intent_id: str | None = None):
        super().__init__(message)
        self.processor_intent_id = processor_intent_id
