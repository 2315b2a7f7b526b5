"""
Application exceptions.

Each one carries the HTTP status the error handler answers with; messages
are user-facing (Spanish).
"""

class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="Error interno del servidor.", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(SaasError):
    """Exception raised for invalid input or business rule violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Recurso no encontrado.", payload=None):
        super().__init__(message, 404, payload)

class ConflictError(BusinessLogicError):
    """A business precondition is not met (no active cycle, unpriced plan...)."""
    def __init__(self, message, payload=None):
        super().__init__(message, status_code=409, payload=payload)

class UnauthenticatedError(SaasError):
    """Raised when the request carries no valid identity."""
    def __init__(self, message="No autenticado."):
        super().__init__(message, 401)

class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Acceso denegado."):
        super().__init__(message, 403)

class PaymentProviderError(SaasError):
    """The payment provider rejected or failed a request."""
    def __init__(self, message="No se pudo crear la preferencia de pago."):
        super().__init__(message, 502)
