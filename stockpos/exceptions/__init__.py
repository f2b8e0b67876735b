"""Custom exceptions for the stock & point-of-sale application."""


class StockPosError(Exception):
    """Base exception for all application errors."""

    kind = 'internal'
    retryable = False

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['kind'] = self.kind
        rv['status'] = 'error'
        return rv


class ValidationError(StockPosError):
    """Caller supplied an invalid request (empty basket, bad quantity, ...)."""

    kind = 'validation'

    def __init__(self, message, field=None, payload=None):
        payload = dict(payload or ())
        if field:
            payload['field'] = field
        super().__init__(message, 400, payload)
        self.field = field


class NotFoundError(StockPosError):
    """Exception raised when a resource is not found."""

    kind = 'not_found'

    def __init__(self, message="Resource not found", resource=None, resource_id=None, payload=None):
        payload = dict(payload or ())
        if resource:
            payload['resource'] = resource
        if resource_id is not None:
            payload['resource_id'] = resource_id
        super().__init__(message, 404, payload)
        self.resource = resource
        self.resource_id = resource_id


class InsufficientStockError(StockPosError):
    """Raised when a sale line asks for more units than are on hand."""

    kind = 'insufficient_stock'

    def __init__(self, product_id, product_name, requested, available):
        message = (
            f"Stock insuficiente para {product_name}. "
            f"Disponible: {available}, Solicitado: {requested}"
        )
        super().__init__(message, 409, {
            'product_id': product_id,
            'product_name': product_name,
            'requested': requested,
            'available': available,
        })
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available


class ConflictError(StockPosError):
    """The request conflicts with the current state (e.g. sale already cancelled)."""

    kind = 'conflict'

    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class TicketConflictError(ConflictError):
    """Two concurrent sales derived the same ticket number; safe to retry."""

    kind = 'ticket_conflict'
    retryable = True

    def __init__(self, tenant_id, ticket_number):
        super().__init__(
            f"El ticket {ticket_number} ya fue asignado",
            {'tenant_id': tenant_id, 'ticket_number': ticket_number},
        )
        self.tenant_id = tenant_id
        self.ticket_number = ticket_number


class TransientStoreError(StockPosError):
    """Timeout, lock or connection failure; the scope was rolled back."""

    kind = 'transient'
    retryable = True

    def __init__(self, message="El almacén de datos no está disponible, intente nuevamente", payload=None):
        super().__init__(message, 503, payload)


class InternalInvariantError(StockPosError):
    """A computed result broke an invariant; the operation is refused."""

    kind = 'invariant'

    def __init__(self, message, payload=None):
        super().__init__(message, 500, payload)


class UnauthorizedError(StockPosError):
    """Raised when the caller has no authenticated tenant."""

    kind = 'unauthorized'

    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 401)
