"""
Unit tests for the error taxonomy.
"""

from stockpos.exceptions import (
    StockPosError, ValidationError, NotFoundError, InsufficientStockError, ConflictError,
    TicketConflictError, TransientStoreError, InternalInvariantError, UnauthorizedError
)


def test_status_codes_and_kinds():
    cases = [
        (ValidationError('bad'), 400, 'validation'),
        (NotFoundError('missing'), 404, 'not_found'),
        (InsufficientStockError(1, 'Yerba', 3, 2), 409, 'insufficient_stock'),
        (ConflictError('dup'), 409, 'conflict'),
        (TicketConflictError(1, '20240601-0001'), 409, 'ticket_conflict'),
        (TransientStoreError(), 503, 'transient'),
        (InternalInvariantError('broken'), 500, 'invariant'),
        (UnauthorizedError(), 401, 'unauthorized'),
    ]
    for error, status_code, kind in cases:
        assert isinstance(error, StockPosError)
        assert error.status_code == status_code
        assert error.kind == kind


def test_only_store_and_ticket_errors_are_retryable():
    assert TransientStoreError().retryable is True
    assert TicketConflictError(1, 'x').retryable is True
    assert ConflictError('x').retryable is False
    assert InsufficientStockError(1, 'x', 1, 0).retryable is False
    assert ValidationError('x').retryable is False


def test_insufficient_stock_payload():
    error = InsufficientStockError(7, 'Yerba Mate', requested=3, available=2)
    data = error.to_dict()

    assert error.requested == 3
    assert error.available == 2
    assert data['status'] == 'error'
    assert data['kind'] == 'insufficient_stock'
    assert data['product_id'] == 7
    assert data['product_name'] == 'Yerba Mate'
    assert data['requested'] == 3
    assert data['available'] == 2
    assert 'Yerba Mate' in data['message']


def test_not_found_names_the_resource():
    data = NotFoundError('Producto no encontrado', resource='product', resource_id=99).to_dict()
    assert data['resource'] == 'product'
    assert data['resource_id'] == 99


def test_validation_error_field():
    error = ValidationError('Cantidad inválida', field='quantity', payload={'index': 0})
    data = error.to_dict()
    assert error.field == 'quantity'
    assert data['field'] == 'quantity'
    assert data['index'] == 0
    assert data['message'] == 'Cantidad inválida'
