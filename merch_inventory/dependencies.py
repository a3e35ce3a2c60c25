from fastapi import HTTPException, Request, status

from merch_inventory.errors import (
    InsufficientStock,
    InvalidRequest,
    InvalidTransition,
    InventoryError,
    NotFound,
    StorageError,
    VerificationFailed,
)

_STATUS_BY_ERROR: list[tuple[type[InventoryError], int]] = [
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (InvalidRequest, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InsufficientStock, status.HTTP_409_CONFLICT),
    (VerificationFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def http_error(exc: InventoryError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(
                status_code=status_code,
                detail={'error': type(exc).__name__, 'message': str(exc)},
            )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
