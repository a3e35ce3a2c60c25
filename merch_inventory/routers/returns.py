from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from merch_inventory.db import get_db
from merch_inventory.dependencies import get_client_ip, http_error
from merch_inventory.errors import InventoryError
from merch_inventory.schemas import ReturnDecisionIn, ReturnIn
from merch_inventory.services.return_reconciliation_service import (
    ReturnReconciliation,
    ReturnState,
    list_pending_returns,
)

router = APIRouter(prefix='/returns', tags=['returns'])


@router.post('', status_code=status.HTTP_201_CREATED)
def submit_return(
    payload: ReturnIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    try:
        engine = ReturnReconciliation.start(db, ip=get_client_ip(request), **payload.model_dump())
        outcome = engine.check()
    except InventoryError as exc:
        raise http_error(exc) from exc

    if outcome.state == ReturnState.AWAITING_OVERRIDE:
        response.status_code = status.HTTP_202_ACCEPTED
    return outcome.as_dict()


@router.get('/pending')
def pending_returns(db: Session = Depends(get_db)):
    return {'pending_returns': list_pending_returns(db)}


@router.post('/{pending_return_id}/confirm', status_code=status.HTTP_201_CREATED)
def confirm_return(
    pending_return_id: int,
    payload: ReturnDecisionIn,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        engine = ReturnReconciliation.resume(db, pending_return_id=pending_return_id, ip=get_client_ip(request))
        outcome = engine.force_confirm(employee_id=payload.employee_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return outcome.as_dict()


@router.post('/{pending_return_id}/cancel')
def cancel_return(
    pending_return_id: int,
    payload: ReturnDecisionIn,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        engine = ReturnReconciliation.resume(db, pending_return_id=pending_return_id, ip=get_client_ip(request))
        outcome = engine.cancel(employee_id=payload.employee_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return outcome.as_dict()
