from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from merch_inventory.db import get_db
from merch_inventory.dependencies import http_error
from merch_inventory.errors import InventoryError
from merch_inventory.schemas import MassEditIn, RestockIn, StockMovementIn
from merch_inventory.services.aggregation_service import all_items_summary, item_quantities, size_rows
from merch_inventory.services.ledger_service import record_burn, record_restock, record_take_out
from merch_inventory.services.mass_edit_service import MassEditLine, apply_mass_edit

router = APIRouter(prefix='/inventory', tags=['inventory'])


@router.get('/items')
def items_overview(
    brand_id: int | None = None,
    include_shared: bool = False,
    db: Session = Depends(get_db),
):
    return all_items_summary(db, brand_id=brand_id, include_shared=include_shared)


@router.get('/items/{item_id}/quantities')
def item_quantities_detail(item_id: int, db: Session = Depends(get_db)):
    try:
        quantities = item_quantities(db, item_id=item_id)
        sizes = size_rows(db, item_id=item_id)
    except InventoryError as exc:
        raise http_error(exc) from exc
    return {'item_id': item_id, **quantities.as_dict(), 'sizes': sizes}


@router.post('/take-out', status_code=status.HTTP_201_CREATED)
def take_out(payload: StockMovementIn, db: Session = Depends(get_db)):
    try:
        result = record_take_out(db, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return result.as_dict()


@router.post('/burn', status_code=status.HTTP_201_CREATED)
def burn(payload: StockMovementIn, db: Session = Depends(get_db)):
    try:
        result = record_burn(db, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return result.as_dict()


@router.post('/restock', status_code=status.HTTP_201_CREATED)
def restock(payload: RestockIn, db: Session = Depends(get_db)):
    try:
        result = record_restock(db, **payload.model_dump())
    except InventoryError as exc:
        raise http_error(exc) from exc
    return result.as_dict()


@router.post('/mass-edit')
def mass_edit(payload: MassEditIn, db: Session = Depends(get_db)):
    try:
        result = apply_mass_edit(
            db,
            action=payload.action,
            promoter_id=payload.promoter_id,
            employee_id=payload.employee_id,
            notes=payload.notes,
            lines=[
                MassEditLine(item_id=line.item_id, item_size_id=line.item_size_id, quantity=line.quantity)
                for line in payload.lines
            ],
        )
    except InventoryError as exc:
        raise http_error(exc) from exc
    return result.as_dict()
