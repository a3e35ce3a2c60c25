from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_inventory.db import get_db
from merch_inventory.dependencies import http_error
from merch_inventory.errors import InventoryError, NotFound
from merch_inventory.models import Promoter, TransactionType
from merch_inventory.services.aggregation_service import PromoterHoldings, holdings_by_promoter
from merch_inventory.services.transaction_history_service import HistoryFilters, list_transactions

router = APIRouter(tags=['transactions'])


@router.get('/transactions')
def transaction_history(
    type: TransactionType | None = None,
    promoter_id: int | None = None,
    employee_id: int | None = None,
    item_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int | None = None,
    db: Session = Depends(get_db),
):
    filters = HistoryFilters(
        transaction_type=type,
        promoter_id=promoter_id,
        employee_id=employee_id,
        item_id=item_id,
        start=start,
        end=end,
        search=search,
    )
    try:
        return list_transactions(db, filters=filters, page=page, page_size=page_size)
    except InventoryError as exc:
        raise http_error(exc) from exc


@router.get('/promoters/holdings')
def all_promoter_holdings(db: Session = Depends(get_db)):
    grouped = holdings_by_promoter(db)
    return {
        'promoters': [
            {'promoter_id': promoter_id, 'holdings': [line.as_dict() for line in lines]}
            for promoter_id, lines in sorted(grouped.items())
        ]
    }


@router.get('/promoters/{promoter_id}/holdings')
def promoter_holdings(promoter_id: int, db: Session = Depends(get_db)):
    exists = db.execute(select(Promoter.id).where(Promoter.id == promoter_id)).scalar_one_or_none()
    if not exists:
        raise http_error(NotFound('Promoter not found'))
    lines = PromoterHoldings(db, promoter_id).as_list()
    return {
        'promoter_id': promoter_id,
        'holdings': [line.as_dict() for line in lines],
        'integrity_faults': sum(1 for line in lines if line.is_integrity_fault),
    }
