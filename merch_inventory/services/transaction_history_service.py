from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from math import ceil

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from merch_inventory.config import settings
from merch_inventory.errors import InvalidRequest
from merch_inventory.models import Brand, Employee, InventoryTransaction, Item, ItemSize, Promoter, TransactionType


@dataclass(frozen=True)
class HistoryFilters:
    transaction_type: TransactionType | None = None
    promoter_id: int | None = None
    employee_id: int | None = None
    item_id: int | None = None
    start: datetime | None = None
    end: datetime | None = None
    search: str | None = None


def _filtered_query(filters: HistoryFilters) -> Select:
    query = (
        select(
            InventoryTransaction,
            Item.name.label('item_name'),
            Brand.name.label('brand_name'),
            ItemSize.size.label('size'),
            Promoter.name.label('promoter_name'),
            Employee.name.label('employee_name'),
        )
        .join(Item, Item.id == InventoryTransaction.item_id)
        .join(Brand, Brand.id == Item.brand_id)
        .join(ItemSize, ItemSize.id == InventoryTransaction.item_size_id)
        .outerjoin(Promoter, Promoter.id == InventoryTransaction.promoter_id)
        .outerjoin(Employee, Employee.id == InventoryTransaction.employee_id)
    )
    if filters.transaction_type is not None:
        query = query.where(InventoryTransaction.type == filters.transaction_type)
    if filters.promoter_id is not None:
        query = query.where(InventoryTransaction.promoter_id == filters.promoter_id)
    if filters.employee_id is not None:
        query = query.where(InventoryTransaction.employee_id == filters.employee_id)
    if filters.item_id is not None:
        query = query.where(InventoryTransaction.item_id == filters.item_id)
    if filters.start is not None:
        query = query.where(InventoryTransaction.created_at >= filters.start)
    if filters.end is not None:
        query = query.where(InventoryTransaction.created_at <= filters.end)

    term = (filters.search or '').strip()
    if term:
        pattern = f'%{term}%'
        query = query.where(
            or_(
                Item.name.ilike(pattern),
                Brand.name.ilike(pattern),
                Promoter.name.ilike(pattern),
                InventoryTransaction.notes.ilike(pattern),
            )
        )
    return query


def _history_row(row) -> dict:
    txn = row[0]
    return {
        'id': txn.id,
        'type': txn.type.value,
        'item_id': txn.item_id,
        'item_name': row.item_name,
        'brand_name': row.brand_name,
        'item_size_id': txn.item_size_id,
        'size': row.size,
        'quantity': txn.quantity,
        'promoter_id': txn.promoter_id,
        'promoter_name': row.promoter_name,
        'employee_id': txn.employee_id,
        'employee_name': row.employee_name,
        'notes': txn.notes,
        'created_at': txn.created_at,
    }


def list_transactions(
    db: Session,
    *,
    filters: HistoryFilters | None = None,
    page: int = 1,
    page_size: int | None = None,
) -> dict:
    filters = filters or HistoryFilters()
    page_size = page_size or settings.history_page_size
    if page < 1:
        raise InvalidRequest('Page must be 1 or greater')
    if page_size < 1 or page_size > settings.history_max_page_size:
        raise InvalidRequest(f'Page size must be between 1 and {settings.history_max_page_size}')
    if filters.start and filters.end and filters.start > filters.end:
        raise InvalidRequest('Start date must not be after end date')

    query = _filtered_query(filters)
    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    rows = db.execute(
        query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    return {
        'transactions': [_history_row(row) for row in rows],
        'total': total,
        'page': page,
        'page_size': page_size,
        'pages': ceil(total / page_size) if total else 0,
    }
