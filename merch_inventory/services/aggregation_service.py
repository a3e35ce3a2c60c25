from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from sqlalchemy import Select, case, func, select
from sqlalchemy.orm import Session

from merch_inventory.errors import NotFound
from merch_inventory.models import Brand, InventoryTransaction, Item, ItemSize, TransactionType
from merch_inventory.services.ledger_service import stock_item_id
from merch_inventory.services.quantity_math_service import (
    ItemQuantities,
    QuantityFault,
    SizeCounters,
    clamp_holding,
    combine,
    net_holding,
    size_quantities,
    summarize_sizes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HoldingLine:
    promoter_id: int
    item_id: int
    item_size_id: int
    quantity: int
    raw_quantity: int
    fault: QuantityFault | None = None

    @property
    def is_integrity_fault(self) -> bool:
        return self.fault is not None

    def as_dict(self) -> dict:
        return {
            'promoter_id': self.promoter_id,
            'item_id': self.item_id,
            'item_size_id': self.item_size_id,
            'quantity': self.quantity,
            'raw_quantity': self.raw_quantity,
            'integrity_fault': self.fault.describe() if self.fault else None,
        }


def _holding_line(promoter_id: int, item_id: int, item_size_id: int, raw: int) -> HoldingLine | None:
    if raw == 0:
        return None
    quantity, fault = clamp_holding(raw, key=(promoter_id, item_id, item_size_id))
    if fault is not None:
        logger.warning('Ledger integrity fault: %s', fault.describe())
    return HoldingLine(
        promoter_id=promoter_id,
        item_id=item_id,
        item_size_id=item_size_id,
        quantity=quantity,
        raw_quantity=raw,
        fault=fault,
    )


def reduce_holdings(transactions: Iterable) -> list[HoldingLine]:
    """Fold a transaction slice into per promoter/item/size holdings.

    Restocks carry no promoter and are skipped. Lines netting to zero are
    dropped; negative nets are kept, clamped and flagged.
    """
    sums: dict[tuple[int, int, int], dict[TransactionType, int]] = defaultdict(lambda: defaultdict(int))
    for txn in transactions:
        if txn.promoter_id is None or txn.type == TransactionType.RESTOCK:
            continue
        sums[(txn.promoter_id, txn.item_id, txn.item_size_id)][TransactionType(txn.type)] += txn.quantity

    lines = []
    for key in sorted(sums):
        totals = sums[key]
        raw = net_holding(
            totals[TransactionType.TAKE_OUT],
            totals[TransactionType.RETURN],
            totals[TransactionType.BURN],
        )
        line = _holding_line(*key, raw)
        if line is not None:
            lines.append(line)
    return lines


def _sum_of(kind: TransactionType):
    return func.coalesce(
        func.sum(case((InventoryTransaction.type == kind, InventoryTransaction.quantity), else_=0)),
        0,
    )


def _holdings_query(
    *,
    promoter_id: int | None = None,
    item_id: int | None = None,
    item_size_id: int | None = None,
) -> Select:
    query = (
        select(
            InventoryTransaction.promoter_id,
            InventoryTransaction.item_id,
            InventoryTransaction.item_size_id,
            _sum_of(TransactionType.TAKE_OUT).label('taken'),
            _sum_of(TransactionType.RETURN).label('returned'),
            _sum_of(TransactionType.BURN).label('burned'),
        )
        .where(InventoryTransaction.promoter_id.is_not(None))
        .group_by(
            InventoryTransaction.promoter_id,
            InventoryTransaction.item_id,
            InventoryTransaction.item_size_id,
        )
        .order_by(
            InventoryTransaction.promoter_id.asc(),
            InventoryTransaction.item_id.asc(),
            InventoryTransaction.item_size_id.asc(),
        )
    )
    if promoter_id is not None:
        query = query.where(InventoryTransaction.promoter_id == promoter_id)
    if item_id is not None:
        query = query.where(InventoryTransaction.item_id == item_id)
    if item_size_id is not None:
        query = query.where(InventoryTransaction.item_size_id == item_size_id)
    return query


class PromoterHoldings:
    """Lazy view of one promoter's holdings.

    Nothing is read until iteration starts, and every iteration re-runs the
    grouped query over the promoter's full transaction history, so iterating
    twice over an unchanged ledger yields the same lines.
    """

    def __init__(self, db: Session, promoter_id: int) -> None:
        self._db = db
        self.promoter_id = promoter_id

    def __iter__(self) -> Iterator[HoldingLine]:
        for row in self._db.execute(_holdings_query(promoter_id=self.promoter_id)):
            line = _holding_line(
                row.promoter_id,
                row.item_id,
                row.item_size_id,
                net_holding(row.taken, row.returned, row.burned),
            )
            if line is not None:
                yield line

    def as_list(self) -> list[HoldingLine]:
        return list(self)


def promoter_holding(db: Session, *, promoter_id: int, item_id: int, item_size_id: int) -> int:
    row = db.execute(
        _holdings_query(promoter_id=promoter_id, item_id=item_id, item_size_id=item_size_id)
    ).one_or_none()
    if row is None:
        return 0
    return net_holding(row.taken, row.returned, row.burned)


def holdings_by_promoter(db: Session) -> dict[int, list[HoldingLine]]:
    grouped: dict[int, list[HoldingLine]] = defaultdict(list)
    for row in db.execute(_holdings_query()):
        line = _holding_line(
            row.promoter_id,
            row.item_id,
            row.item_size_id,
            net_holding(row.taken, row.returned, row.burned),
        )
        if line is not None:
            grouped[line.promoter_id].append(line)
    return dict(grouped)


def _size_counters(size: ItemSize) -> SizeCounters:
    return SizeCounters(
        item_size_id=size.id,
        size=size.size,
        original_quantity=size.original_quantity,
        available_quantity=size.available_quantity,
        in_circulation=size.in_circulation,
    )


def _sizes_by_item(db: Session, item_ids: set[int]) -> dict[int, list[ItemSize]]:
    if not item_ids:
        return {}
    rows = db.execute(
        select(ItemSize)
        .where(ItemSize.item_id.in_(item_ids))
        .order_by(ItemSize.item_id.asc(), ItemSize.id.asc())
        .execution_options(populate_existing=True)
    ).scalars().all()
    grouped: dict[int, list[ItemSize]] = defaultdict(list)
    for size in rows:
        grouped[size.item_id].append(size)
    return grouped


def size_rows(db: Session, *, item_id: int) -> list[dict]:
    item = db.get(Item, item_id)
    if not item:
        raise NotFound('Item not found')
    sizes = _sizes_by_item(db, {stock_item_id(item)}).get(stock_item_id(item), [])
    rows = []
    for size in sizes:
        faults: list[QuantityFault] = []
        original, available, circulating = size_quantities(_size_counters(size), faults)
        rows.append(
            {
                'item_size_id': size.id,
                'size': size.size,
                'original_quantity': original,
                'available_quantity': available,
                'in_circulation': circulating,
                'faults': [fault.describe() for fault in faults],
            }
        )
    return rows


def item_quantities(db: Session, *, item_id: int) -> ItemQuantities:
    item = db.get(Item, item_id)
    if not item:
        raise NotFound('Item not found')
    stock_id = stock_item_id(item)
    sizes = _sizes_by_item(db, {stock_id}).get(stock_id, [])
    quantities = summarize_sizes(_size_counters(size) for size in sizes)
    for fault in quantities.faults:
        logger.warning('Stored counter integrity fault: %s', fault.describe())
    return quantities


def all_items_summary(
    db: Session,
    *,
    brand_id: int | None = None,
    include_shared: bool = False,
) -> dict:
    query = (
        select(Item, Brand.name.label('brand_name'))
        .join(Brand, Brand.id == Item.brand_id)
        .order_by(Brand.name.asc(), Item.name.asc(), Item.id.asc())
    )
    if brand_id is not None:
        query = query.where(Item.brand_id == brand_id)
    if not include_shared:
        query = query.where(Item.is_shared.is_(False))

    rows = db.execute(query).all()
    sizes = _sizes_by_item(db, {stock_item_id(item) for item, _ in rows})

    entries = []
    per_item: list[ItemQuantities] = []
    for item, brand_name in rows:
        quantities = summarize_sizes(_size_counters(size) for size in sizes.get(stock_item_id(item), []))
        per_item.append(quantities)
        entries.append(
            {
                'item_id': item.id,
                'name': item.name,
                'product_id': item.product_id,
                'brand_id': item.brand_id,
                'brand_name': brand_name,
                'is_active': item.is_active,
                'is_shared': item.is_shared,
                **quantities.as_dict(),
            }
        )

    # Shared instances point at stock already counted under the canonical item.
    totals = combine(
        quantities for (item, _), quantities in zip(rows, per_item) if stock_item_id(item) == item.id
    )
    return {'items': entries, 'totals': totals.as_dict()}
