"""Transaction ledger: the only writer of item size counters.

Every write is a conditional ``UPDATE`` of the size row plus the matching
``inventory_transactions`` insert, committed together. The precondition lives
in the ``WHERE`` clause, so two sessions racing on the same size cannot both
pass it against a stale read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, ClassVar

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from merch_inventory.config import settings
from merch_inventory.errors import InsufficientStock, InvalidRequest, NotFound, StorageError
from merch_inventory.models import Employee, InventoryTransaction, Item, ItemSize, Promoter, TransactionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TakeOut:
    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    promoter_id: int
    notes: str | None = None

    type: ClassVar[TransactionType] = TransactionType.TAKE_OUT


@dataclass(frozen=True)
class Return:
    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    promoter_id: int
    notes: str | None = None

    type: ClassVar[TransactionType] = TransactionType.RETURN


@dataclass(frozen=True)
class Burn:
    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    promoter_id: int
    notes: str | None = None

    type: ClassVar[TransactionType] = TransactionType.BURN


@dataclass(frozen=True)
class Restock:
    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    notes: str | None = None

    type: ClassVar[TransactionType] = TransactionType.RESTOCK
    promoter_id: ClassVar[None] = None


TransactionCommand = TakeOut | Return | Burn | Restock

_COMMAND_TYPES: dict[TransactionType, type] = {
    TransactionType.TAKE_OUT: TakeOut,
    TransactionType.RETURN: Return,
    TransactionType.BURN: Burn,
    TransactionType.RESTOCK: Restock,
}


@dataclass(frozen=True)
class LedgerResult:
    transaction: InventoryTransaction
    available_quantity: int
    in_circulation: int
    circulation_shortfall: int = 0

    def as_dict(self) -> dict:
        return {
            'transaction': transaction_to_dict(self.transaction),
            'item_size_id': self.transaction.item_size_id,
            'available_quantity': self.available_quantity,
            'in_circulation': self.in_circulation,
            'circulation_shortfall': self.circulation_shortfall,
        }


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def transaction_to_dict(txn: InventoryTransaction) -> dict:
    return {
        'id': txn.id,
        'type': txn.type.value if hasattr(txn.type, 'value') else str(txn.type),
        'item_id': txn.item_id,
        'item_size_id': txn.item_size_id,
        'quantity': txn.quantity,
        'promoter_id': txn.promoter_id,
        'employee_id': txn.employee_id,
        'notes': txn.notes,
        'created_at': txn.created_at,
    }


def _require_id(value: int | None, label: str) -> int:
    if value is None:
        raise InvalidRequest(f'{label} is required')
    return value


def build_command(
    transaction_type: TransactionType | str,
    *,
    item_id: int | None,
    item_size_id: int | None,
    quantity: int | None,
    employee_id: int | None,
    promoter_id: int | None = None,
    notes: str | None = None,
) -> TransactionCommand:
    try:
        kind = TransactionType(transaction_type)
    except ValueError as exc:
        raise InvalidRequest(f'Unknown transaction type: {transaction_type}') from exc

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidRequest('Quantity must be a whole number')
    if quantity <= 0:
        raise InvalidRequest('Quantity must be greater than zero')

    fields = {
        'item_id': _require_id(item_id, 'Item'),
        'item_size_id': _require_id(item_size_id, 'Size'),
        'quantity': quantity,
        'employee_id': _require_id(employee_id, 'Employee'),
        'notes': (notes or '').strip() or None,
    }
    if kind == TransactionType.RESTOCK:
        if promoter_id is not None:
            raise InvalidRequest('A restock is not tied to a promoter')
        return Restock(**fields)

    fields['promoter_id'] = _require_id(promoter_id, 'Promoter')
    return _COMMAND_TYPES[kind](**fields)


def stock_item_id(item: Item) -> int:
    if item.is_shared and item.canonical_item_id is not None:
        return item.canonical_item_id
    return item.id


def resolve_target(db: Session, command: TransactionCommand) -> tuple[Item, ItemSize]:
    item = db.get(Item, command.item_id)
    if not item:
        raise NotFound('Item not found')
    size = db.get(ItemSize, command.item_size_id)
    if not size:
        raise NotFound('Size not found')
    if size.item_id != stock_item_id(item):
        raise InvalidRequest('Size does not belong to this item')
    if command.type == TransactionType.TAKE_OUT and not item.is_active:
        raise InvalidRequest('Item is inactive')
    return item, size


def check_promoter(db: Session, command: TransactionCommand) -> Promoter | None:
    if command.promoter_id is None:
        return None
    promoter = db.get(Promoter, command.promoter_id)
    if not promoter:
        raise NotFound('Promoter not found')
    if command.type == TransactionType.TAKE_OUT and not promoter.is_active:
        raise InvalidRequest('Promoter is inactive')
    return promoter


def check_employee(db: Session, employee_id: int) -> Employee:
    employee = db.get(Employee, employee_id)
    if not employee:
        raise NotFound('Employee not found')
    return employee


def _current_counters(db: Session, item_size_id: int) -> ItemSize:
    return db.execute(
        select(ItemSize).where(ItemSize.id == item_size_id).execution_options(populate_existing=True)
    ).scalar_one()


def _insufficient(db: Session, command: TransactionCommand, *, counter: str) -> InsufficientStock:
    size = _current_counters(db, command.item_size_id)
    on_hand = getattr(size, counter)
    db.rollback()
    label = 'available' if counter == 'available_quantity' else 'in circulation'
    return InsufficientStock(
        f'Requested {command.quantity} of size {size.size} but only {on_hand} {label}',
        item_size_id=command.item_size_id,
        requested=command.quantity,
        on_hand=on_hand,
        counter=counter,
    )


def _conditional_update(db: Session, item_size_id: int, *conditions, **values) -> bool:
    result = db.execute(
        update(ItemSize)
        .where(ItemSize.id == item_size_id, *conditions)
        .values(updated_at=_now(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _take_out_effect(db: Session, command: TransactionCommand) -> int:
    qty = command.quantity
    applied = _conditional_update(
        db,
        command.item_size_id,
        ItemSize.available_quantity >= qty,
        available_quantity=ItemSize.available_quantity - qty,
        in_circulation=ItemSize.in_circulation + qty,
    )
    if not applied:
        raise _insufficient(db, command, counter='available_quantity')
    return 0


def _return_effect(db: Session, command: TransactionCommand) -> int:
    qty = command.quantity
    if settings.reject_returns_exceeding_circulation:
        applied = _conditional_update(
            db,
            command.item_size_id,
            ItemSize.in_circulation >= qty,
            available_quantity=ItemSize.available_quantity + qty,
            in_circulation=ItemSize.in_circulation - qty,
        )
        if not applied:
            raise _insufficient(db, command, counter='in_circulation')
        return 0

    # Either the plain decrement applies, or the counter is floored against the
    # exact value it was read at; the shortfall is what that value lacked.
    while True:
        if _conditional_update(
            db,
            command.item_size_id,
            ItemSize.in_circulation >= qty,
            available_quantity=ItemSize.available_quantity + qty,
            in_circulation=ItemSize.in_circulation - qty,
        ):
            return 0
        circulating = db.execute(
            select(ItemSize.in_circulation).where(ItemSize.id == command.item_size_id)
        ).scalar_one()
        if circulating >= qty:
            continue
        if _conditional_update(
            db,
            command.item_size_id,
            ItemSize.in_circulation == circulating,
            available_quantity=ItemSize.available_quantity + qty,
            in_circulation=0,
        ):
            return qty - circulating


def _burn_effect(db: Session, command: TransactionCommand) -> int:
    qty = command.quantity
    applied = _conditional_update(
        db,
        command.item_size_id,
        ItemSize.in_circulation >= qty,
        in_circulation=ItemSize.in_circulation - qty,
    )
    if not applied:
        raise _insufficient(db, command, counter='in_circulation')
    return 0


def _restock_effect(db: Session, command: TransactionCommand) -> int:
    _conditional_update(
        db,
        command.item_size_id,
        available_quantity=ItemSize.available_quantity + command.quantity,
    )
    return 0


_EFFECTS: dict[TransactionType, Callable[[Session, TransactionCommand], int]] = {
    TransactionType.TAKE_OUT: _take_out_effect,
    TransactionType.RETURN: _return_effect,
    TransactionType.BURN: _burn_effect,
    TransactionType.RESTOCK: _restock_effect,
}


def apply_command(db: Session, command: TransactionCommand) -> LedgerResult:
    """Stage the counter update and ledger row in ``db`` without committing.

    Callers that need extra rows in the same atomic unit (the return override
    and its audit entry) stage them first and then call :func:`commit_ledger`.
    """
    item, _size = resolve_target(db, command)
    check_promoter(db, command)
    check_employee(db, command.employee_id)

    try:
        shortfall = _EFFECTS[command.type](db, command)
        txn = InventoryTransaction(
            type=command.type,
            item_id=stock_item_id(item),
            item_size_id=command.item_size_id,
            quantity=command.quantity,
            promoter_id=command.promoter_id,
            employee_id=command.employee_id,
            notes=command.notes,
            created_at=_now(),
        )
        db.add(txn)
        db.flush()
        counters = _current_counters(db, command.item_size_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError('Could not stage inventory transaction') from exc

    if shortfall:
        logger.warning(
            'Return of %s on item_size=%s exceeded in_circulation by %s; counter floored at zero',
            command.quantity,
            command.item_size_id,
            shortfall,
        )
    return LedgerResult(
        transaction=txn,
        available_quantity=counters.available_quantity,
        in_circulation=counters.in_circulation,
        circulation_shortfall=shortfall,
    )


def commit_ledger(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error('Inventory commit failed: %s', exc)
        raise StorageError('Could not commit inventory transaction') from exc


def record_transaction(db: Session, command: TransactionCommand) -> LedgerResult:
    result = apply_command(db, command)
    commit_ledger(db)
    logger.info(
        'Recorded %s id=%s qty=%s item_size=%s promoter=%s employee=%s',
        command.type.value,
        result.transaction.id,
        command.quantity,
        command.item_size_id,
        command.promoter_id,
        command.employee_id,
    )
    return result


def record_take_out(
    db: Session,
    *,
    item_id: int,
    item_size_id: int,
    quantity: int,
    employee_id: int,
    promoter_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    command = build_command(
        TransactionType.TAKE_OUT,
        item_id=item_id,
        item_size_id=item_size_id,
        quantity=quantity,
        employee_id=employee_id,
        promoter_id=promoter_id,
        notes=notes,
    )
    return record_transaction(db, command)


def record_return(
    db: Session,
    *,
    item_id: int,
    item_size_id: int,
    quantity: int,
    employee_id: int,
    promoter_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    """Record a return without the holdings check.

    Interactive returns go through ``return_reconciliation_service`` first;
    this is the commit step it ends in.
    """
    command = build_command(
        TransactionType.RETURN,
        item_id=item_id,
        item_size_id=item_size_id,
        quantity=quantity,
        employee_id=employee_id,
        promoter_id=promoter_id,
        notes=notes,
    )
    return record_transaction(db, command)


def record_burn(
    db: Session,
    *,
    item_id: int,
    item_size_id: int,
    quantity: int,
    employee_id: int,
    promoter_id: int | None,
    notes: str | None = None,
) -> LedgerResult:
    command = build_command(
        TransactionType.BURN,
        item_id=item_id,
        item_size_id=item_size_id,
        quantity=quantity,
        employee_id=employee_id,
        promoter_id=promoter_id,
        notes=notes,
    )
    return record_transaction(db, command)


def record_restock(
    db: Session,
    *,
    item_id: int,
    item_size_id: int,
    quantity: int,
    employee_id: int,
    notes: str | None = None,
) -> LedgerResult:
    command = build_command(
        TransactionType.RESTOCK,
        item_id=item_id,
        item_size_id=item_size_id,
        quantity=quantity,
        employee_id=employee_id,
        notes=notes,
    )
    return record_transaction(db, command)
