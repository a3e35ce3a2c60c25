"""Verification protocol for returns.

A return is committed straight away when the ledger shows the promoter holding
at least one unit of the item size. Otherwise it is parked as a
``PendingReturn`` in ``AWAITING_OVERRIDE`` until an operator either cancels
it or force-confirms it. The mismatch is never resolved automatically.

    IDLE -> CHECKING -> MATCH_FOUND -> COMMITTING -> COMMITTED | FAILED
                     -> NO_MATCH -> AWAITING_OVERRIDE -> IDLE (cancel)
                                                      -> COMMITTING (force-confirm)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from merch_inventory.errors import InventoryError, InvalidTransition, NotFound, StorageError, VerificationFailed
from merch_inventory.models import (
    Employee,
    Item,
    ItemSize,
    PendingReturn,
    PendingReturnStatus,
    Promoter,
    TransactionType,
)
from merch_inventory.services.aggregation_service import promoter_holding
from merch_inventory.services.audit_service import log_audit
from merch_inventory.services.ledger_service import (
    LedgerResult,
    Return,
    apply_command,
    build_command,
    check_employee,
    check_promoter,
    commit_ledger,
    resolve_target,
    stock_item_id,
)

logger = logging.getLogger(__name__)


class ReturnState(str, Enum):
    IDLE = 'IDLE'
    CHECKING = 'CHECKING'
    MATCH_FOUND = 'MATCH_FOUND'
    NO_MATCH = 'NO_MATCH'
    AWAITING_OVERRIDE = 'AWAITING_OVERRIDE'
    COMMITTING = 'COMMITTING'
    COMMITTED = 'COMMITTED'
    FAILED = 'FAILED'


@dataclass(frozen=True)
class ReturnOutcome:
    state: ReturnState
    result: LedgerResult | None = None
    pending_return_id: int | None = None
    warning: str | None = None
    holding: int | None = None

    def as_dict(self) -> dict:
        return {
            'state': self.state.value,
            'pending_return_id': self.pending_return_id,
            'warning': self.warning,
            'holding': self.holding,
            'result': self.result.as_dict() if self.result else None,
        }


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _mismatch_warning(promoter: Promoter, item: Item, size: ItemSize) -> str:
    return (
        f'According to the ledger, promoter "{promoter.name}" does not currently hold '
        f'"{item.name}" (size {size.size}). Confirm to record the return anyway.'
    )


class ReturnReconciliation:
    def __init__(
        self,
        db: Session,
        command: Return,
        *,
        pending: PendingReturn | None = None,
        ip: str | None = None,
    ) -> None:
        self._db = db
        self.command = command
        self.ip = ip
        self.pending = pending
        self.holding: int | None = None
        self.warning: str | None = pending.warning if pending else None
        self.result: LedgerResult | None = None
        self.state = ReturnState.AWAITING_OVERRIDE if pending else ReturnState.IDLE
        self._target: tuple[Promoter, Item, ItemSize] | None = None

    @classmethod
    def start(
        cls,
        db: Session,
        *,
        promoter_id: int | None,
        item_id: int | None,
        item_size_id: int | None,
        quantity: int | None,
        employee_id: int | None,
        notes: str | None = None,
        ip: str | None = None,
    ) -> ReturnReconciliation:
        command = build_command(
            TransactionType.RETURN,
            item_id=item_id,
            item_size_id=item_size_id,
            quantity=quantity,
            employee_id=employee_id,
            promoter_id=promoter_id,
            notes=notes,
        )
        return cls(db, command, ip=ip)

    @classmethod
    def resume(cls, db: Session, *, pending_return_id: int, ip: str | None = None) -> ReturnReconciliation:
        pending = db.get(PendingReturn, pending_return_id)
        if not pending:
            raise NotFound('Pending return not found')
        if pending.status != PendingReturnStatus.AWAITING_OVERRIDE:
            raise InvalidTransition(f'Return {pending_return_id} is already {pending.status.value.lower()}')
        command = build_command(
            TransactionType.RETURN,
            item_id=pending.item_id,
            item_size_id=pending.item_size_id,
            quantity=pending.quantity,
            employee_id=pending.employee_id,
            promoter_id=pending.promoter_id,
            notes=pending.notes,
        )
        return cls(db, command, pending=pending, ip=ip)

    def _expect(self, *states: ReturnState) -> None:
        if self.state not in states:
            allowed = ', '.join(state.value for state in states)
            raise InvalidTransition(f'Return is {self.state.value}; expected {allowed}')

    def verify(self) -> bool:
        self._expect(ReturnState.IDLE)
        self.state = ReturnState.CHECKING
        try:
            item, size = resolve_target(self._db, self.command)
            promoter = check_promoter(self._db, self.command)
            check_employee(self._db, self.command.employee_id)
            self.holding = promoter_holding(
                self._db,
                promoter_id=self.command.promoter_id,
                item_id=stock_item_id(item),
                item_size_id=self.command.item_size_id,
            )
        except SQLAlchemyError as exc:
            self.state = ReturnState.FAILED
            self._db.rollback()
            logger.error('Holdings check failed for promoter=%s: %s', self.command.promoter_id, exc)
            raise VerificationFailed('Could not verify the promoter holdings; the return was not recorded') from exc
        except InventoryError:
            self.state = ReturnState.FAILED
            raise

        self._target = (promoter, item, size)
        matched = self.holding > 0
        self.state = ReturnState.MATCH_FOUND if matched else ReturnState.NO_MATCH
        return matched

    def check(self) -> ReturnOutcome:
        if self.verify():
            return self.commit()
        return self.hold()

    def commit(self) -> ReturnOutcome:
        self._expect(ReturnState.MATCH_FOUND)
        return self._commit(resolved_by_employee_id=None)

    def hold(self) -> ReturnOutcome:
        self._expect(ReturnState.NO_MATCH)
        promoter, item, size = self._target
        self.warning = _mismatch_warning(promoter, item, size)
        pending = PendingReturn(
            promoter_id=self.command.promoter_id,
            item_id=self.command.item_id,
            item_size_id=self.command.item_size_id,
            quantity=self.command.quantity,
            employee_id=self.command.employee_id,
            notes=self.command.notes,
            warning=self.warning,
            status=PendingReturnStatus.AWAITING_OVERRIDE,
            created_at=_now(),
        )
        try:
            self._db.add(pending)
            self._db.flush()
            log_audit(
                self._db,
                actor_employee_id=self.command.employee_id,
                action='RETURN_HOLDINGS_MISMATCH',
                pending_return_id=pending.id,
                ip=self.ip,
                metadata={'holding': self.holding, 'quantity': self.command.quantity},
            )
            commit_ledger(self._db)
        except SQLAlchemyError as exc:
            self.state = ReturnState.FAILED
            self._db.rollback()
            raise StorageError('Could not park the return for confirmation') from exc
        except InventoryError:
            self.state = ReturnState.FAILED
            raise

        self.pending = pending
        self.state = ReturnState.AWAITING_OVERRIDE
        logger.warning(
            'Return held for override: pending_return=%s promoter=%s item_size=%s holding=%s',
            pending.id,
            self.command.promoter_id,
            self.command.item_size_id,
            self.holding,
        )
        return ReturnOutcome(
            state=self.state,
            pending_return_id=pending.id,
            warning=self.warning,
            holding=self.holding,
        )

    def _claim(self, status: PendingReturnStatus, *, employee_id: int | None) -> None:
        """Resolve the pending row, unless another decision already has.

        The status guard sits in the ``UPDATE`` itself, so of two operators
        deciding the same return only the first to write wins.
        """
        try:
            result = self._db.execute(
                update(PendingReturn)
                .where(
                    PendingReturn.id == self.pending.id,
                    PendingReturn.status == PendingReturnStatus.AWAITING_OVERRIDE,
                )
                .values(status=status, resolved_by_employee_id=employee_id, resolved_at=_now())
            )
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise StorageError('Could not record the decision on the pending return') from exc
        if result.rowcount != 1:
            self._db.rollback()
            raise InvalidTransition(f'Return {self.pending.id} has already been decided')

    def cancel(self, *, employee_id: int) -> ReturnOutcome:
        self._expect(ReturnState.AWAITING_OVERRIDE)
        check_employee(self._db, employee_id)
        pending = self.pending
        try:
            self._claim(PendingReturnStatus.CANCELLED, employee_id=employee_id)
            log_audit(
                self._db,
                actor_employee_id=employee_id,
                action='RETURN_OVERRIDE_CANCELLED',
                pending_return_id=pending.id,
                ip=self.ip,
            )
            commit_ledger(self._db)
        except InventoryError:
            self.state = ReturnState.FAILED
            raise
        self.state = ReturnState.IDLE
        logger.info('Pending return %s cancelled by employee=%s', pending.id, employee_id)
        return ReturnOutcome(state=self.state, pending_return_id=pending.id, warning=self.warning)

    def force_confirm(self, *, employee_id: int) -> ReturnOutcome:
        self._expect(ReturnState.AWAITING_OVERRIDE)
        check_employee(self._db, employee_id)
        return self._commit(resolved_by_employee_id=employee_id)

    def _commit(self, *, resolved_by_employee_id: int | None) -> ReturnOutcome:
        self.state = ReturnState.COMMITTING
        try:
            if self.pending is not None:
                self._claim(PendingReturnStatus.COMMITTED, employee_id=resolved_by_employee_id)
            result = apply_command(self._db, self.command)
            if self.pending is not None:
                self.pending.transaction_id = result.transaction.id
                log_audit(
                    self._db,
                    actor_employee_id=resolved_by_employee_id,
                    action='RETURN_OVERRIDE_CONFIRMED',
                    pending_return_id=self.pending.id,
                    transaction_id=result.transaction.id,
                    ip=self.ip,
                    metadata={'quantity': self.command.quantity},
                )
            commit_ledger(self._db)
        except InventoryError:
            # Undo a claim staged before the ledger write was refused.
            self._db.rollback()
            self.state = ReturnState.FAILED
            raise

        self.result = result
        self.state = ReturnState.COMMITTED
        logger.info(
            'Return committed: transaction=%s promoter=%s item_size=%s override=%s',
            result.transaction.id,
            self.command.promoter_id,
            self.command.item_size_id,
            self.pending is not None,
        )
        return ReturnOutcome(
            state=self.state,
            result=result,
            pending_return_id=self.pending.id if self.pending else None,
            holding=self.holding,
        )


def list_pending_returns(db: Session) -> list[dict]:
    rows = db.execute(
        select(PendingReturn, Promoter.name, Item.name, ItemSize.size, Employee.name)
        .join(Promoter, Promoter.id == PendingReturn.promoter_id)
        .join(Item, Item.id == PendingReturn.item_id)
        .join(ItemSize, ItemSize.id == PendingReturn.item_size_id)
        .outerjoin(Employee, Employee.id == PendingReturn.employee_id)
        .where(PendingReturn.status == PendingReturnStatus.AWAITING_OVERRIDE)
        .order_by(PendingReturn.created_at.asc(), PendingReturn.id.asc())
    ).all()
    return [
        {
            'id': pending.id,
            'promoter_id': pending.promoter_id,
            'promoter_name': promoter_name,
            'item_id': pending.item_id,
            'item_name': item_name,
            'item_size_id': pending.item_size_id,
            'size': size_label,
            'quantity': pending.quantity,
            'employee_id': pending.employee_id,
            'employee_name': employee_name,
            'notes': pending.notes,
            'warning': pending.warning,
            'created_at': pending.created_at,
        }
        for pending, promoter_name, item_name, size_label, employee_name in rows
    ]
