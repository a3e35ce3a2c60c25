from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from merch_inventory.errors import InvalidRequest, InventoryError
from merch_inventory.models import TransactionType
from merch_inventory.services.ledger_service import LedgerResult, build_command, record_transaction
from merch_inventory.services.return_reconciliation_service import ReturnReconciliation

logger = logging.getLogger(__name__)

MASS_EDIT_ACTIONS = {TransactionType.TAKE_OUT, TransactionType.RETURN, TransactionType.BURN}
DEFAULT_MASS_EDIT_NOTE = 'Mass edit operation'


@dataclass(frozen=True)
class MassEditLine:
    item_id: int
    item_size_id: int
    quantity: int


@dataclass
class MassEditResult:
    action: TransactionType
    applied: list[LedgerResult] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    skipped: int = 0

    @property
    def success_count(self) -> int:
        return len(self.applied)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def as_dict(self) -> dict:
        return {
            'action': self.action.value,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'skipped': self.skipped,
            'applied': [result.as_dict() for result in self.applied],
            'errors': self.errors,
        }


def _apply_return(db: Session, line: MassEditLine, *, promoter_id: int, employee_id: int, notes: str) -> LedgerResult:
    engine = ReturnReconciliation.start(
        db,
        promoter_id=promoter_id,
        item_id=line.item_id,
        item_size_id=line.item_size_id,
        quantity=line.quantity,
        employee_id=employee_id,
        notes=notes,
    )
    if not engine.verify():
        raise InvalidRequest('Promoter does not hold this item size; return it individually to confirm')
    return engine.commit().result


def apply_mass_edit(
    db: Session,
    *,
    action: TransactionType | str,
    promoter_id: int | None,
    employee_id: int | None,
    lines: list[MassEditLine],
    notes: str | None = None,
) -> MassEditResult:
    """Apply one action for one promoter across many item sizes.

    Every line commits on its own, so a failing line leaves the others in place.
    """
    try:
        kind = TransactionType(action)
    except ValueError as exc:
        raise InvalidRequest(f'Unknown action: {action}') from exc
    if kind not in MASS_EDIT_ACTIONS:
        raise InvalidRequest('Mass edit supports take-out, return and burn only')
    if promoter_id is None:
        raise InvalidRequest('Promoter is required')
    if employee_id is None:
        raise InvalidRequest('Employee is required')

    note = (notes or '').strip() or DEFAULT_MASS_EDIT_NOTE
    result = MassEditResult(action=kind)
    for line in lines:
        if line.quantity <= 0:
            result.skipped += 1
            continue
        try:
            if kind == TransactionType.RETURN:
                applied = _apply_return(db, line, promoter_id=promoter_id, employee_id=employee_id, notes=note)
            else:
                command = build_command(
                    kind,
                    item_id=line.item_id,
                    item_size_id=line.item_size_id,
                    quantity=line.quantity,
                    employee_id=employee_id,
                    promoter_id=promoter_id,
                    notes=note,
                )
                applied = record_transaction(db, command)
        except InventoryError as exc:
            result.errors.append(
                {
                    'item_id': line.item_id,
                    'item_size_id': line.item_size_id,
                    'quantity': line.quantity,
                    'error': type(exc).__name__,
                    'detail': str(exc),
                }
            )
            continue
        result.applied.append(applied)

    logger.info(
        'Mass edit %s for promoter=%s: %s applied, %s failed, %s skipped',
        kind.value,
        promoter_id,
        result.success_count,
        result.error_count,
        result.skipped,
    )
    return result
