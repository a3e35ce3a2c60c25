from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_inventory.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor_employee_id: int | None,
    action: str,
    pending_return_id: int | None = None,
    transaction_id: int | None = None,
    ip: str | None = None,
    metadata: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_employee_id=actor_employee_id,
        action=action,
        pending_return_id=pending_return_id,
        transaction_id=transaction_id,
        ip=ip,
        meta=metadata or {},
    )
    db.add(entry)
    return entry


def list_audit_entries(db: Session, *, pending_return_id: int) -> list[AuditLog]:
    return db.execute(
        select(AuditLog)
        .where(AuditLog.pending_return_id == pending_return_id)
        .order_by(AuditLog.id.asc())
    ).scalars().all()
