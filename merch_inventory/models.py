from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigId = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


class TransactionType(str, Enum):
    TAKE_OUT = 'TAKE_OUT'
    RETURN = 'RETURN'
    BURN = 'BURN'
    RESTOCK = 'RESTOCK'


class PendingReturnStatus(str, Enum):
    AWAITING_OVERRIDE = 'AWAITING_OVERRIDE'
    CANCELLED = 'CANCELLED'
    COMMITTED = 'COMMITTED'


class Brand(Base):
    __tablename__ = 'brands'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Item(Base):
    __tablename__ = 'items'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    brand_id: Mapped[int] = mapped_column(BigId, ForeignKey('brands.id', ondelete='CASCADE'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    canonical_item_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('items.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ItemSize(Base):
    __tablename__ = 'item_sizes'
    __table_args__ = (
        CheckConstraint('available_quantity >= 0', name='item_sizes_available_non_negative_ck'),
        CheckConstraint('in_circulation >= 0', name='item_sizes_in_circulation_non_negative_ck'),
        CheckConstraint('original_quantity >= 0', name='item_sizes_original_non_negative_ck'),
        UniqueConstraint('item_id', 'size', name='item_sizes_item_size_key'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigId, ForeignKey('items.id', ondelete='CASCADE'), nullable=False)
    size: Mapped[str] = mapped_column(Text, nullable=False)
    original_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    in_circulation: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Promoter(Base):
    __tablename__ = 'promoters'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Employee(Base):
    __tablename__ = 'employees'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryTransaction(Base):
    __tablename__ = 'inventory_transactions'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='inventory_transactions_quantity_positive_ck'),
        CheckConstraint(
            "(transaction_type = 'RESTOCK' AND promoter_id IS NULL)"
            " OR (transaction_type <> 'RESTOCK' AND promoter_id IS NOT NULL)",
            name='inventory_transactions_promoter_by_type_ck',
        ),
        Index('inventory_transactions_promoter_item_size_idx', 'promoter_id', 'item_id', 'item_size_id'),
        Index('inventory_transactions_created_at_idx', 'created_at'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    type: Mapped[TransactionType] = mapped_column(
        'transaction_type',
        SQLEnum(TransactionType, name='transaction_type'),
        nullable=False,
    )
    item_id: Mapped[int] = mapped_column(BigId, ForeignKey('items.id'), nullable=False)
    item_size_id: Mapped[int] = mapped_column(BigId, ForeignKey('item_sizes.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    promoter_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('promoters.id'))
    employee_id: Mapped[int] = mapped_column(BigId, ForeignKey('employees.id'), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PendingReturn(Base):
    __tablename__ = 'pending_returns'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='pending_returns_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    promoter_id: Mapped[int] = mapped_column(BigId, ForeignKey('promoters.id'), nullable=False)
    item_id: Mapped[int] = mapped_column(BigId, ForeignKey('items.id'), nullable=False)
    item_size_id: Mapped[int] = mapped_column(BigId, ForeignKey('item_sizes.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    employee_id: Mapped[int] = mapped_column(BigId, ForeignKey('employees.id'), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    warning: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[PendingReturnStatus] = mapped_column(
        SQLEnum(PendingReturnStatus, name='pending_return_status'),
        nullable=False,
        default=PendingReturnStatus.AWAITING_OVERRIDE,
        server_default='AWAITING_OVERRIDE',
    )
    transaction_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('inventory_transactions.id'))
    resolved_by_employee_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('employees.id'))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigId, primary_key=True)
    actor_employee_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('employees.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    pending_return_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('pending_returns.id'))
    transaction_id: Mapped[int | None] = mapped_column(BigId, ForeignKey('inventory_transactions.id'))
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
