from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from merch_inventory.models import TransactionType


class StockMovementIn(BaseModel):
    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    promoter_id: int | None = None
    notes: str | None = None


class RestockIn(BaseModel):
    model_config = ConfigDict(extra='forbid')

    item_id: int
    item_size_id: int
    quantity: int
    employee_id: int
    notes: str | None = None


class ReturnIn(StockMovementIn):
    pass


class ReturnDecisionIn(BaseModel):
    employee_id: int


class MassEditLineIn(BaseModel):
    item_id: int
    item_size_id: int
    quantity: int


class MassEditIn(BaseModel):
    action: TransactionType
    promoter_id: int
    employee_id: int
    notes: str | None = None
    lines: list[MassEditLineIn] = Field(default_factory=list)
