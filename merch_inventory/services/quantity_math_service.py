from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SizeCounters:
    item_size_id: int
    size: str
    original_quantity: int | None = 0
    available_quantity: int | None = 0
    in_circulation: int | None = 0


@dataclass(frozen=True)
class QuantityFault:
    """A stored or derived quantity that came out negative and was clamped to zero."""

    scope: str
    key: tuple
    field: str
    raw_value: int

    def describe(self) -> str:
        return f'{self.scope} {self.key}: {self.field} was {self.raw_value}, reported as 0'


@dataclass(frozen=True)
class ItemQuantities:
    original_quantity: int
    available_quantity: int
    in_circulation: int
    total_quantity: int
    size_count: int
    faults: tuple[QuantityFault, ...] = field(default_factory=tuple)

    @property
    def has_faults(self) -> bool:
        return bool(self.faults)

    def as_dict(self) -> dict:
        return {
            'original_quantity': self.original_quantity,
            'available_quantity': self.available_quantity,
            'in_circulation': self.in_circulation,
            'total_quantity': self.total_quantity,
            'size_count': self.size_count,
            'faults': [fault.describe() for fault in self.faults],
        }


EMPTY_QUANTITIES = ItemQuantities(
    original_quantity=0,
    available_quantity=0,
    in_circulation=0,
    total_quantity=0,
    size_count=0,
)


def _non_negative(value: int | None, *, scope: str, key: tuple, field_name: str, faults: list[QuantityFault]) -> int:
    if value is None:
        return 0
    value = int(value)
    if value < 0:
        faults.append(QuantityFault(scope=scope, key=key, field=field_name, raw_value=value))
        return 0
    return value


def size_quantities(row: SizeCounters, faults: list[QuantityFault]) -> tuple[int, int, int]:
    key = (row.item_size_id,)
    original = _non_negative(row.original_quantity, scope='item_size', key=key, field_name='original_quantity', faults=faults)
    available = _non_negative(row.available_quantity, scope='item_size', key=key, field_name='available_quantity', faults=faults)
    circulating = _non_negative(row.in_circulation, scope='item_size', key=key, field_name='in_circulation', faults=faults)
    return original, available, circulating


def summarize_sizes(rows: Iterable[SizeCounters | None]) -> ItemQuantities:
    faults: list[QuantityFault] = []
    original_total = 0
    available_total = 0
    circulating_total = 0
    size_count = 0
    for row in rows:
        if row is None:
            continue
        original, available, circulating = size_quantities(row, faults)
        original_total += original
        available_total += available
        circulating_total += circulating
        size_count += 1

    return ItemQuantities(
        original_quantity=original_total,
        available_quantity=available_total,
        in_circulation=circulating_total,
        total_quantity=available_total + circulating_total,
        size_count=size_count,
        faults=tuple(faults),
    )


def combine(quantities: Iterable[ItemQuantities]) -> ItemQuantities:
    result = EMPTY_QUANTITIES
    for entry in quantities:
        result = ItemQuantities(
            original_quantity=result.original_quantity + entry.original_quantity,
            available_quantity=result.available_quantity + entry.available_quantity,
            in_circulation=result.in_circulation + entry.in_circulation,
            total_quantity=result.total_quantity + entry.total_quantity,
            size_count=result.size_count + entry.size_count,
            faults=result.faults + entry.faults,
        )
    return result


def net_holding(take_out: int | None, returned: int | None, burned: int | None) -> int:
    return int(take_out or 0) - int(returned or 0) - int(burned or 0)


def clamp_holding(raw: int, *, key: tuple) -> tuple[int, QuantityFault | None]:
    if raw < 0:
        return 0, QuantityFault(scope='holding', key=key, field='quantity', raw_value=raw)
    return raw, None
