from __future__ import annotations


class InventoryError(Exception):
    """Base class for every failure the inventory core reports to its callers."""


class InvalidRequest(InventoryError, ValueError):
    """Request rejected before any write; resubmitting it unchanged will fail again."""


class InvalidTransition(InvalidRequest):
    """A return decision arrived in a state that does not accept it."""


class NotFound(InventoryError, LookupError):
    pass


class InsufficientStock(InventoryError):
    """A counter precondition failed.

    ``counter`` names the column that was short (``available_quantity`` for
    take-outs, ``in_circulation`` for burns and strict returns) and
    ``on_hand`` is its value when the write was refused.
    """

    def __init__(self, message: str, *, item_size_id: int, requested: int, on_hand: int, counter: str) -> None:
        super().__init__(message)
        self.item_size_id = item_size_id
        self.requested = requested
        self.on_hand = on_hand
        self.counter = counter


class VerificationFailed(InventoryError):
    """Promoter holdings could not be read, so the return was not recorded."""


class StorageError(InventoryError):
    """The atomic commit of a ledger write failed; nothing was applied."""
