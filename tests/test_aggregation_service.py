from __future__ import annotations

import unittest
from types import SimpleNamespace

from sqlalchemy import text, update

from merch_inventory.errors import NotFound
from merch_inventory.models import ItemSize, TransactionType
from merch_inventory.services.aggregation_service import (
    PromoterHoldings,
    all_items_summary,
    holdings_by_promoter,
    item_quantities,
    promoter_holding,
    reduce_holdings,
    size_rows,
)
from merch_inventory.services.ledger_service import record_burn, record_restock, record_return, record_take_out
from tests.support import add_catalog, memory_session_factory


def _txn(kind: TransactionType, quantity: int, *, promoter_id=1, item_id=10, item_size_id=100):
    return SimpleNamespace(
        type=kind,
        quantity=quantity,
        promoter_id=promoter_id,
        item_id=item_id,
        item_size_id=item_size_id,
    )


class ReduceHoldingsTests(unittest.TestCase):
    def test_nets_take_outs_against_returns_and_burns(self) -> None:
        lines = reduce_holdings(
            [
                _txn(TransactionType.TAKE_OUT, 5),
                _txn(TransactionType.RETURN, 1),
                _txn(TransactionType.BURN, 1),
                _txn(TransactionType.TAKE_OUT, 2, item_size_id=101),
            ]
        )
        self.assertEqual([(line.item_size_id, line.quantity) for line in lines], [(100, 3), (101, 2)])

    def test_skips_restocks_and_zero_balances(self) -> None:
        lines = reduce_holdings(
            [
                _txn(TransactionType.RESTOCK, 50, promoter_id=None),
                _txn(TransactionType.TAKE_OUT, 2),
                _txn(TransactionType.RETURN, 2),
            ]
        )
        self.assertEqual(lines, [])

    def test_negative_balance_is_clamped_and_flagged(self) -> None:
        lines = reduce_holdings([_txn(TransactionType.TAKE_OUT, 1), _txn(TransactionType.RETURN, 3)])
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].quantity, 0)
        self.assertEqual(lines[0].raw_quantity, -2)
        self.assertTrue(lines[0].is_integrity_fault)


class AggregationServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_session_factory()()
        self.ids = add_catalog(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _move(self, func, *, promoter_id=None, item_size_id=None, quantity=1, item_id=None) -> None:
        func(
            self.db,
            item_id=item_id or self.ids.tee_id,
            item_size_id=item_size_id or self.ids.size_m_id,
            quantity=quantity,
            employee_id=self.ids.employee_id,
            promoter_id=promoter_id or self.ids.alice_id,
        )

    def test_promoter_holdings_follow_the_ledger(self) -> None:
        self._move(record_take_out, quantity=4)
        self._move(record_take_out, item_size_id=self.ids.size_l_id, quantity=2)
        self._move(record_return, quantity=1)
        self._move(record_burn, quantity=1)
        self._move(record_take_out, promoter_id=self.ids.bob_id, quantity=3)

        lines = PromoterHoldings(self.db, self.ids.alice_id).as_list()
        self.assertEqual(
            [(line.item_size_id, line.quantity) for line in lines],
            [(self.ids.size_m_id, 2), (self.ids.size_l_id, 2)],
        )
        self.assertEqual(
            promoter_holding(
                self.db, promoter_id=self.ids.bob_id, item_id=self.ids.tee_id, item_size_id=self.ids.size_m_id
            ),
            3,
        )

    def test_iterating_twice_gives_the_same_lines(self) -> None:
        self._move(record_take_out, quantity=4)
        holdings = PromoterHoldings(self.db, self.ids.alice_id)
        self.assertEqual(list(holdings), list(holdings))

    def test_holdings_view_sees_later_writes(self) -> None:
        holdings = PromoterHoldings(self.db, self.ids.alice_id)
        self.assertEqual(holdings.as_list(), [])
        self._move(record_take_out, quantity=2)
        self.assertEqual([line.quantity for line in holdings], [2])

    def test_unheld_size_reads_as_zero(self) -> None:
        self.assertEqual(
            promoter_holding(
                self.db, promoter_id=self.ids.alice_id, item_id=self.ids.tee_id, item_size_id=self.ids.size_l_id
            ),
            0,
        )

    def test_returned_in_full_disappears_from_holdings(self) -> None:
        self._move(record_take_out, quantity=2)
        self._move(record_return, quantity=2)
        self.assertEqual(PromoterHoldings(self.db, self.ids.alice_id).as_list(), [])

    def test_over_return_surfaces_as_integrity_fault(self) -> None:
        self._move(record_take_out, promoter_id=self.ids.bob_id, quantity=3)
        self._move(record_return, quantity=1)
        lines = PromoterHoldings(self.db, self.ids.alice_id).as_list()
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].raw_quantity, -1)
        self.assertTrue(lines[0].is_integrity_fault)

    def test_holdings_by_promoter_groups_every_promoter(self) -> None:
        self._move(record_take_out, quantity=1)
        self._move(record_take_out, promoter_id=self.ids.bob_id, quantity=2)
        grouped = holdings_by_promoter(self.db)
        self.assertEqual(set(grouped), {self.ids.alice_id, self.ids.bob_id})
        self.assertEqual(grouped[self.ids.bob_id][0].quantity, 2)

    def test_shared_item_holdings_land_on_canonical_item(self) -> None:
        self._move(record_take_out, item_id=self.ids.shared_tee_id, quantity=2)
        lines = PromoterHoldings(self.db, self.ids.alice_id).as_list()
        self.assertEqual(lines[0].item_id, self.ids.tee_id)

    def test_item_quantities_sum_sizes(self) -> None:
        self._move(record_take_out, quantity=4)
        quantities = item_quantities(self.db, item_id=self.ids.tee_id)
        self.assertEqual(quantities.original_quantity, 15)
        self.assertEqual(quantities.available_quantity, 11)
        self.assertEqual(quantities.in_circulation, 4)
        self.assertEqual(quantities.total_quantity, 15)
        self.assertEqual(quantities.size_count, 2)

        # The shared copy reports the canonical stock.
        self.assertEqual(item_quantities(self.db, item_id=self.ids.shared_tee_id), quantities)

    def test_item_quantities_unknown_item(self) -> None:
        with self.assertRaises(NotFound):
            item_quantities(self.db, item_id=9999)

    def test_negative_stored_counter_is_reported_not_hidden(self) -> None:
        self.db.execute(text('PRAGMA ignore_check_constraints = ON'))
        self.db.execute(
            update(ItemSize).where(ItemSize.id == self.ids.size_l_id).values(available_quantity=-1)
        )
        quantities = item_quantities(self.db, item_id=self.ids.tee_id)
        self.assertTrue(quantities.has_faults)
        self.assertEqual(quantities.available_quantity, 10)

        rows = {row['size']: row for row in size_rows(self.db, item_id=self.ids.tee_id)}
        self.assertEqual(rows['L']['available_quantity'], 0)
        self.assertEqual(len(rows['L']['faults']), 1)
        self.db.rollback()

    def test_all_items_summary_counts_shared_stock_once(self) -> None:
        record_restock(
            self.db,
            item_id=self.ids.tee_id,
            item_size_id=self.ids.size_m_id,
            quantity=5,
            employee_id=self.ids.employee_id,
        )
        summary = all_items_summary(self.db, include_shared=True)
        names = [(entry['brand_name'], entry['name']) for entry in summary['items']]
        self.assertIn(('Brand B', 'Tour Tee'), names)
        # Tee (20) plus poster (3); the shared copy adds nothing.
        self.assertEqual(summary['totals']['total_quantity'], 23)

        without_shared = all_items_summary(self.db)
        self.assertEqual(len(without_shared['items']), 2)
        self.assertEqual(without_shared['totals'], summary['totals'])

    def test_all_items_summary_filters_by_brand(self) -> None:
        summary = all_items_summary(self.db, brand_id=self.ids.other_brand_id)
        self.assertEqual(summary['items'], [])
        self.assertEqual(summary['totals']['total_quantity'], 0)


if __name__ == '__main__':
    unittest.main()
