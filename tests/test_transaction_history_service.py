from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import update

from merch_inventory.errors import InvalidRequest
from merch_inventory.models import InventoryTransaction, TransactionType
from merch_inventory.services.ledger_service import record_burn, record_restock, record_take_out
from merch_inventory.services.transaction_history_service import HistoryFilters, list_transactions
from tests.support import add_catalog, memory_session_factory


class TransactionHistoryServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = memory_session_factory()()
        self.ids = add_catalog(self.db)
        movement = {
            'item_id': self.ids.tee_id,
            'item_size_id': self.ids.size_m_id,
            'employee_id': self.ids.employee_id,
        }
        self.first = record_take_out(self.db, quantity=3, promoter_id=self.ids.alice_id, notes='Festival stand', **movement)
        self.second = record_take_out(self.db, quantity=2, promoter_id=self.ids.bob_id, **movement)
        self.third = record_burn(self.db, quantity=1, promoter_id=self.ids.alice_id, notes='Torn', **movement)
        self.fourth = record_restock(self.db, quantity=10, **movement)

    def tearDown(self) -> None:
        self.db.close()

    def test_newest_first_with_names(self) -> None:
        page = list_transactions(self.db)
        self.assertEqual(page['total'], 4)
        self.assertEqual(page['pages'], 1)
        ids = [row['id'] for row in page['transactions']]
        self.assertEqual(
            ids,
            [
                self.fourth.transaction.id,
                self.third.transaction.id,
                self.second.transaction.id,
                self.first.transaction.id,
            ],
        )
        restock_row = page['transactions'][0]
        self.assertEqual(restock_row['type'], 'RESTOCK')
        self.assertIsNone(restock_row['promoter_name'])
        self.assertEqual(restock_row['brand_name'], 'Brand A')
        self.assertEqual(restock_row['size'], 'M')
        self.assertEqual(page['transactions'][-1]['promoter_name'], 'Alice')

    def test_filters_combine(self) -> None:
        page = list_transactions(
            self.db,
            filters=HistoryFilters(transaction_type=TransactionType.TAKE_OUT, promoter_id=self.ids.alice_id),
        )
        self.assertEqual([row['id'] for row in page['transactions']], [self.first.transaction.id])

        by_employee = list_transactions(self.db, filters=HistoryFilters(employee_id=self.ids.employee_id))
        self.assertEqual(by_employee['total'], 4)

        by_item = list_transactions(self.db, filters=HistoryFilters(item_id=self.ids.retired_id))
        self.assertEqual(by_item['total'], 0)

    def test_search_matches_notes_and_names(self) -> None:
        by_note = list_transactions(self.db, filters=HistoryFilters(search='festival'))
        self.assertEqual([row['id'] for row in by_note['transactions']], [self.first.transaction.id])

        by_promoter = list_transactions(self.db, filters=HistoryFilters(search='bob'))
        self.assertEqual(by_promoter['total'], 1)

        by_item = list_transactions(self.db, filters=HistoryFilters(search='tour'))
        self.assertEqual(by_item['total'], 4)

    def test_date_range(self) -> None:
        last_week = datetime.now(tz=timezone.utc) - timedelta(days=7)
        self.db.execute(
            update(InventoryTransaction)
            .where(InventoryTransaction.id == self.first.transaction.id)
            .values(created_at=last_week)
        )
        self.db.commit()

        recent = list_transactions(self.db, filters=HistoryFilters(start=last_week + timedelta(days=1)))
        self.assertEqual(recent['total'], 3)

        older = list_transactions(self.db, filters=HistoryFilters(end=last_week + timedelta(hours=1)))
        self.assertEqual([row['id'] for row in older['transactions']], [self.first.transaction.id])

    def test_pagination(self) -> None:
        first_page = list_transactions(self.db, page=1, page_size=3)
        second_page = list_transactions(self.db, page=2, page_size=3)
        self.assertEqual(first_page['pages'], 2)
        self.assertEqual(len(first_page['transactions']), 3)
        self.assertEqual([row['id'] for row in second_page['transactions']], [self.first.transaction.id])

    def test_default_page_size_comes_from_settings(self) -> None:
        with patch('merch_inventory.services.transaction_history_service.settings') as settings_mock:
            settings_mock.history_page_size = 2
            settings_mock.history_max_page_size = 10
            page = list_transactions(self.db)
        self.assertEqual(page['page_size'], 2)
        self.assertEqual(page['pages'], 2)

    def test_rejects_bad_paging_and_ranges(self) -> None:
        with self.assertRaises(InvalidRequest):
            list_transactions(self.db, page=0)
        with self.assertRaises(InvalidRequest):
            list_transactions(self.db, page_size=100000)
        now = datetime.now(tz=timezone.utc)
        with self.assertRaises(InvalidRequest):
            list_transactions(self.db, filters=HistoryFilters(start=now, end=now - timedelta(days=1)))


if __name__ == '__main__':
    unittest.main()
