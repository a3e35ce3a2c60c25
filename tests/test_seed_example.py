from __future__ import annotations

import unittest

from sqlalchemy import func, select

from merch_inventory.models import Item, ItemSize, Promoter
from merch_inventory.seed_example import seed
from merch_inventory.services.aggregation_service import all_items_summary
from tests.support import memory_session_factory


class SeedExampleTests(unittest.TestCase):
    def test_seed_is_idempotent(self) -> None:
        with memory_session_factory()() as db:
            seed(db)
            seed(db)

            self.assertEqual(db.execute(select(func.count()).select_from(ItemSize)).scalar_one(), 8)
            self.assertEqual(db.execute(select(func.count()).select_from(Promoter)).scalar_one(), 2)

            shared = db.execute(select(Item).where(Item.is_shared.is_(True))).scalars().all()
            self.assertEqual(len(shared), 1)
            self.assertIsNotNone(shared[0].canonical_item_id)

            summary = all_items_summary(db)
            self.assertEqual(summary['totals']['total_quantity'], 141)


if __name__ == '__main__':
    unittest.main()
