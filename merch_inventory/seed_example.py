import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from merch_inventory.db import SessionLocal, init_db
from merch_inventory.models import Brand, Employee, Item, ItemSize, Promoter

logger = logging.getLogger(__name__)

DEMO_CATALOG = {
    'Demo Brand A': {
        'Tour Tee': {'S': 10, 'M': 20, 'L': 20, 'XL': 10},
        'Logo Hoodie': {'M': 8, 'L': 8},
        'Tote Bag': {'ONE SIZE': 40},
    },
    'Demo Brand B': {
        'Snapback Cap': {'ONE SIZE': 25},
    },
}
DEMO_PROMOTERS = ['Promoter One', 'Promoter Two']
DEMO_EMPLOYEES = ['Warehouse Lead']


def _get_or_create_brand(db: Session, name: str) -> Brand:
    brand = db.execute(select(Brand).where(Brand.name == name)).scalar_one_or_none()
    if not brand:
        brand = Brand(name=name, is_active=True)
        db.add(brand)
        db.flush()
    return brand


def _get_or_create_item(db: Session, brand: Brand, name: str, *, canonical_item_id: int | None = None) -> Item:
    item = db.execute(select(Item).where(Item.brand_id == brand.id, Item.name == name)).scalar_one_or_none()
    if not item:
        item = Item(
            brand_id=brand.id,
            name=name,
            is_active=True,
            is_shared=canonical_item_id is not None,
            canonical_item_id=canonical_item_id,
        )
        db.add(item)
        db.flush()
    return item


def seed(db: Session) -> None:
    items_by_name: dict[str, Item] = {}
    for brand_name, items in DEMO_CATALOG.items():
        brand = _get_or_create_brand(db, brand_name)
        for item_name, sizes in items.items():
            item = _get_or_create_item(db, brand, item_name)
            items_by_name[item_name] = item
            existing = set(db.execute(select(ItemSize.size).where(ItemSize.item_id == item.id)).scalars())
            for size, quantity in sizes.items():
                if size in existing:
                    continue
                db.add(
                    ItemSize(
                        item_id=item.id,
                        size=size,
                        original_quantity=quantity,
                        available_quantity=quantity,
                        in_circulation=0,
                    )
                )

    # Brand B also sells the Brand A tote; stock stays on the canonical item.
    brand_b = _get_or_create_brand(db, 'Demo Brand B')
    _get_or_create_item(db, brand_b, 'Tote Bag', canonical_item_id=items_by_name['Tote Bag'].id)

    for name in DEMO_PROMOTERS:
        if not db.execute(select(Promoter).where(Promoter.name == name)).scalar_one_or_none():
            db.add(Promoter(name=name, is_active=True))
    for name in DEMO_EMPLOYEES:
        if not db.execute(select(Employee).where(Employee.name == name)).scalar_one_or_none():
            db.add(Employee(name=name))

    db.commit()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    init_db()
    with SessionLocal() as session:
        seed(session)
    logger.info('Seed data inserted/verified.')
