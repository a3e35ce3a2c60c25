from __future__ import annotations

from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from merch_inventory.db import build_session_factory
from merch_inventory.models import Base, Brand, Employee, Item, ItemSize, Promoter


def memory_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return build_session_factory(engine)


def add_catalog(db: Session, *, tee_m: int = 10, tee_l: int = 5) -> SimpleNamespace:
    """A brand with one tee in two sizes, a shared copy of it under a second brand,
    two active promoters, one inactive promoter and one employee."""
    brand = Brand(name='Brand A')
    other_brand = Brand(name='Brand B')
    db.add_all([brand, other_brand])
    db.flush()

    tee = Item(brand_id=brand.id, name='Tour Tee', product_id='TEE-1')
    db.add(tee)
    db.flush()
    shared_tee = Item(brand_id=other_brand.id, name='Tour Tee', is_shared=True, canonical_item_id=tee.id)
    retired = Item(brand_id=brand.id, name='Old Poster', is_active=False)
    db.add_all([shared_tee, retired])
    db.flush()

    size_m = ItemSize(item_id=tee.id, size='M', original_quantity=tee_m, available_quantity=tee_m, in_circulation=0)
    size_l = ItemSize(item_id=tee.id, size='L', original_quantity=tee_l, available_quantity=tee_l, in_circulation=0)
    poster_size = ItemSize(item_id=retired.id, size='ONE SIZE', original_quantity=3, available_quantity=3, in_circulation=0)
    alice = Promoter(name='Alice')
    bob = Promoter(name='Bob')
    gone = Promoter(name='Gone', is_active=False)
    clerk = Employee(name='Clerk')
    db.add_all([size_m, size_l, poster_size, alice, bob, gone, clerk])
    db.commit()

    return SimpleNamespace(
        brand_id=brand.id,
        other_brand_id=other_brand.id,
        tee_id=tee.id,
        shared_tee_id=shared_tee.id,
        retired_id=retired.id,
        size_m_id=size_m.id,
        size_l_id=size_l.id,
        poster_size_id=poster_size.id,
        alice_id=alice.id,
        bob_id=bob.id,
        inactive_promoter_id=gone.id,
        employee_id=clerk.id,
    )


def size_counters(db: Session, item_size_id: int) -> tuple[int, int]:
    db.expire_all()
    size = db.get(ItemSize, item_size_id)
    return size.available_quantity, size.in_circulation
