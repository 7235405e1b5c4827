"""
Pytest fixtures for back office tests.

Provides test database setup, a store with lottery games, bins and active
packs, and factories for the rows the lottery close reads.
"""

import uuid

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import LotteryBin, LotteryBusinessDay, LotteryGame, LotteryPack, Shift, Store
from backoffice.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def user_id():
    return str(uuid.uuid4())


@pytest.fixture(scope='function')
def store(db_session):
    """Create a UTC store."""
    store = Store(name="Store A1", code="A1", timezone="UTC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    """Create a second store (tenant isolation)."""
    store = Store(name="Store B1", code="B1", timezone="UTC")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def game(db_session):
    """Create a $1 game with 30-ticket packs."""
    game = LotteryGame(game_code="1001", name="Lucky 7s", price_cents=100, tickets_per_pack=30)
    db_session.add(game)
    db_session.commit()
    return game


@pytest.fixture(scope='function')
def make_bin(db_session):
    def _make(store, display_order=0, name=None):
        lottery_bin = LotteryBin(
            store_id=store.id,
            name=name or f"Bin {display_order + 1}",
            display_order=display_order,
        )
        db_session.add(lottery_bin)
        db_session.commit()
        return lottery_bin
    return _make


@pytest.fixture(scope='function')
def make_pack(db_session):
    def _make(store, game, lottery_bin=None, pack_number="0001",
              serial_start="000", serial_end="029", status="ACTIVE"):
        pack = LotteryPack(
            store_id=store.id,
            game_id=game.id,
            bin_id=lottery_bin.id if lottery_bin else None,
            pack_number=pack_number,
            serial_start=serial_start,
            serial_end=serial_end,
            status=status,
            activated_at=utcnow() if status == "ACTIVE" else None,
        )
        db_session.add(pack)
        db_session.commit()
        return pack
    return _make


@pytest.fixture(scope='function')
def make_shift(db_session):
    def _make(store, cashier_id=None, status="OPEN"):
        shift = Shift(
            store_id=store.id,
            cashier_id=cashier_id or str(uuid.uuid4()),
            status=status,
            opened_at=utcnow(),
            closed_at=utcnow() if status == "CLOSED" else None,
        )
        db_session.add(shift)
        db_session.commit()
        return shift
    return _make


@pytest.fixture(scope='function')
def open_day(db_session, store):
    """OPEN lottery business day for the store."""
    now = utcnow()
    day = LotteryBusinessDay(
        store_id=store.id,
        business_date=now.date(),
        status="OPEN",
        opened_at=now,
    )
    db_session.add(day)
    db_session.commit()
    return day

