"""
Pytest fixtures for the stock kernel test suite.

Provides:
- A fresh SQLite file database per test (or PostgreSQL via DATABASE_URL)
- A deterministic clock and a fully wired StockKernel
- A seeded organization: locations, products, actors and assignments
- Captured JSON logs

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  When set, tables are created
  in that database and dropped after each test.
"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from stock_kernel.db.engine import build_engine, create_tables, drop_tables
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.values import Actor
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.models.access import UserLocationAssignment
from stock_kernel.models.location import Location
from stock_kernel.models.product import Product
from stock_kernel.services.kernel import build_stock_kernel


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, kernel):
            ...
            logs = captured_logs()
            assert any(r["message"] == "stock_transferred" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


def make_engine(directory):
    """Engine on DATABASE_URL if set, else a SQLite file under ``directory``."""
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{directory}/stock.db"
    engine = build_engine(url, pool_size=5, max_overflow=5)
    create_tables(engine)
    return engine


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(tmp_path)
    yield engine
    if engine.dialect.name != "sqlite":
        drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """A plain session for seeding and direct inspection."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def kernel(session_factory, clock):
    return build_stock_kernel(session_factory, clock=clock, sleep=lambda _: None)


# =============================================================================
# Seed data
# =============================================================================


@dataclass(frozen=True)
class World:
    """Seeded organization used by most service tests."""

    organization_id: UUID
    bar: UUID
    cellar: UUID
    kitchen: UUID
    closed: UUID
    vodka: UUID
    gin: UUID
    lager: UUID
    owner: Actor
    manager: Actor
    supervisor: Actor
    buyer: Actor
    staff: Actor
    viewer: Actor
    stranger: Actor


def seed_world(session) -> World:
    """
    One organization with three active locations and one inactive location.

    - owner, manager, buyer: elevated (every active location)
    - supervisor: write on bar and cellar, manage on bar
    - staff: write on bar only
    - viewer: read on bar only
    - stranger: another organization's owner
    """
    org = uuid4()

    def location(name, code, active=True):
        loc = Location(organization_id=org, name=name, code=code, is_active=active)
        session.add(loc)
        return loc

    def product(name, sku, cost):
        prod = Product(organization_id=org, name=name, sku=sku, cost_per_unit=Decimal(cost))
        session.add(prod)
        return prod

    bar = location("Main Bar", "BAR")
    cellar = location("Cellar", "CEL")
    kitchen = location("Kitchen", "KIT")
    closed = location("Patio", "PAT", active=False)
    vodka = product("Vodka 1L", "VOD-1", "12.50")
    gin = product("Gin 700ml", "GIN-7", "20.00")
    lager = product("Lager Keg", "LAG-K", "80.00")
    session.flush()

    owner = Actor(id=uuid4(), organization_id=org, role="owner")
    manager = Actor(id=uuid4(), organization_id=org, role="manager")
    supervisor = Actor(id=uuid4(), organization_id=org, role="supervisor")
    buyer = Actor(id=uuid4(), organization_id=org, role="buyer")
    staff = Actor(id=uuid4(), organization_id=org, role="staff")
    viewer = Actor(id=uuid4(), organization_id=org, role="viewer")
    stranger = Actor(id=uuid4(), organization_id=uuid4(), role="owner")

    def assign(actor, loc, *, read=True, write=False, manage=False):
        session.add(
            UserLocationAssignment(
                organization_id=org,
                user_id=actor.id,
                location_id=loc.id,
                can_read=read,
                can_write=write,
                can_manage=manage,
            )
        )

    assign(supervisor, bar, write=True, manage=True)
    assign(supervisor, cellar, write=True)
    assign(staff, bar, write=True)
    assign(viewer, bar)
    session.commit()

    return World(
        organization_id=org,
        bar=bar.id,
        cellar=cellar.id,
        kitchen=kitchen.id,
        closed=closed.id,
        vodka=vodka.id,
        gin=gin.id,
        lager=lager.id,
        owner=owner,
        manager=manager,
        supervisor=supervisor,
        buyer=buyer,
        staff=staff,
        viewer=viewer,
        stranger=stranger,
    )


@pytest.fixture
def world(session) -> World:
    return seed_world(session)


@pytest.fixture
def stock(kernel, world):
    """Set a ledger quantity as the owner: ``stock(product, location, qty)``."""

    def _stock(product_id, location_id, quantity, minimum=None):
        return kernel.ledger.set_level(
            product_id,
            location_id,
            actor=world.owner,
            quantity=Decimal(str(quantity)),
            minimum_quantity=Decimal(str(minimum)) if minimum is not None else None,
        )

    return _stock


@pytest.fixture
def fresh_world():
    """
    Factory for an isolated database, kernel and seeded world.

    Property-based tests run many examples inside one test function and
    each example needs its own database::

        with fresh_world() as (kernel, world):
            ...
    """

    @contextmanager
    def _fresh():
        with tempfile.TemporaryDirectory() as directory:
            engine = make_engine(directory)
            try:
                factory = sessionmaker(bind=engine, expire_on_commit=False)
                with factory() as session:
                    world = seed_world(session)
                kernel = build_stock_kernel(
                    factory, clock=DeterministicClock(), sleep=lambda _: None
                )
                yield kernel, world
            finally:
                if engine.dialect.name != "sqlite":
                    drop_tables(engine)
                engine.dispose()

    return _fresh
