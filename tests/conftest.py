"""Pytest configuration and fixtures."""

import os

# Point the application engine at an in-memory database before it is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_cogs.db.base import Base
from cafe_cogs.db.session import enable_sqlite_foreign_keys, get_db
from cafe_cogs.main import app
# Import all models to ensure they're registered with Base.metadata
from cafe_cogs.models import *
from cafe_cogs.schemas.catalog import MenuItemCreate, RawItemCreate
from cafe_cogs.services.catalog_service import CatalogService
from cafe_cogs.services.recipe_service import RecipeService
from cafe_cogs.services.stock_ledger_service import StockLedgerService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

BRANCH = "main"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiter during tests to avoid flaky failures
    from cafe_cogs.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def catalog(db_session: Session) -> CatalogService:
    return CatalogService(db_session)


@pytest.fixture
def ledger(db_session: Session) -> StockLedgerService:
    return StockLedgerService(db_session)


@pytest.fixture
def beans(catalog: CatalogService) -> RawItem:
    """Coffee beans, costed per gram."""
    return catalog.create_raw_item(RawItemCreate(
        code="BEANS",
        name="Espresso Beans",
        base_unit="g",
        unit_cost=Decimal("0.02"),
        category="coffee",
        min_stock_level=Decimal("200"),
    ))


@pytest.fixture
def milk(catalog: CatalogService) -> RawItem:
    """Whole milk, costed per millilitre."""
    return catalog.create_raw_item(RawItemCreate(
        code="MILK",
        name="Whole Milk",
        base_unit="ml",
        unit_cost=Decimal("0.01"),
        category="dairy",
        min_stock_level=Decimal("1000"),
    ))


@pytest.fixture
def cups(catalog: CatalogService) -> RawItem:
    return catalog.create_raw_item(RawItemCreate(
        code="CUP12",
        name="Paper Cup 12oz",
        base_unit="piece",
        unit_cost=Decimal("0.15"),
        category="packaging",
    ))


@pytest.fixture
def cappuccino(db_session: Session, catalog: CatalogService, beans: RawItem, milk: RawItem) -> MenuItem:
    """Cappuccino = 18 g beans + 120 ml milk, sold at 4.50."""
    item = catalog.create_menu_item(MenuItemCreate(
        name="Cappuccino", price=Decimal("4.50"), category="coffee",
    ))
    recipes = RecipeService(db_session)
    recipes.add_recipe_line(item.id, beans.id, Decimal("18"), "g")
    recipes.add_recipe_line(item.id, milk.id, Decimal("120"), "ml")
    return item


@pytest.fixture
def stocked_branch(ledger: StockLedgerService, beans: RawItem, milk: RawItem) -> str:
    """Main branch with 1 kg of beans and 5 l of milk."""
    ledger.set_stock(BRANCH, beans.id, Decimal("1000"), actor="setup")
    ledger.set_stock(BRANCH, milk.id, Decimal("5000"), actor="setup")
    return BRANCH
