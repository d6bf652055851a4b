"""
Test Configuration and Fixtures
Shared testing infrastructure for the stock costing engine
"""
import os
import tempfile

# Settings are read at import time; keep the app's own engine and logs away
# from the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="stock_costing_logs_"))

import pytest
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from stock_costing.main import app
from stock_costing.core.database import get_db, Base
from stock_costing.models import ManufacturingOrder, ManufacturingStage, WorkCenter
from stock_costing.services.stock import StockLedgerService, StockMovementService
from stock_costing.services.manufacturing import ProcessCostingService

# Test database - in-memory SQLite shared by every session in a test
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def ledger(db_session: Session) -> StockLedgerService:
    return StockLedgerService(db_session, negative_stock_policy="allow")


@pytest.fixture
def movements(db_session: Session, ledger: StockLedgerService) -> StockMovementService:
    return StockMovementService(db_session, ledger=ledger)


@pytest.fixture
def costing(db_session: Session, movements: StockMovementService) -> ProcessCostingService:
    return ProcessCostingService(db_session, stock_movements=movements)


@pytest.fixture
def manufacturing_order(db_session: Session) -> ManufacturingOrder:
    """Two stage route, a default work center and an open order"""
    db_session.add_all([
        WorkCenter(id="WC-ASSY", name="Assembly", is_default=True, is_active=True),
        WorkCenter(id="WC-PAINT", name="Paint Shop", is_default=False, is_active=True),
        ManufacturingStage(id="STG-CUT", name="Cutting", order_sequence=1),
        ManufacturingStage(id="STG-ASSY", name="Assembly", order_sequence=2),
    ])
    order = ManufacturingOrder(
        id="MO-001",
        order_number="MO-2024-0001",
        item_id="FG-CHAIR",
        planned_qty=Decimal("100"),
        completed_qty=Decimal("0"),
        standard_cost=Decimal("65.00"),
        status="draft"
    )
    db_session.add(order)
    db_session.commit()
    return order
