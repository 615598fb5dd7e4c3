import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("FEE_BACKEND_URL", "http://fee-backend.test")

from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.core.models  # noqa: F401  (registers models on Base.metadata)
from app.clients.fee_backend import get_fee_backend
from app.core.exceptions import AdjustmentError, SubmissionError
from app.core.money import Money
from app.core.payments.catalog import FeeCatalog, build_fee_catalog
from app.core.payments.collaborators import SubmissionReceipt
from app.core.payments.composer import SettlementRequest
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TUITION_BALANCE = {
    "book_fee": "0",
    "book_paid": "0",
    "term1_amount": "1000.00",
    "term1_paid": "0",
    "term2_amount": "500.00",
    "term2_paid": "0",
    "term3_amount": "500.00",
    "term3_paid": "500.00",
}

TRANSPORT_MONTHS = [
    {"payment_month": "2025-07-01", "amount": "800.00", "paid": "0"},
    {"payment_month": "2025-06-01", "amount": "800.00", "paid": "300.00"},
]


class FakeFeeBackend:
    """In-memory stand-in for the fee backend client."""

    def __init__(self, catalogs: Optional[Dict[int, FeeCatalog]] = None) -> None:
        self.catalogs = catalogs or {}
        self.submissions: List[Tuple[str, SettlementRequest]] = []
        self.book_fee_updates: List[Tuple[int, Money]] = []
        self.submit_error: Optional[str] = None
        self.update_error: Optional[str] = None
        self.next_income_id = 101

    async def fetch_fee_items(self, enrollment_id: int) -> FeeCatalog:
        return self.catalogs[enrollment_id]

    async def submit(self, admission_no: str, settlement: SettlementRequest) -> SubmissionReceipt:
        if self.submit_error:
            raise SubmissionError(self.submit_error)
        self.submissions.append((admission_no, settlement))
        income_id = self.next_income_id
        self.next_income_id += 1
        return SubmissionReceipt(
            receipt_ref=income_id,
            receipt_no=f"RCPT-{income_id}",
            receipt_document_handle=f"/api/v1/college/income/{income_id}/regenerate-receipt",
        )

    async def update(self, enrollment_id: int, new_amount: Money) -> None:
        if self.update_error:
            raise AdjustmentError(self.update_error)
        self.book_fee_updates.append((enrollment_id, new_amount))


@pytest.fixture()
def catalog() -> FeeCatalog:
    return build_fee_catalog(7, TUITION_BALANCE, TRANSPORT_MONTHS)


@pytest.fixture()
def book_fee_catalog() -> FeeCatalog:
    balance = dict(TUITION_BALANCE, book_fee=Decimal("1500.00"), book_paid=Decimal("500.00"))
    return build_fee_catalog(8, balance, TRANSPORT_MONTHS)


@pytest.fixture()
def fee_backend(catalog: FeeCatalog, book_fee_catalog: FeeCatalog) -> FakeFeeBackend:
    backend = FakeFeeBackend({catalog.enrollment_id: catalog, book_fee_catalog.enrollment_id: book_fee_catalog})
    app.dependency_overrides[get_fee_backend] = lambda: backend
    yield backend
    app.dependency_overrides.pop(get_fee_backend, None)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession, fee_backend: FakeFeeBackend) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
