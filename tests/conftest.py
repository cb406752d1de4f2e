"""Shared test fixtures for the closings test suite."""

import os

# Point settings at an in-memory store before any closings module is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("APP_ENV", "test")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Callable  # noqa: E402
from contextlib import asynccontextmanager  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import closings.models  # noqa: E402,F401
from closings.auth.dependencies import get_current_user  # noqa: E402
from closings.core.database import Base, get_db  # noqa: E402
from closings.core.events import event_bus  # noqa: E402
from closings.main import app  # noqa: E402
from closings.models.core import LawFirm, Staff  # noqa: E402
from closings.models.enums import LawFirmStatus, TransactionStatus, UserRole  # noqa: E402
from closings.models.transactions import Transaction  # noqa: E402
from closings.schemas.auth import CurrentUser  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database per test, schema built from the ORM metadata."""
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_event_bus():
    yield
    event_bus.clear()


# ── Sample identities ─────────────────────────────────────────────────────

FIRM_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_FIRM_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
ADMIN_USER_ID = uuid.UUID("00000000-0000-0000-0001-000000000001")
PRINCIPAL_USER_ID = uuid.UUID("00000000-0000-0000-0001-000000000002")
OTHER_PRINCIPAL_USER_ID = uuid.UUID("00000000-0000-0000-0001-000000000003")
CUSTOMER_USER_ID = uuid.UUID("00000000-0000-0000-0001-000000000004")
ATTORNEY_USER_ID = uuid.UUID("00000000-0000-0000-0001-000000000005")
STAFF_X_ID = uuid.UUID("00000000-0000-0000-0002-000000000001")
STAFF_Y_ID = uuid.UUID("00000000-0000-0000-0002-000000000002")
OUTSIDE_STAFF_ID = uuid.UUID("00000000-0000-0000-0002-000000000003")

ADMIN = CurrentUser(user_id=ADMIN_USER_ID, role=UserRole.ADMIN)
PRINCIPAL = CurrentUser(user_id=PRINCIPAL_USER_ID, role=UserRole.LAW_FIRM, law_firm_id=FIRM_ID)
OTHER_PRINCIPAL = CurrentUser(
    user_id=OTHER_PRINCIPAL_USER_ID, role=UserRole.LAW_FIRM, law_firm_id=OTHER_FIRM_ID
)
CUSTOMER = CurrentUser(user_id=CUSTOMER_USER_ID, role=UserRole.CUSTOMER)
ATTORNEY = CurrentUser(
    user_id=ATTORNEY_USER_ID, role=UserRole.ATTORNEY, law_firm_id=FIRM_ID, staff_id=STAFF_X_ID
)


# ── Sample data fixtures ──────────────────────────────────────────────────


@pytest.fixture
async def firm(db: AsyncSession) -> LawFirm:
    law_firm = LawFirm(
        id=FIRM_ID,
        name="Harbor Title & Closing",
        slug="harbor-title",
        owner_id=PRINCIPAL_USER_ID,
        status=LawFirmStatus.ACTIVE,
    )
    db.add(law_firm)
    await db.flush()
    return law_firm


@pytest.fixture
async def other_firm(db: AsyncSession) -> LawFirm:
    law_firm = LawFirm(
        id=OTHER_FIRM_ID,
        name="Summit Closings",
        slug="summit-closings",
        owner_id=OTHER_PRINCIPAL_USER_ID,
        status=LawFirmStatus.ACTIVE,
    )
    db.add(law_firm)
    await db.flush()
    return law_firm


@pytest.fixture
async def staff_x(db: AsyncSession, firm: LawFirm) -> Staff:
    staff = Staff(id=STAFF_X_ID, law_firm_id=firm.id, full_name="Avery Stone", profile_id=ATTORNEY_USER_ID)
    db.add(staff)
    await db.flush()
    return staff


@pytest.fixture
async def staff_y(db: AsyncSession, firm: LawFirm) -> Staff:
    staff = Staff(id=STAFF_Y_ID, law_firm_id=firm.id, full_name="Blake Rivera")
    db.add(staff)
    await db.flush()
    return staff


@pytest.fixture
async def outside_staff(db: AsyncSession, other_firm: LawFirm) -> Staff:
    staff = Staff(id=OUTSIDE_STAFF_ID, law_firm_id=other_firm.id, full_name="Casey Moreau")
    db.add(staff)
    await db.flush()
    return staff


@pytest.fixture
def make_transaction(db: AsyncSession) -> Callable:
    """Factory: insert a transaction with sensible defaults; override any column."""

    async def _make(law_firm_id: uuid.UUID = FIRM_ID, **overrides) -> Transaction:
        values = {
            "order_number": f"CLS-{uuid.uuid4().hex[:8].upper()}",
            "law_firm_id": law_firm_id,
            "customer_id": CUSTOMER_USER_ID,
            "customer_name": "Jordan Lee",
            "property_street": "12 Harbor Way",
            "property_city": "Portland",
            "property_state": "ME",
            "property_zip": "04101",
            "status": TransactionStatus.NEW,
        }
        values.update(overrides)
        txn = Transaction(**values)
        db.add(txn)
        await db.flush()
        return txn

    return _make


@pytest.fixture
def days_ago() -> Callable[[float], datetime]:
    def _days_ago(days: float) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=days)

    return _days_ago


# ── HTTP client ───────────────────────────────────────────────────────────


@pytest.fixture
def client_as(db: AsyncSession):
    """Open an AsyncClient that authenticates as the given CurrentUser."""

    @asynccontextmanager
    async def _client(user: CurrentUser) -> AsyncGenerator[AsyncClient]:
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_db] = lambda: db
        try:
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as ac:
                yield ac
        finally:
            app.dependency_overrides.pop(get_current_user, None)
            app.dependency_overrides.pop(get_db, None)

    return _client
