import asyncio
import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "trueservices_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("MIN_CONFIRMATIONS", "2")

from app.explorers.base import BlockExplorer, ChainOutput, ChainTransaction, ExplorerError  # noqa: E402

DEPOSIT_ADDRESS = "bc1qtrueservicesdeposit0000000000000000000"
TIP_HEIGHT = 850_000


class FakeExplorer(BlockExplorer):
    """Scripted chain: tests add transactions and set depth, price or failures."""

    decimals = 8

    def __init__(self) -> None:
        self.transactions: dict[str, ChainTransaction] = {}
        self.tip_height = TIP_HEIGHT
        self.price = Decimal("40000")
        self.fail = False

    def add(self, txid: str, address: str, sats: int, confirmations: int = 0) -> None:
        confirmed = confirmations > 0
        self.transactions[txid] = ChainTransaction(
            txid=txid,
            confirmed=confirmed,
            block_height=self.tip_height - confirmations + 1 if confirmed else None,
            block_time=1_700_000_000 if confirmed else None,
            outputs=[
                ChainOutput(address="bc1qchangeaddress", value=10_000),
                ChainOutput(address=address, value=sats),
            ],
        )

    def confirm(self, txid: str, confirmations: int) -> None:
        tx = self.transactions[txid]
        self.add(txid, tx.outputs[1].address, tx.outputs[1].value, confirmations)

    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        await asyncio.sleep(0)
        if self.fail:
            raise ExplorerError("explorer down")
        return self.transactions.get(txid)

    async def get_tip_height(self) -> int:
        await asyncio.sleep(0)
        return self.tip_height

    async def get_historical_price_usd(self, timestamp: int) -> Decimal:
        await asyncio.sleep(0)
        return self.price


@pytest_asyncio.fixture
async def db():
    from app.db.init import init_db
    database = AsyncMongoMockClient()[f"trueservices_test_{uuid.uuid4().hex[:8]}"]
    await init_db(database)
    yield database


@pytest_asyncio.fixture
async def explorer() -> FakeExplorer:
    return FakeExplorer()


@pytest_asyncio.fixture
async def client(db, explorer) -> AsyncGenerator[AsyncClient, None]:
    from app.deps import get_explorers
    from app.main import app
    app.dependency_overrides[get_explorers] = lambda: {"bitcoin": explorer}
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user(db):
    from app.models.user import User
    u = User(email=f"buyer-{uuid.uuid4().hex[:6]}@example.com", name="Buyer")
    await u.insert()
    return u


@pytest_asyncio.fixture
async def admin(db):
    from app.models.user import User
    u = User(email=f"staff-{uuid.uuid4().hex[:6]}@example.com", name="Staff", role="admin")
    await u.insert()
    return u


@pytest_asyncio.fixture
async def deposit_address(db):
    from app.models.crypto_address import CryptoAddress
    row = CryptoAddress(cryptocurrency="bitcoin", address=DEPOSIT_ADDRESS)
    await row.insert()
    return row


@pytest_asyncio.fixture
async def login(client):
    """Attach a signed session cookie for the given user to the client."""
    from app.core.security import create_session_cookie
    from app.deps import SESSION_COOKIE_NAME
    from app.services.users import session_payload_for_user

    def _login(u):
        client.cookies.set(SESSION_COOKIE_NAME, create_session_cookie(session_payload_for_user(u)))
        return client

    return _login
